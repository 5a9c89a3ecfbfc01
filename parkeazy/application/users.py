# File: parkeazy/application/users.py
"""
Users and session authentication

SessionAuthProvider keeps the signed-in user for this process. UserDirectory
is the super-admin's user management: admins may browse users, only
super-admins may create, edit or delete them.
"""

from typing import List, Optional

from .audit import ActionType, AuditLogger
from .base import (
    ApplicationService, AuthProvider, UnitOfWorkFactory, STAFF_ROLES,
    require_role, require_user
)
from ..domain.exceptions import UserNotFoundError, ValidationError
from ..domain.models import User, UserRole
from ..infrastructure.resilience import RetryPolicy


class SessionAuthProvider(ApplicationService, AuthProvider):
    """Single-session sign-in by email"""

    def __init__(self, uow_factory: UnitOfWorkFactory, audit: Optional[AuditLogger] = None):
        super().__init__(uow_factory)
        self._audit = audit
        self._current: Optional[User] = None

    def current_user(self) -> Optional[User]:
        return self._current

    def login(self, email: str) -> User:
        """Sign in; the email match ignores case"""
        with self.unit_of_work() as uow:
            user = uow.users.find_by_email(email)
            if user is None:
                raise UserNotFoundError(f"No user registered with {email}")

            if self._audit:
                self._audit.record(user.id, user.role, ActionType.LOGIN,
                                   f"{user.name} signed in", uow=uow)

        self._current = user
        self._logger.info(f"User {user.id} signed in as {user.role.value}")
        return user

    def logout(self) -> None:
        user = self._current
        if user is None:
            return

        if self._audit:
            self._audit.record(user.id, user.role, ActionType.LOGOUT, f"{user.name} signed out")
        self._current = None
        self._logger.info(f"User {user.id} signed out")

    def update_profile(self, name: Optional[str] = None, email: Optional[str] = None) -> User:
        """
        Change the signed-in user's own name or email

        Raises:
            UserNotAuthenticatedError: nobody is signed in
            ValidationError: blank name, malformed email or an email held by someone else
        """
        user = require_user(self)
        errors = {}
        if name is not None and not name.strip():
            errors['name'] = "Name is required."
        if email is not None and "@" not in email:
            errors['email'] = "Enter a valid email address."

        with self.unit_of_work() as uow:
            if email is not None and 'email' not in errors:
                other = uow.users.find_by_email(email)
                if other is not None and other.id != user.id:
                    errors['email'] = "Email already registered."
            if errors:
                raise ValidationError(errors)

            updated = User(
                id=user.id,
                name=name.strip() if name is not None else user.name,
                email=email if email is not None else user.email,
                role=user.role
            )
            uow.users.update(updated)

            if self._audit:
                self._audit.record(
                    user.id, user.role, ActionType.PROFILE_UPDATE,
                    f"{updated.name} updated their profile",
                    metadata={'user_id': user.id, 'old_email': user.email, 'new_email': updated.email},
                    uow=uow
                )

        self._current = updated
        self._logger.info(f"User {user.id} updated their profile")
        return updated


class UserDirectory(ApplicationService):
    """User administration"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        auth: AuthProvider,
        audit: AuditLogger,
        read_policy: Optional[RetryPolicy] = None
    ):
        super().__init__(uow_factory, read_policy)
        self._auth = auth
        self._audit = audit

    def list_users(self) -> List[User]:
        """All users for admins and super-admins; everyone else gets an empty list"""
        user = self._auth.current_user()
        if user is None or not user.role.is_staff:
            return []
        users = self._bulk_read(lambda uow: uow.users.list(), label="users")
        return sorted(users, key=lambda u: u.name.lower())

    def get_user(self, user_id: str) -> User:
        require_role(require_user(self._auth), STAFF_ROLES)
        with self.unit_of_work() as uow:
            user = uow.users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def add_user(self, name: str, email: str, role: UserRole = UserRole.USER) -> User:
        actor = require_role(require_user(self._auth), [UserRole.SUPER_ADMIN])
        user = User(name=name, email=email, role=role)

        with self.unit_of_work() as uow:
            if uow.users.find_by_email(user.email) is not None:
                raise ValidationError({'email': "Email already registered."})
            uow.users.add(user)

            action = ActionType.ADMIN_CREATED if user.role.is_staff else ActionType.USER_CREATED
            self._audit.record(
                actor.id, actor.role, action,
                f"Created {user.role.value} {user.name} ({user.email})",
                metadata={'user_id': user.id, 'role': user.role.value},
                uow=uow
            )

        self._logger.info(f"User {user.id} created with role {user.role.value}")
        return user

    def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[UserRole] = None
    ) -> User:
        actor = require_role(require_user(self._auth), [UserRole.SUPER_ADMIN])

        with self.unit_of_work() as uow:
            existing = uow.users.get(user_id)
            if existing is None:
                raise UserNotFoundError(f"User {user_id} not found")

            if email and email.strip().lower() != existing.email.lower():
                other = uow.users.find_by_email(email)
                if other is not None and other.id != user_id:
                    raise ValidationError({'email': "Email already registered."})

            updated = User(
                id=existing.id,
                name=name if name is not None else existing.name,
                email=email if email is not None else existing.email,
                role=UserRole(role) if role is not None else existing.role
            )
            uow.users.update(updated)

            action = self._update_action(existing, updated)
            self._audit.record(
                actor.id, actor.role, action,
                f"Updated {updated.name} ({existing.role.value} -> {updated.role.value})",
                metadata={'user_id': updated.id, 'old_role': existing.role.value,
                          'new_role': updated.role.value},
                uow=uow
            )

        return updated

    @staticmethod
    def _update_action(before: User, after: User) -> ActionType:
        if before.role != after.role:
            if before.role.is_staff and not after.role.is_staff:
                return ActionType.ROLE_DEMOTION
            return ActionType.ROLE_UPDATE
        if after.role.is_staff:
            return ActionType.ADMIN_UPDATE
        return ActionType.USER_UPDATE

    def delete_user(self, user_id: str) -> bool:
        actor = require_role(require_user(self._auth), [UserRole.SUPER_ADMIN])

        with self.unit_of_work() as uow:
            existing = uow.users.get(user_id)
            if existing is None:
                return False
            uow.users.delete(user_id)
            self._audit.record(
                actor.id, actor.role, ActionType.USER_DELETED,
                f"Deleted {existing.role.value} {existing.name} ({existing.email})",
                metadata={'user_id': user_id},
                uow=uow
            )

        self._logger.info(f"User {user_id} deleted")
        return True
