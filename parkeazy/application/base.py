# File: parkeazy/application/base.py
"""
Shared plumbing for application services

Every mutating operation accepts an optional unit of work. When one is
passed the operation joins that transaction and leaves committing to its
owner; otherwise the service opens, commits and closes its own.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional
import logging

from ..domain.exceptions import PermissionDeniedError, UserNotAuthenticatedError
from ..domain.models import User, UserRole
from ..infrastructure.repositories import UnitOfWork
from ..infrastructure.resilience import RetryPolicy, fetch_with_retry


UnitOfWorkFactory = Callable[[], UnitOfWork]


class AuthProvider(ABC):
    """Source of the currently signed-in user"""

    @abstractmethod
    def current_user(self) -> Optional[User]:
        pass


class ApplicationService:
    """Base class wiring a unit-of-work factory, logging and read retries"""

    def __init__(self, uow_factory: UnitOfWorkFactory, read_policy: Optional[RetryPolicy] = None):
        self._uow_factory = uow_factory
        self._read_policy = read_policy
        self._logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def unit_of_work(self, uow: Optional[UnitOfWork] = None) -> Iterator[UnitOfWork]:
        if uow is not None:
            yield uow
            return
        with self._uow_factory() as new_uow:
            yield new_uow

    def _bulk_read(self, reader: Callable[[UnitOfWork], list], label: str) -> list:
        """Read through the retry policy, degrading to an empty list"""
        def operation():
            with self._uow_factory() as uow:
                return reader(uow)
        return fetch_with_retry(operation, fallback=list, policy=self._read_policy, label=label)


def require_user(auth: Optional[AuthProvider]) -> User:
    user = auth.current_user() if auth else None
    if user is None:
        raise UserNotAuthenticatedError()
    return user


def require_role(user: User, roles: Iterable[UserRole]) -> User:
    roles = tuple(roles)
    if user.role not in roles:
        allowed = ", ".join(role.value for role in roles)
        raise PermissionDeniedError(f"{user.role.value} may not perform this action (requires {allowed})")
    return user


STAFF_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)
