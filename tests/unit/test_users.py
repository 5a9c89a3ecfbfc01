"""
Unit tests for sign-in and user administration
"""

import unittest

from parkeazy.application.audit import ActionType
from parkeazy.domain.exceptions import (
    PermissionDeniedError, UserNotAuthenticatedError, UserNotFoundError, ValidationError
)
from parkeazy.domain.models import UserRole
from tests.support import ServiceTestCase


class TestSessionAuth(ServiceTestCase):

    def test_login_ignores_email_case(self):
        user = self.services.auth.login("USER@Test.com")
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(self.services.auth.current_user().id, self.user.id)

    def test_unknown_email(self):
        with self.assertRaises(UserNotFoundError):
            self.services.auth.login("nobody@test.com")
        self.assertIsNone(self.services.auth.current_user())

    def test_login_and_logout_are_audited(self):
        self.login(self.user)
        self.services.auth.logout()
        self.assertIsNone(self.services.auth.current_user())
        self.assertEqual(len(self.stored_logs(ActionType.LOGIN.value)), 1)
        self.assertEqual(len(self.stored_logs(ActionType.LOGOUT.value)), 1)

    def test_logout_without_session(self):
        self.services.auth.logout()
        self.assertEqual(self.stored_logs(ActionType.LOGOUT.value), [])


class TestProfileUpdate(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.auth = self.services.auth
        self.login(self.user)

    def test_update_name_and_email(self):
        updated = self.auth.update_profile(name="Renamed User", email="renamed@test.com")
        self.assertEqual(updated.role, UserRole.USER)
        self.assertEqual(self.auth.current_user().name, "Renamed User")
        self.assertEqual(self.auth.current_user().email, "renamed@test.com")

        self.auth.logout()
        self.assertEqual(self.auth.login("renamed@test.com").id, self.user.id)
        with self.assertRaises(UserNotFoundError):
            self.auth.login("user@test.com")

    def test_update_is_audited(self):
        self.auth.update_profile(name="Renamed User")
        logs = self.stored_logs(ActionType.PROFILE_UPDATE.value)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].actor_id, self.user.id)

    def test_email_taken_by_someone_else(self):
        with self.assertRaises(ValidationError) as ctx:
            self.auth.update_profile(email="JANE.DOE@test.com")
        self.assertIn('email', ctx.exception.errors)
        self.assertEqual(self.auth.current_user().email, "user@test.com")
        self.assertEqual(self.stored_logs(ActionType.PROFILE_UPDATE.value), [])

    def test_keeping_own_email(self):
        updated = self.auth.update_profile(name="Same Email", email="user@test.com")
        self.assertEqual(updated.email, "user@test.com")

    def test_invalid_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            self.auth.update_profile(name="  ", email="not-an-email")
        self.assertEqual(set(ctx.exception.errors), {'name', 'email'})

    def test_requires_sign_in(self):
        self.auth.logout()
        with self.assertRaises(UserNotAuthenticatedError):
            self.auth.update_profile(name="Nobody")


class TestUserDirectory(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.directory = self.services.users

    def test_list_users_for_staff_only(self):
        self.assertEqual(self.directory.list_users(), [])
        self.login(self.user)
        self.assertEqual(self.directory.list_users(), [])
        self.login(self.admin)
        names = [user.name for user in self.directory.list_users()]
        self.assertEqual(names, ["Jane Doe", "Super Admin", "Test Admin", "Test User"])

    def test_get_user_requires_staff(self):
        self.login(self.user)
        with self.assertRaises(PermissionDeniedError):
            self.directory.get_user(self.other_user.id)
        self.login(self.admin)
        self.assertEqual(self.directory.get_user(self.other_user.id).email, "jane.doe@test.com")

    def test_only_super_admin_manages_users(self):
        with self.assertRaises(UserNotAuthenticatedError):
            self.directory.add_user("Karim Rahman", "karim.rahman@test.com")
        self.login(self.admin)
        with self.assertRaises(PermissionDeniedError):
            self.directory.add_user("Karim Rahman", "karim.rahman@test.com")

    def test_add_user(self):
        self.login(self.super_admin)
        user = self.directory.add_user("Karim Rahman", "karim.rahman@test.com")
        self.assertEqual(self.directory.get_user(user.id).role, UserRole.USER)
        self.assertEqual(len(self.stored_logs(ActionType.USER_CREATED.value)), 1)

    def test_add_admin_is_logged_as_admin_creation(self):
        self.login(self.super_admin)
        self.directory.add_user("Mike Ross", "mike.ross@test.com", UserRole.ADMIN)
        self.assertEqual(len(self.stored_logs(ActionType.ADMIN_CREATED.value)), 1)

    def test_duplicate_email(self):
        self.login(self.super_admin)
        with self.assertRaises(ValidationError) as ctx:
            self.directory.add_user("Someone", "USER@test.com")
        self.assertIn('email', ctx.exception.errors)

    def test_role_change(self):
        self.login(self.super_admin)
        updated = self.directory.update_user(self.user.id, role=UserRole.ADMIN)
        self.assertEqual(updated.role, UserRole.ADMIN)
        self.assertEqual(updated.name, "Test User")
        self.assertEqual(len(self.stored_logs(ActionType.ROLE_UPDATE.value)), 1)

    def test_demotion(self):
        self.login(self.super_admin)
        self.directory.update_user(self.admin.id, role=UserRole.USER)
        log = self.stored_logs(ActionType.ROLE_DEMOTION.value)[0]
        self.assertEqual(log.metadata['old_role'], "admin")

    def test_plain_update(self):
        self.login(self.super_admin)
        self.directory.update_user(self.user.id, name="Tested User")
        self.assertEqual(self.directory.get_user(self.user.id).name, "Tested User")
        self.assertEqual(len(self.stored_logs(ActionType.USER_UPDATE.value)), 1)

    def test_update_to_taken_email(self):
        self.login(self.super_admin)
        with self.assertRaises(ValidationError):
            self.directory.update_user(self.user.id, email="jane.doe@test.com")

    def test_update_unknown(self):
        self.login(self.super_admin)
        with self.assertRaises(UserNotFoundError):
            self.directory.update_user("missing", name="X")

    def test_delete_user(self):
        self.login(self.super_admin)
        self.assertTrue(self.directory.delete_user(self.other_user.id))
        self.assertFalse(self.directory.delete_user(self.other_user.id))
        self.assertEqual(len(self.stored_logs(ActionType.USER_DELETED.value)), 1)


if __name__ == '__main__':
    unittest.main()
