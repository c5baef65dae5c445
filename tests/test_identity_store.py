import unittest
from unittest.mock import patch

from fieldtrack.config import settings
from fieldtrack.services.identity_store import IdentityStore
from fieldtrack.storage import CURRENT_SESSION, USERS, MemoryStorage, storage_key


class IdentityStoreTests(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.identity = IdentityStore(self.storage)

    def test_register_logs_the_new_user_in(self):
        result = self.identity.register(' Anna ', 'Anna@Example.com', 'secret', 'trainer')

        self.assertTrue(result.success)
        self.assertIsNone(result.error)
        user = self.identity.current_user
        self.assertEqual(user.name, 'Anna')
        self.assertEqual(user.email, 'anna@example.com')
        self.assertEqual(user.role, 'trainer')
        self.assertNotEqual(user.password_hash, 'secret')
        self.assertEqual(self.storage.load(storage_key(CURRENT_SESSION))['userId'], user.id)
        self.assertEqual(len(self.storage.load(storage_key(USERS))), 1)

    def test_duplicate_email_is_rejected_case_insensitively(self):
        self.identity.register('Anna', 'anna@example.com', 'secret', 'trainer')

        result = self.identity.register('Other', 'ANNA@example.com', 'secret', 'parent')

        self.assertFalse(result.success)
        self.assertIn('already exists', result.error)
        self.assertEqual(len(self.identity.all_users()), 1)

    def test_short_password_is_rejected(self):
        result = self.identity.register('Anna', 'anna@example.com', 'abc', 'trainer')

        self.assertFalse(result.success)
        self.assertIn('at least 4', result.error)
        self.assertIsNone(self.identity.current_user)
        self.assertEqual(self.identity.all_users(), [])

    def test_login_checks_email_and_password(self):
        self.identity.register('Anna', 'anna@example.com', 'secret', 'trainer')
        self.identity.logout()

        unknown = self.identity.login('nobody@example.com', 'secret')
        wrong = self.identity.login('anna@example.com', 'wrong')
        self.assertFalse(unknown.success)
        self.assertFalse(wrong.success)
        self.assertNotEqual(unknown.error, wrong.error)
        self.assertIsNone(self.identity.current_user)

        ok = self.identity.login('  ANNA@example.com', 'secret')
        self.assertTrue(ok.success)
        self.assertEqual(self.identity.current_user.email, 'anna@example.com')

    def test_logout_keeps_users(self):
        self.identity.register('Anna', 'anna@example.com', 'secret', 'trainer')

        self.identity.logout()

        self.assertIsNone(self.identity.current_user)
        self.assertIsNone(self.storage.load(storage_key(CURRENT_SESSION)))
        self.assertEqual(len(self.identity.all_users()), 1)

    def test_session_survives_restart(self):
        self.identity.register('Anna', 'anna@example.com', 'secret', 'trainer')
        user_id = self.identity.current_user.id

        restarted = IdentityStore(self.storage)

        self.assertEqual(restarted.current_user.id, user_id)
        self.assertTrue(restarted.login('anna@example.com', 'secret').success)

    def test_session_for_unknown_user_is_dropped(self):
        storage = MemoryStorage({storage_key(CURRENT_SESSION): {'userId': 'user-gone'}})

        self.assertIsNone(IdentityStore(storage).current_user)


class SessionTokenTests(unittest.TestCase):
    def setUp(self):
        self.identity = IdentityStore(MemoryStorage())
        self.identity.register('Anna', 'anna@example.com', 'secret', 'trainer')
        self.identity.register('Piotr', 'piotr@example.com', 'secret', 'parent')
        self.anna = self.identity.find_user_by_email('ANNA@example.com')

    def test_token_resolves_its_own_user_not_the_current_one(self):
        token = self.identity.issue_session_token(self.anna)

        self.assertEqual(self.identity.current_user.email, 'piotr@example.com')
        self.assertEqual(self.identity.validate_session_token(token).id, self.anna.id)

    def test_missing_or_tampered_token_is_rejected(self):
        token = self.identity.issue_session_token(self.anna)
        header, _, signature = token.split('.')
        forged = f'{header}.eyJzdWIiOiAidXNlci14In0.{signature}'

        self.assertIsNone(self.identity.validate_session_token(None))
        self.assertIsNone(self.identity.validate_session_token('garbage'))
        self.assertIsNone(self.identity.validate_session_token(forged))

    def test_token_signed_with_another_secret_is_rejected(self):
        token = self.identity.issue_session_token(self.anna)

        with patch.object(settings, 'auth_secret', 'rotated-secret'):
            self.assertIsNone(self.identity.validate_session_token(token))

    def test_cleared_token_stops_working(self):
        token = self.identity.issue_session_token(self.anna)
        other = self.identity.issue_session_token(self.anna)

        self.identity.clear_session_token(token)

        self.assertIsNone(self.identity.validate_session_token(token))
        self.assertEqual(self.identity.validate_session_token(other).id, self.anna.id)


if __name__ == '__main__':
    unittest.main()
