"""
Unit tests for settings loading
"""

import unittest

from pydantic import ValidationError

from parkeazy.config import Settings


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        settings = Settings.from_env({})
        self.assertEqual(settings.database_url, "sqlite:///./parkeazy.db")
        self.assertIsNone(settings.redis_url)
        self.assertEqual(settings.read_max_retries, 2)
        self.assertEqual(settings.store_lock_timeout_seconds, 30.0)

    def test_prefixed_variables(self):
        settings = Settings.from_env({
            'PARKEAZY_REDIS_URL': "redis://cache:6379",
            'PARKEAZY_LOG_LEVEL': "debug",
            'PARKEAZY_READ_MAX_RETRIES': "4",
            'PARKEAZY_CURRENCY': "usd",
        })
        self.assertEqual(settings.redis_url, "redis://cache:6379")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.read_max_retries, 4)
        self.assertEqual(settings.currency, "USD")

    def test_database_url_fallback(self):
        self.assertEqual(Settings.from_env({'DATABASE_URL': "sqlite://"}).database_url, "sqlite://")
        settings = Settings.from_env({'DATABASE_URL': "sqlite://", 'PARKEAZY_DATABASE_URL': "sqlite:///x.db"})
        self.assertEqual(settings.database_url, "sqlite:///x.db")

    def test_invalid_values(self):
        with self.assertRaises(ValidationError):
            Settings.from_env({'PARKEAZY_CURRENCY': "TAKA"})
        with self.assertRaises(ValidationError):
            Settings(read_max_retries=-1)

    def test_frozen(self):
        with self.assertRaises(ValidationError):
            Settings().log_level = "DEBUG"


if __name__ == '__main__':
    unittest.main()
