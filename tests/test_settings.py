import unittest

from pydantic import ValidationError

from backend.hms_auth.core.settings import Settings

ACCESS = "a" * 32
REFRESH = "r" * 32


def load(**values):
    return Settings(_env_file=None, **values)


class TestSigningSecrets(unittest.TestCase):

    def test_valid_secrets(self):
        settings = load(ACCESS_TOKEN_SECRET=ACCESS, REFRESH_TOKEN_SECRET=REFRESH)
        self.assertEqual(settings.ACCESS_TOKEN_SECRET, ACCESS)

    def test_empty_secret_is_rejected(self):
        with self.assertRaises(ValidationError):
            load(ACCESS_TOKEN_SECRET="", REFRESH_TOKEN_SECRET="")

    def test_short_secret_is_rejected(self):
        with self.assertRaises(ValidationError):
            load(ACCESS_TOKEN_SECRET="too-short", REFRESH_TOKEN_SECRET=REFRESH)
        with self.assertRaises(ValidationError):
            load(ACCESS_TOKEN_SECRET=ACCESS, REFRESH_TOKEN_SECRET="r" * 31)

    def test_shared_secret_is_rejected(self):
        with self.assertRaises(ValidationError):
            load(ACCESS_TOKEN_SECRET=ACCESS, REFRESH_TOKEN_SECRET=ACCESS)


class TestCookieDefaults(unittest.TestCase):

    def test_development(self):
        settings = load(ACCESS_TOKEN_SECRET=ACCESS, REFRESH_TOKEN_SECRET=REFRESH)
        self.assertFalse(settings.cookie_secure)
        self.assertEqual(settings.cookie_samesite, "lax")

    def test_production(self):
        settings = load(ACCESS_TOKEN_SECRET=ACCESS, REFRESH_TOKEN_SECRET=REFRESH, ENVIRONMENT="production")
        self.assertTrue(settings.cookie_secure)
        self.assertEqual(settings.cookie_samesite, "strict")


if __name__ == "__main__":
    unittest.main()
