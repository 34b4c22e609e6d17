import tempfile
import threading
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from backend.hms_auth.auth.hashing import bcrypt_context
from backend.hms_auth.main import create_app
from backend.hms_auth.models.Account import Account, HashScheme
from tests.support import ADMIN_EMAIL, ADMIN_PASSWORD, FakeClock, make_settings

COOKIE = "refreshToken"


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.clock = FakeClock()
        self.settings = make_settings(tmp.name)
        self.app = create_app(self.settings, clock=self.clock)

        self.client = TestClient(self.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def signup(self, email="a@b.com", password="Passw0rd!", name="Ana"):
        return self.client.post("/auth/signup", json={"name": name, "email": email, "password": password})

    def login(self, email="a@b.com", password="Passw0rd!"):
        return self.client.post("/auth/login", json={"email": email, "password": password})

    def bearer(self, token):
        return {"Authorization": f"Bearer {token}"}

    def use_cookie(self, value):
        # Replace whatever the jar holds with exactly this refresh cookie
        self.client.cookies.clear()
        self.client.cookies.set(COOKIE, value)

    def admin_token(self):
        resp = self.login(ADMIN_EMAIL, ADMIN_PASSWORD)
        self.assertEqual(resp.status_code, 200)
        self.client.cookies.clear()
        return resp.json()["access_token"]


class TestLogin(ApiTestCase):

    def test_login_issues_access_token_and_refresh_cookie(self):
        self.assertEqual(self.signup().status_code, 201)

        resp = self.login()
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["role"], "user")
        self.assertEqual(body["token_type"], "bearer")
        self.assertNotIn("refresh_token", body)

        set_cookie = resp.headers["set-cookie"]
        self.assertIn(f"{COOKIE}=", set_cookie)
        self.assertIn("HttpOnly", set_cookie)

        claims = self.app.state.issuer.verify_access(body["access_token"])
        self.assertEqual(claims.account_id, body["account"]["id"])
        self.assertEqual(claims.role.value, body["role"])

    def test_invalid_credentials_do_not_reveal_which_part_was_wrong(self):
        self.signup()
        wrong_secret = self.login(password="nope")
        unknown_email = self.login(email="nobody@b.com")

        self.assertEqual(wrong_secret.status_code, 400)
        self.assertEqual(unknown_email.status_code, 400)
        self.assertEqual(wrong_secret.json(), unknown_email.json())
        self.assertEqual(wrong_secret.json()["error"]["code"], "invalid_credentials")
        self.assertNotIn("set-cookie", wrong_secret.headers)

    def test_legacy_bcrypt_account_can_login(self):
        with Session(self.app.state.engine) as session:
            session.add(Account(
                name="Old Timer",
                email="old@b.com",
                hashed_secret=bcrypt_context.hash("Leg4cy!pass"),
                hash_scheme=HashScheme.BCRYPT,
            ))
            session.commit()

        resp = self.login(email="old@b.com", password="Leg4cy!pass")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["account"]["email"], "old@b.com")
        account_id = resp.json()["account"]["id"]
        token = resp.json()["access_token"]
        self.assertEqual(self.login(email="old@b.com", password="wrong").status_code, 400)

        # Login verifies only; the stored hash changes with the next secret change
        with Session(self.app.state.engine) as session:
            self.assertEqual(session.get(Account, account_id).hash_scheme, HashScheme.BCRYPT)

        resp = self.client.post(
            "/auth/password",
            headers=self.bearer(token),
            json={"current_password": "Leg4cy!pass", "new_password": "N3w-secret"},
        )
        self.assertEqual(resp.status_code, 200)
        with Session(self.app.state.engine) as session:
            self.assertEqual(session.get(Account, account_id).hash_scheme, HashScheme.ARGON2)
        self.assertEqual(self.login(email="old@b.com", password="N3w-secret").status_code, 200)

    def test_login_is_case_insensitive_on_email(self):
        self.signup(email="a@b.com")
        self.assertEqual(self.login(email="A@B.COM").status_code, 200)

    def test_inactive_account_cannot_login(self):
        token = self.admin_token()
        resp = self.client.post(
            "/accounts",
            headers=self.bearer(token),
            json={"name": "Dr. Who", "email": "doc@b.com", "password": "Passw0rd!", "role": "doctor", "account_status": "pending"},
        )
        self.assertEqual(resp.status_code, 201)

        resp = self.login(email="doc@b.com")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"]["code"], "account_inactive")


class TestSignup(ApiTestCase):

    def test_signup_creates_active_user(self):
        resp = self.signup()
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["role"], "user")
        self.assertEqual(resp.json()["account_status"], "active")
        self.assertNotIn("hashed_secret", resp.json())

    def test_signup_cannot_pick_a_privileged_role(self):
        resp = self.client.post(
            "/auth/signup",
            json={"name": "Eve", "email": "eve@b.com", "password": "Passw0rd!", "role": "doctor"},
        )
        self.assertEqual(resp.status_code, 403)

    def test_duplicate_email(self):
        self.signup()
        resp = self.signup(email="A@b.com")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"]["code"], "conflict")

    def test_short_password_is_rejected(self):
        self.assertEqual(self.signup(password="123").status_code, 422)


class TestSessionVerifier(ApiTestCase):

    def test_no_token(self):
        resp = self.client.get("/auth/me")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "missing_token")

    def test_malformed_token(self):
        resp = self.client.get("/auth/me", headers=self.bearer("garbage"))
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"]["code"], "token_invalid")

    def test_refresh_token_is_not_accepted_as_bearer(self):
        self.signup()
        self.login()
        resp = self.client.get("/auth/me", headers=self.bearer(self.client.cookies[COOKIE]))
        self.assertEqual(resp.status_code, 403)

    def test_expired_token_asks_for_refresh(self):
        self.signup()
        token = self.login().json()["access_token"]
        self.clock.advance(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        resp = self.client.get("/auth/me", headers=self.bearer(token))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "refresh_required")
        self.assertIn("invalid_token", resp.headers["www-authenticate"])

    def test_role_gate(self):
        self.signup()
        user_token = self.login().json()["access_token"]

        resp = self.client.get("/admin/dashboard", headers=self.bearer(user_token))
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"]["code"], "forbidden")

        resp = self.client.get("/admin/dashboard", headers=self.bearer(self.admin_token()))
        self.assertEqual(resp.status_code, 200)


class TestRefreshLifecycle(ApiTestCase):

    def test_expired_access_token_recovered_by_refresh(self):
        self.signup(email="a@b.com", password="Passw0rd!")
        resp = self.login(email="a@b.com", password="Passw0rd!")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["role"], "user")
        old_token = resp.json()["access_token"]

        self.clock.advance(minutes=16)
        self.assertEqual(self.client.get("/auth/me", headers=self.bearer(old_token)).status_code, 401)

        resp = self.client.post("/auth/refresh")
        self.assertEqual(resp.status_code, 200)
        new_token = resp.json()["access_token"]
        self.assertNotEqual(new_token, old_token)

        resp = self.client.get("/auth/me", headers=self.bearer(new_token))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["email"], "a@b.com")

    def test_refresh_rotates_the_cookie(self):
        self.signup()
        self.login()
        first = self.client.cookies[COOKIE]

        self.assertEqual(self.client.post("/auth/refresh").status_code, 200)
        second = self.client.cookies[COOKIE]
        self.assertNotEqual(first, second)

        # Replaying the consumed cookie fails and clears it
        self.use_cookie(first)
        resp = self.client.post("/auth/refresh")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"]["code"], "reauthentication_required")
        self.assertIn(f'{COOKIE}=""', resp.headers["set-cookie"])

        # The rotated cookie is still good
        self.use_cookie(second)
        self.assertEqual(self.client.post("/auth/refresh").status_code, 200)

    def test_refresh_without_cookie(self):
        resp = self.client.post("/auth/refresh")
        self.assertEqual(resp.status_code, 401)

    def test_concurrent_refresh_with_one_cookie(self):
        self.signup()
        self.login()
        cookie = self.client.cookies[COOKIE]

        # Separate clients so the two requests share nothing but the cookie value
        clients = [TestClient(self.app, cookies={COOKIE: cookie}) for _ in range(2)]
        for client in clients:
            self.addCleanup(client.close)
        barrier = threading.Barrier(len(clients))
        statuses = []

        def refresh(client):
            barrier.wait()
            statuses.append(client.post("/auth/refresh").status_code)

        threads = [threading.Thread(target=refresh, args=(c,)) for c in clients]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(statuses), [200, 401])

    def test_logout_revokes_refresh_cookie(self):
        self.signup()
        self.login()
        cookie = self.client.cookies[COOKIE]

        resp = self.client.post("/auth/logout")
        self.assertEqual(resp.status_code, 200)

        self.use_cookie(cookie)
        resp = self.client.post("/auth/refresh")
        self.assertEqual(resp.status_code, 401)

    def test_logout_is_idempotent(self):
        self.assertEqual(self.client.post("/auth/logout").status_code, 200)
        self.assertEqual(self.client.post("/auth/logout").status_code, 200)

    def test_logout_all(self):
        self.signup()
        self.login()
        first = self.client.cookies[COOKIE]
        token = self.login().json()["access_token"]

        resp = self.client.post("/auth/logout-all", headers=self.bearer(token))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["revoked"], 2)

        self.use_cookie(first)
        self.assertEqual(self.client.post("/auth/refresh").status_code, 401)

    def test_suspension_blocks_refresh(self):
        self.signup()
        resp = self.login()
        user_id = resp.json()["account"]["id"]
        user_token = resp.json()["access_token"]
        cookie = self.client.cookies[COOKIE]

        admin = self.admin_token()
        resp = self.client.patch(
            f"/accounts/{user_id}/status",
            headers=self.bearer(admin),
            json={"account_status": "suspended", "notes": "billing dispute"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["account_status"], "suspended")

        # Access tokens are stateless and live until they expire
        self.assertEqual(self.client.get("/auth/me", headers=self.bearer(user_token)).status_code, 200)

        self.use_cookie(cookie)
        self.assertEqual(self.client.post("/auth/refresh").status_code, 401)
        self.assertEqual(self.login().status_code, 403)


class TestPasswordManagement(ApiTestCase):

    def test_change_password_revokes_sessions(self):
        self.signup()
        token = self.login().json()["access_token"]
        cookie = self.client.cookies[COOKIE]

        resp = self.client.post(
            "/auth/password",
            headers=self.bearer(token),
            json={"current_password": "Passw0rd!", "new_password": "N3wPassw0rd!"},
        )
        self.assertEqual(resp.status_code, 200)

        self.use_cookie(cookie)
        self.assertEqual(self.client.post("/auth/refresh").status_code, 401)
        self.assertEqual(self.login().status_code, 400)
        self.assertEqual(self.login(password="N3wPassw0rd!").status_code, 200)

    def test_change_password_requires_current_password(self):
        self.signup()
        token = self.login().json()["access_token"]
        resp = self.client.post(
            "/auth/password",
            headers=self.bearer(token),
            json={"current_password": "wrong", "new_password": "N3wPassw0rd!"},
        )
        self.assertEqual(resp.status_code, 400)

    def test_forgot_and_reset_password(self):
        self.signup()

        resp = self.client.post("/auth/forgot-password", json={"email": "a@b.com"})
        self.assertEqual(resp.status_code, 200)
        reset_token = resp.json()["reset_token"]

        resp = self.client.post("/auth/reset-password", json={"token": reset_token, "new_password": "R3set!pass"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.login(password="R3set!pass").status_code, 200)

        # Single use
        resp = self.client.post("/auth/reset-password", json={"token": reset_token, "new_password": "Again!pass1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["code"], "invalid_reset_token")

    def test_forgot_password_does_not_reveal_unknown_email(self):
        resp = self.client.post("/auth/forgot-password", json={"email": "nobody@b.com"})
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("reset_token", resp.json())

    def test_reset_token_expires(self):
        self.signup()
        reset_token = self.client.post("/auth/forgot-password", json={"email": "a@b.com"}).json()["reset_token"]
        self.clock.advance(minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES + 1)

        resp = self.client.post("/auth/reset-password", json={"token": reset_token, "new_password": "R3set!pass"})
        self.assertEqual(resp.status_code, 400)


class TestAccountsAdmin(ApiTestCase):

    def test_admin_lists_and_filters_accounts(self):
        self.signup()
        admin = self.admin_token()

        resp = self.client.get("/accounts", headers=self.bearer(admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual({a["email"] for a in resp.json()}, {ADMIN_EMAIL, "a@b.com"})

        resp = self.client.get("/accounts", headers=self.bearer(admin), params={"role": "admin"})
        self.assertEqual([a["email"] for a in resp.json()], [ADMIN_EMAIL])

    def test_non_admin_cannot_administer(self):
        self.signup()
        token = self.login().json()["access_token"]
        self.assertEqual(self.client.get("/accounts", headers=self.bearer(token)).status_code, 403)
        self.assertEqual(self.client.get("/audit/log", headers=self.bearer(token)).status_code, 403)

    def test_delete_account(self):
        user_id = self.signup().json()["id"]
        admin = self.admin_token()

        resp = self.client.delete(f"/accounts/{user_id}", headers=self.bearer(admin))
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(self.client.get(f"/accounts/{user_id}", headers=self.bearer(admin)).status_code, 404)
        self.assertEqual(self.login().status_code, 400)

    def test_admin_cannot_delete_self(self):
        admin = self.admin_token()
        admin_id = self.app.state.issuer.verify_access(admin).account_id
        self.assertEqual(self.client.delete(f"/accounts/{admin_id}", headers=self.bearer(admin)).status_code, 403)

    def test_sweep_endpoint(self):
        self.signup()
        self.login()
        self.admin_token()
        self.clock.advance(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS + 1)

        # Both sessions above are now expired; this login adds a live one
        admin = self.admin_token()
        resp = self.client.post("/accounts/sessions/sweep", headers=self.bearer(admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["deleted"], 2)

    def test_audit_trail_records_logins(self):
        self.signup()
        self.login()
        self.login(password="wrong")
        admin = self.admin_token()

        actions = [e["action"] for e in self.client.get("/audit/log", headers=self.bearer(admin)).json()]
        self.assertIn("login_success", actions)
        self.assertIn("login_failed", actions)

        resp = self.client.get("/audit/verify", headers=self.bearer(admin))
        self.assertEqual(resp.json()["valid"], True)


class TestUnexpectedErrors(ApiTestCase):

    def test_storage_failure_is_a_generic_500(self):
        failure = OperationalError("SELECT 1", {}, Exception("connection lost"))
        with TestClient(self.app, raise_server_exceptions=False) as client:
            with patch("backend.hms_auth.auth.service.AuthService.login", side_effect=failure):
                with self.assertLogs("backend.hms_auth", level="ERROR"):
                    resp = client.post("/auth/login", json={"email": "a@b.com", "password": "x"})

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": {"code": "internal_error", "message": "Internal server error"}})


if __name__ == "__main__":
    unittest.main()
