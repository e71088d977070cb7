import unittest
from datetime import timedelta

from jose import jwt

from agency_api.auth import SESSION_ALGORITHM, decode_session_token, sign_session_token
from agency_api.models import utcnow
from agency_api.tests.support import ApiTestCase, build_settings


class SessionTokenTests(unittest.TestCase):
    def setUp(self):
        self.settings = build_settings()

    def test_sign_and_decode(self):
        token = sign_session_token("user-1", self.settings)
        self.assertEqual(decode_session_token(token, self.settings), "user-1")

    def test_wrong_secret_is_rejected(self):
        token = sign_session_token("user-1", build_settings(jwt_secret="other"))
        self.assertIsNone(decode_session_token(token, self.settings))

    def test_expired_token_is_rejected(self):
        token = jwt.encode(
            {"uid": "user-1", "exp": utcnow() - timedelta(minutes=1)},
            self.settings.jwt_secret,
            algorithm=SESSION_ALGORITHM,
        )
        self.assertIsNone(decode_session_token(token, self.settings))

    def test_garbage_is_rejected(self):
        self.assertIsNone(decode_session_token("not-a-jwt", self.settings))


class AuthRouteTests(ApiTestCase):
    def test_login_sets_session_cookie_and_creates_profile(self):
        token = self.identity.issue_token("user-1", "user-1@example.com")
        response = self.client.post("/api/login", json={"idToken": token})
        self.assertEqual(response.status_code, 200)
        self.assertIn(self.settings.session_cookie_name, response.cookies)
        profile = response.json()["data"]
        self.assertEqual(profile["firebaseUid"], "user-1")
        self.assertEqual(profile["role"], "user")

        stored = self.database.users.get("user-1")
        self.assertEqual(stored.email, "user-1@example.com")
        self.assertTrue(stored.terms_accepted)

        me = self.client.get("/api/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["uid"], "user-1")
        self.assertEqual(me.json()["data"]["source"], "session")

    def test_login_requires_token(self):
        response = self.client.post("/api/login", json={})
        self.assertEqual(response.status_code, 400)

    def test_login_with_bad_token(self):
        response = self.client.post("/api/login", json={"idToken": "forged"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid or expired token")

    def test_logout_clears_cookie(self):
        token = self.identity.issue_token("user-1")
        self.client.post("/api/login", json={"idToken": token})
        response = self.client.post("/api/logout")
        self.assertEqual(response.status_code, 200)
        self.client.cookies.clear()
        self.assertEqual(self.client.get("/api/me").status_code, 401)

    def test_revoked_token(self):
        token = self.identity.issue_token("user-1")
        self.identity.revoked.add(token)
        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {token}"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json()["message"], "Token revoked. Please reauthenticate."
        )

    def test_invalid_session_cookie_is_anonymous(self):
        self.client.cookies.set(self.settings.session_cookie_name, "garbage")
        self.assertEqual(self.client.get("/api/me").status_code, 401)
        tracked = self.client.get("/api/orders/track/a@x.com")
        self.assertEqual(tracked.status_code, 200)

    def test_stored_admin_role_grants_admin(self):
        self.database.users.upsert("boss", {"role": "admin"})
        response = self.client.get("/api/orders", headers=self.auth("boss"))
        self.assertEqual(response.status_code, 200)
        me = self.client.get("/api/me", headers=self.auth("boss"))
        self.assertTrue(me.json()["data"]["isAdmin"])

    def test_wrong_admin_secret(self):
        response = self.client.get("/api/orders", headers={"x-admin-secret": "nope"})
        self.assertEqual(response.status_code, 401)

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertEqual(
            response.headers["Cross-Origin-Resource-Policy"], "cross-origin"
        )

    def test_unknown_route_uses_envelope(self):
        response = self.client.get("/api/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()["success"])


if __name__ == "__main__":
    unittest.main()
