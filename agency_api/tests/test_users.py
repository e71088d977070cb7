import unittest
from unittest.mock import MagicMock

from agency_api.errors import NotFoundError, StorageError, ValidationError
from agency_api.identity import InMemoryIdentityProvider
from agency_api.schemas import CreateUserRequest
from agency_api.tests.support import ApiTestCase
from agency_api.users import UserService


class UserRouteTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.headers = self.auth("user-1", "user-1@example.com")
        self.database.users.upsert(
            "user-1", {"email": "user-1@example.com", "displayName": "One"}
        )

    def test_owner_reads_profile(self):
        response = self.client.get("/api/users/user-1", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["displayName"], "One")

    def test_other_users_profile_is_forbidden(self):
        response = self.client.get("/api/users/user-2", headers=self.headers)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json()["message"], "You can only access your own user data"
        )
        self.assertEqual(self.client.get("/api/users/user-1").status_code, 401)

    def test_missing_profile(self):
        headers = self.auth("ghost")
        response = self.client.get("/api/users/ghost", headers=headers)
        self.assertEqual(response.status_code, 404)

    def test_update_pushes_identity_and_profile(self):
        response = self.client.put(
            "/api/users/user-1",
            json={"displayName": "Renamed", "photoURL": "https://img/x.png", "password": "s3cret!"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["displayName"], "Renamed")
        self.assertEqual(data["photoURL"], "https://img/x.png")
        self.assertNotIn("password", data)
        self.assertEqual(self.identity.users["user-1"].display_name, "Renamed")
        self.assertEqual(self.identity.users["user-1"].photo_url, "https://img/x.png")

    def test_blank_display_name_is_ignored(self):
        before = self.identity.users["user-1"].display_name
        response = self.client.put(
            "/api/users/user-1", json={"displayName": ""}, headers=self.headers
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["displayName"], "One")
        self.assertEqual(self.database.users.get("user-1").display_name, "One")
        self.assertEqual(self.identity.users["user-1"].display_name, before)

    def test_delete_removes_identity_and_profile(self):
        response = self.client.delete("/api/users/user-1", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("user-1", self.identity.users)
        self.assertIsNone(self.database.users.get("user-1"))

    def test_list_users_projection(self):
        response = self.client.get("/api/users", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        users = response.json()["data"]
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0]["firebaseUid"], "user-1")
        self.assertNotIn("role", users[0])
        self.assertEqual(self.client.get("/api/users").status_code, 401)

    def test_set_role(self):
        response = self.client.post(
            "/api/admin/set-role",
            json={"uid": "user-1", "role": "admin"},
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"uid": "user-1", "role": "admin"})
        self.assertEqual(self.identity.claims["user-1"], {"admin": True})
        self.assertEqual(self.database.users.get("user-1").role, "admin")

    def test_set_role_validation(self):
        bad_role = self.client.post(
            "/api/admin/set-role",
            json={"uid": "user-1", "role": "owner"},
            headers=self.admin(),
        )
        self.assertEqual(bad_role.status_code, 400)
        missing = self.client.post(
            "/api/admin/set-role", json={"role": "user"}, headers=self.admin()
        )
        self.assertEqual(missing.status_code, 400)
        forbidden = self.client.post(
            "/api/admin/set-role",
            json={"uid": "user-1", "role": "admin"},
            headers=self.headers,
        )
        self.assertEqual(forbidden.status_code, 403)

    def test_set_role_unknown_profile(self):
        self.identity.issue_token("no-profile")
        response = self.client.post(
            "/api/admin/set-role",
            json={"uid": "no-profile", "role": "user"},
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 404)

    def test_create_user(self):
        response = self.client.post(
            "/api/admin/create-user",
            json={
                "email": "new@example.com",
                "password": "pw123456",
                "displayName": "New",
                "customClaims": {"admin": True},
            },
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 201)
        uid = response.json()["data"]["uid"]
        profile = self.database.users.get(uid)
        self.assertEqual(profile.display_name, "New")
        self.assertEqual(profile.role, "user")
        self.assertEqual(profile.status, "active")
        self.assertEqual(self.identity.claims[uid], {"admin": True})

    def test_create_user_requires_identifier(self):
        response = self.client.post(
            "/api/admin/create-user", json={"password": "x"}, headers=self.admin()
        )
        self.assertEqual(response.status_code, 400)

    def test_create_duplicate_uid_conflicts(self):
        response = self.client.post(
            "/api/admin/create-user", json={"uid": "user-1"}, headers=self.admin()
        )
        self.assertEqual(response.status_code, 409)


class UserServiceTests(unittest.TestCase):
    def test_profile_write_failure_is_not_fatal(self):
        users = MagicMock()
        users.upsert.side_effect = StorageError("Failed to save user", detail="timeout")
        service = UserService(users, InMemoryIdentityProvider())
        created = service.create_user(CreateUserRequest(email="x@example.com"))
        self.assertEqual(created.email, "x@example.com")
        users.upsert.assert_called_once()

    def test_get_unknown_user(self):
        users = MagicMock()
        users.get.return_value = None
        with self.assertRaises(NotFoundError):
            UserService(users, InMemoryIdentityProvider()).get("nobody")

    def test_set_role_rejects_unknown_role(self):
        service = UserService(MagicMock(), InMemoryIdentityProvider())
        with self.assertRaises(ValidationError):
            service.set_role("u1", "superuser")


if __name__ == "__main__":
    unittest.main()
