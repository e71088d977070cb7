import unittest
from datetime import timedelta

from agency_api.db import new_id
from agency_api.models import Contact, utcnow
from agency_api.tests.support import ApiTestCase


def contact_payload(**overrides) -> dict:
    payload = {
        "name": "Jane",
        "email": "jane@example.com",
        "phone": "01712345678",
        "subject": "New website",
        "message": "We need a landing page.",
    }
    payload.update(overrides)
    return payload


class ContactSubmissionTests(ApiTestCase):
    def test_submit(self):
        response = self.client.post("/api/contacts", json=contact_payload())
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["status"], "new")
        self.assertNotIn("readAt", data)
        self.assertEqual(self.database.contacts.count(), 1)

    def test_submit_requires_every_field(self):
        response = self.client.post("/api/contacts", json=contact_payload(subject=""))
        self.assertEqual(response.status_code, 400)
        self.assertIn("All fields are required", response.json()["message"])

    def test_submit_rejects_bad_email_and_phone(self):
        bad_email = self.client.post(
            "/api/contacts", json=contact_payload(email="jane@")
        )
        self.assertEqual(bad_email.json()["message"], "Invalid email format")
        short_phone = self.client.post(
            "/api/contacts", json=contact_payload(phone="12345")
        )
        self.assertEqual(short_phone.json()["message"], "Invalid phone number")
        self.assertEqual(self.database.contacts.count(), 0)


class ContactInboxTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        now = utcnow()
        self.ids = []
        for offset, status in ((0, "new"), (1, "new"), (2, "replied"), (45, "archived")):
            contact = self.database.contacts.insert(
                Contact(
                    name=f"Sender {offset}",
                    email="s@example.com",
                    phone="01712345678",
                    subject="Hello",
                    message="Hi",
                    status=status,
                    created_at=now - timedelta(days=offset),
                )
            )
            self.ids.append(contact.id)

    def test_inbox_requires_admin(self):
        self.assertEqual(self.client.get("/api/contacts").status_code, 401)
        response = self.client.get("/api/contacts", headers=self.auth("user-1"))
        self.assertEqual(response.status_code, 403)

    def test_list_with_status_counts(self):
        response = self.client.get(
            "/api/contacts", params={"limit": 2}, headers=self.admin()
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["count"], 2)
        self.assertEqual(body["totalCount"], 4)
        self.assertTrue(body["pagination"]["hasMore"])
        self.assertEqual(
            body["statusCounts"], {"new": 2, "read": 0, "replied": 1, "archived": 1}
        )
        self.assertEqual(body["data"][0]["_id"], self.ids[0])

    def test_list_filter_by_status(self):
        response = self.client.get(
            "/api/contacts", params={"status": "new"}, headers=self.admin()
        )
        self.assertEqual(response.json()["totalCount"], 2)
        invalid = self.client.get(
            "/api/contacts", params={"status": "spam"}, headers=self.admin()
        )
        self.assertEqual(invalid.status_code, 400)

    def test_stats(self):
        response = self.client.get("/api/contacts/stats", headers=self.admin())
        data = response.json()["data"]
        self.assertEqual(data["total"], 4)
        self.assertEqual(data["last30Days"], 3)
        self.assertEqual(data["byStatus"]["new"], 2)

    def test_opening_marks_new_as_read(self):
        response = self.client.get(
            f"/api/contacts/{self.ids[0]}", headers=self.admin()
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["status"], "read")
        self.assertIn("readAt", data)

        replied = self.client.get(f"/api/contacts/{self.ids[2]}", headers=self.admin())
        self.assertEqual(replied.json()["data"]["status"], "replied")

    def test_status_updates(self):
        response = self.client.patch(
            f"/api/contacts/{self.ids[1]}/status",
            json={"status": "replied"},
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("repliedAt", response.json()["data"])

        invalid = self.client.patch(
            f"/api/contacts/{self.ids[1]}/status",
            json={"status": "spam"},
            headers=self.admin(),
        )
        self.assertEqual(invalid.status_code, 400)

    def test_unknown_and_invalid_ids(self):
        self.assertEqual(
            self.client.get("/api/contacts/xyz", headers=self.admin()).status_code, 400
        )
        self.assertEqual(
            self.client.get(f"/api/contacts/{new_id()}", headers=self.admin()).status_code,
            404,
        )

    def test_delete(self):
        response = self.client.delete(f"/api/contacts/{self.ids[0]}", headers=self.admin())
        self.assertEqual(response.status_code, 200)
        again = self.client.delete(f"/api/contacts/{self.ids[0]}", headers=self.admin())
        self.assertEqual(again.status_code, 404)

    def test_delete_multiple(self):
        response = self.client.post(
            "/api/contacts/delete-multiple",
            json={"ids": self.ids[:2]},
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["deletedCount"], 2)
        self.assertEqual(self.database.contacts.count(), 2)

    def test_delete_multiple_rejects_any_invalid_id(self):
        response = self.client.post(
            "/api/contacts/delete-multiple",
            json={"ids": [self.ids[0], "bogus"]},
            headers=self.admin(),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.database.contacts.count(), 4)

        empty = self.client.post(
            "/api/contacts/delete-multiple", json={"ids": []}, headers=self.admin()
        )
        self.assertEqual(empty.status_code, 400)


if __name__ == "__main__":
    unittest.main()
