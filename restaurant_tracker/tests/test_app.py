import unittest

from fastapi.testclient import TestClient

from restaurant_tracker.app import create_app
from restaurant_tracker.config import Settings
from restaurant_tracker.identity import InMemoryIdentityProvider
from restaurant_tracker.store import InMemoryTableClient

IDENTITY_HEADER = "x-amzn-oidc-identity"


def _as(user_id: str) -> dict:
    return {IDENTITY_HEADER: user_id}


class RestaurantApiTests(unittest.TestCase):
    def setUp(self):
        self.table = InMemoryTableClient()
        self.identity = InMemoryIdentityProvider()
        settings = Settings(use_in_memory_backends=True)
        self.client = TestClient(
            create_app(settings, table=self.table, identity=self.identity)
        )

    def _create(self, user_id="alice", **body):
        body.setdefault("name", "Tacos")
        response = self.client.post("/restaurants", json=body, headers=_as(user_id))
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_requests_without_identity_are_unauthorized(self):
        response = self.client.get("/restaurants")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"message": "Unauthorized"})

    def test_create_and_fetch(self):
        created = self._create(cuisineType="Mexican", location="Main St")
        self.assertFalse(created["visited"])
        self.assertNotIn("rating", created)
        self.assertEqual(created["cuisineType"], "Mexican")
        self.assertEqual(created["createdAt"], created["updatedAt"])

        response = self.client.get(
            f"/restaurants/{created['restaurantId']}", headers=_as("alice")
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), created)

    def test_create_validation(self):
        response = self.client.post(
            "/restaurants", json={"location": "Nowhere"}, headers=_as("alice")
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Restaurant name is required"})

        response = self.client.post(
            "/restaurants",
            json={"name": "X", "cuisineType": "Martian"},
            headers=_as("alice"),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Invalid cuisine type"})

    def test_malformed_body_is_bad_request(self):
        response = self.client.post(
            "/restaurants",
            content="not json",
            headers={**_as("alice"), "content-type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Invalid request"})

    def test_other_users_restaurant_is_not_found(self):
        created = self._create()
        path = f"/restaurants/{created['restaurantId']}"
        self.assertEqual(self.client.get(path, headers=_as("bob")).status_code, 404)
        self.assertEqual(
            self.client.put(path, json={"name": "Mine"}, headers=_as("bob")).status_code,
            404,
        )
        self.assertEqual(
            self.client.get(f"{path}/reviews", headers=_as("bob")).status_code, 404
        )
        response = self.client.post(
            f"{path}/reviews", json={"text": "hi"}, headers=_as("bob")
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"message": "Restaurant not found"})

    def test_update_ignores_identity_fields_and_keeps_visited(self):
        created = self._create()
        path = f"/restaurants/{created['restaurantId']}"
        self.client.put(path, json={"visited": True}, headers=_as("alice"))
        response = self.client.put(
            path,
            json={
                "restaurantId": "other",
                "createdAt": "1970-01-01T00:00:00.000Z",
                "visited": False,
                "description": "Late night spot",
            },
            headers=_as("alice"),
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["restaurantId"], created["restaurantId"])
        self.assertEqual(payload["createdAt"], created["createdAt"])
        self.assertTrue(payload["visited"])
        self.assertEqual(payload["description"], "Late night spot")

    def test_update_can_clear_optional_fields(self):
        created = self._create(location="Main St")
        response = self.client.put(
            f"/restaurants/{created['restaurantId']}",
            json={"location": None},
            headers=_as("alice"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("location", response.json())

    def test_rating_flow(self):
        created = self._create()
        path = f"/restaurants/{created['restaurantId']}/rating"

        response = self.client.put(path, json={"rating": 7}, headers=_as("alice"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Rating must be between 0 and 5"})

        response = self.client.put(path, json={}, headers=_as("alice"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Rating is required"})

        response = self.client.put(path, json={"rating": 4.5}, headers=_as("alice"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["rating"], 4.5)
        self.assertTrue(response.json()["visited"])

        missing = self.client.put(
            "/restaurants/nope/rating", json={"rating": 3}, headers=_as("alice")
        )
        self.assertEqual(missing.status_code, 404)

    def test_reviews_flow(self):
        created = self._create()
        path = f"/restaurants/{created['restaurantId']}/reviews"

        response = self.client.post(path, json={"text": ""}, headers=_as("alice"))
        self.assertEqual(response.status_code, 400)

        first = self.client.post(path, json={"text": "good"}, headers=_as("alice"))
        self.assertEqual(first.status_code, 201)
        self.assertEqual(set(first.json()), {"reviewId", "text", "createdAt"})
        self.client.post(path, json={"text": "better"}, headers=_as("alice"))

        reviews = self.client.get(path, headers=_as("alice")).json()["reviews"]
        self.assertEqual(sorted(r["text"] for r in reviews), ["better", "good"])

        restaurant = self.client.get(
            f"/restaurants/{created['restaurantId']}", headers=_as("alice")
        ).json()
        self.assertTrue(restaurant["visited"])

    def test_list_filters_and_pagination(self):
        self._create(name="Luigi", cuisineType="Italian")
        self._create(name="Sakura", cuisineType="Japanese")
        self._create(name="Trattoria", cuisineType="Italian")
        self._create(user_id="bob", name="Mario", cuisineType="Italian")

        response = self.client.get(
            "/restaurants", params={"cuisineType": "Italian"}, headers=_as("alice")
        )
        self.assertEqual(response.status_code, 200)
        names = sorted(r["name"] for r in response.json()["restaurants"])
        self.assertEqual(names, ["Luigi", "Trattoria"])
        self.assertNotIn("nextToken", response.json())

        response = self.client.get(
            "/restaurants", params={"visited": "TRUE"}, headers=_as("alice")
        )
        self.assertEqual(response.json()["restaurants"], [])

        seen = []
        params = {"limit": "2"}
        while True:
            payload = self.client.get(
                "/restaurants", params=params, headers=_as("alice")
            ).json()
            seen.extend(r["name"] for r in payload["restaurants"])
            if "nextToken" not in payload:
                break
            params = {"limit": "2", "nextToken": payload["nextToken"]}
        self.assertEqual(sorted(seen), ["Luigi", "Sakura", "Trattoria"])

    def test_list_rejects_bad_input(self):
        response = self.client.get(
            "/restaurants", params={"cuisineType": "Martian"}, headers=_as("alice")
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.get(
            "/restaurants", params={"nextToken": "garbage!!"}, headers=_as("alice")
        )
        self.assertEqual(response.status_code, 400)

    def test_nan_rating_is_rejected(self):
        created = self._create()
        response = self.client.put(
            f"/restaurants/{created['restaurantId']}/rating",
            content='{"rating": NaN}',
            headers={**_as("alice"), "content-type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Rating must be a number"})

        stored = self.client.get(
            f"/restaurants/{created['restaurantId']}", headers=_as("alice")
        ).json()
        self.assertFalse(stored["visited"])
        self.assertNotIn("rating", stored)

    def test_missing_or_invalid_limit_returns_everything(self):
        for n in range(25):
            self._create(name=f"Place {n}")
        for params in ({}, {"limit": "abc"}, {"limit": "0"}, {"limit": "-3"}):
            response = self.client.get(
                "/restaurants", params=params, headers=_as("alice")
            )
            self.assertEqual(response.status_code, 200)
            payload = response.json()
            self.assertEqual(len(payload["restaurants"]), 25)
            self.assertNotIn("nextToken", payload)

    def test_limit_is_capped(self):
        settings = Settings(use_in_memory_backends=True, max_page_size=2)
        client = TestClient(create_app(settings, table=self.table, identity=self.identity))
        for n in range(3):
            self._create(name=f"Place {n}")
        payload = client.get(
            "/restaurants", params={"limit": "50"}, headers=_as("alice")
        ).json()
        self.assertEqual(len(payload["restaurants"]), 2)
        self.assertIn("nextToken", payload)

    def test_login(self):
        response = self.client.post("/auth/login", json={"email": "alice@example.com"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["message"], "Authentication initiated")
        self.assertEqual(payload["email"], "alice@example.com")
        self.assertTrue(payload["session"])
        self.assertIn("alice@example.com", self.identity.users)

        response = self.client.post("/auth/login", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"message": "Email is required"})


class UnconfiguredLoginTests(unittest.TestCase):
    def test_login_without_user_pool_is_server_error(self):
        settings = Settings(
            use_in_memory_backends=False, user_pool_id=None, user_pool_client_id=None
        )
        client = TestClient(create_app(settings, table=InMemoryTableClient()))
        response = client.post("/auth/login", json={"email": "alice@example.com"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"message": "Server configuration error"})


if __name__ == "__main__":
    unittest.main()
