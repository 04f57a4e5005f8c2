"""
Locust Load Test Suite

Event creation needs an admin account. Start the API with ADMIN_DEFAULT_EMAIL /
ADMIN_DEFAULT_PASSWORD set and pass the same values to Locust:

  ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=changeme123 locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "changeme123")
CONCURRENCY_SEATS = 10

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def attendee():
    n = random.randint(1000, 9999)
    return {"name": f"Load User {n}", "email": f"attendee_{n}@test.com", "mobile": f"555-{n}"}


def future_date(max_days=90):
    return (datetime.now(timezone.utc) + timedelta(days=random.randint(1, max_days))).isoformat()


def login_headers(client, email, password):
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def register_and_login(client):
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "name": "Load Tester",
        "email": email,
        "password": "loadtest123",
    })
    return login_headers(client, email, "loadtest123")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: concurrency event gets {CONCURRENCY_SEATS} seats (admin: {ADMIN_EMAIL})")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(quantity) FROM bookings WHERE event_id = X;
    Should be <= 10, and available_seats + that sum == total_seats.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)

        if not CONCURRENCY_EVENT_ID:
            admin_headers = login_headers(self.client, ADMIN_EMAIL, ADMIN_PASSWORD)
            resp = self.client.post("/api/v1/events/",
                json={
                    "title": "Concurrency Test Event",
                    "description": f"{CONCURRENCY_SEATS} seats only",
                    "date": future_date(30),
                    "location": "Test",
                    "total_seats": CONCURRENCY_SEATS,
                    "price": "10.00",
                },
                headers=admin_headers,
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["id"]
                print(f"\nCreated event {CONCURRENCY_EVENT_ID} with {CONCURRENCY_SEATS} seats\n")

    @tag("concurrency")
    @task
    def book_limited_seats(self):
        """All users fight for the same seats."""
        if not CONCURRENCY_EVENT_ID or not self.headers:
            return

        with self.client.post("/api/v1/bookings/",
            json={"event_id": CONCURRENCY_EVENT_ID, "quantity": 1, **attendee()},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 400 and resp.json().get("code") == "INSUFFICIENT_CAPACITY":
                resp.success()  # Expected: sold out
            elif resp.status_code in (409, 503):
                resp.success()  # Retry budget or deadline exhausted under load
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_availability(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}/availability",
                name="/api/v1/events/{id}/availability")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def _expect(self, payload, allowed, headers=None):
        with self.client.post("/api/v1/bookings/",
            json=payload,
            headers=self.headers if headers is None else headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self._expect({"event_id": 999999, "quantity": 1, **attendee()}, [404])

    @tag("edge")
    @task
    def negative_quantity(self):
        self._expect({"event_id": 1, "quantity": -5, **attendee()}, [400])

    @tag("edge")
    @task
    def zero_quantity(self):
        self._expect({"event_id": 1, "quantity": 0, **attendee()}, [400])

    @tag("edge")
    @task
    def huge_quantity(self):
        self._expect({"event_id": 1, "quantity": 999999, **attendee()}, [400, 404])

    @tag("edge")
    @task
    def missing_attendee(self):
        self._expect({"event_id": 1, "quantity": 1}, [400, 404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        self._expect({"event_id": 1, "quantity": 1, **attendee()}, [401], headers={})


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some bookings, the occasional admin creating an event.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register_and_login(self.client)
        self.admin_headers = login_headers(self.client, ADMIN_EMAIL, ADMIN_PASSWORD)

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

    @task(10)
    def book_seats(self):
        if EVENT_IDS and self.headers:
            self.client.post("/api/v1/bookings/",
                json={
                    "event_id": random.choice(EVENT_IDS),
                    "quantity": random.randint(1, 3),
                    **attendee(),
                },
                headers=self.headers)

    @task(3)
    def my_bookings(self):
        if self.headers:
            self.client.get("/api/v1/bookings/", headers=self.headers)

    @task(1)
    def create_event(self):
        if self.admin_headers:
            resp = self.client.post("/api/v1/events/",
                json={
                    "title": f"Event {random.randint(1, 10000)}",
                    "description": "Test event",
                    "date": future_date(),
                    "location": "Venue",
                    "total_seats": random.randint(10, 500),
                    "price": f"{random.randint(5, 150)}.00",
                },
                headers=self.admin_headers)
            if resp.status_code == 201:
                EVENT_IDS.append(resp.json()["id"])
