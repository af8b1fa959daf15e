"""
Locust Load Test Suite

The server must run with REQUIRE_ACCOUNT_VERIFICATION=false so that
registered load users can log in straight away.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test public listing cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

PASSWORD = "loadtest123"

# Shared state
LISTING_IDS = []
CONTESTED_LISTING_ID = os.environ.get("LOCUST_LISTING_ID")
CONFLICTS = {"won": 0, "lost": 0}


def random_email():
    return f"load_{random.randint(100000, 999999)}@test.com"


def day(offset: int) -> str:
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return (today + timedelta(days=offset)).isoformat()


def register_and_login(client) -> dict:
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "first_name": "Load",
        "last_name": "Tester",
        "email": email,
        "password": PASSWORD,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Contested listing: {CONTESTED_LISTING_ID or 'first public property'}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print(f"\nContested stay: {CONFLICTS['won']} booked, {CONFLICTS['lost']} rejected")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users, one listing, the same nights

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE property_id = X AND status IN ('pending', 'confirmed');
    Should be 1
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)

        if not CONTESTED_LISTING_ID:
            resp = self.client.get("/api/v1/listings/public?kind=property")
            if resp.status_code == 200 and resp.json()["listings"]:
                globals()["CONTESTED_LISTING_ID"] = resp.json()["listings"][0]["id"]

    @tag("concurrency")
    @task
    def book_same_nights(self):
        """All users fight for the same three nights."""
        if not CONTESTED_LISTING_ID or not self.headers:
            return

        with self.client.post("/api/v1/bookings/",
            data={
                "property_id": CONTESTED_LISTING_ID,
                "check_in": day(60),
                "check_out": day(63),
                "guests": 2,
                "total_price": 300,
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                CONFLICTS["won"] += 1
                resp.success()
            elif resp.status_code == 400:
                CONFLICTS["lost"] += 1
                resp.success()  # Expected: dates taken or high demand
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_public_cached(self):
        kind = random.choice(["property", "tour"])
        resp = self.client.get(f"/api/v1/listings/public?kind={kind}",
            name="/api/v1/listings/public [cached]")
        if resp.status_code == 200:
            for listing in resp.json().get("listings", []):
                if listing["id"] not in LISTING_IDS:
                    LISTING_IDS.append(listing["id"])

    @tag("throughput", "read")
    @task(3)
    def check_availability(self):
        if LISTING_IDS:
            start = random.randint(1, 90)
            self.client.get(
                f"/api/v1/listings/{random.choice(LISTING_IDS)}/availability"
                f"?check_in={day(start)}&check_out={day(start + 3)}",
                name="/api/v1/listings/{id}/availability")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    The system should answer every one of these with a 4xx.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_listing(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 999999, "check_in": day(5), "check_out": day(7),
                  "guests": 1, "total_price": 100},
            headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def past_check_in(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 1, "check_in": day(-3), "check_out": day(-1),
                  "guests": 1, "total_price": 100},
            headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def reversed_dates(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 1, "check_in": day(9), "check_out": day(7),
                  "guests": 1, "total_price": 100},
            headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def too_many_guests(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 1, "check_in": day(5), "check_out": day(7),
                  "guests": 50, "total_price": 100},
            headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def both_listing_ids(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 1, "tour_package_id": 2, "check_in": day(5),
                  "check_out": day(7), "guests": 1, "total_price": 100},
            headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/bookings/",
            data={"property_id": 1, "check_in": day(5), "check_out": day(7),
                  "guests": 1, "total_price": 100},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some availability checks, occasional bookings.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register_and_login(self.client)

    @task(50)
    def browse(self):
        resp = self.client.get("/api/v1/listings/public?kind=property")
        if resp.status_code == 200:
            for listing in resp.json().get("listings", []):
                if listing["id"] not in LISTING_IDS:
                    LISTING_IDS.append(listing["id"])

    @task(20)
    def view_listing(self):
        if LISTING_IDS:
            self.client.get(f"/api/v1/listings/{random.choice(LISTING_IDS)}",
                name="/api/v1/listings/{id}")

    @task(10)
    def book(self):
        if LISTING_IDS and self.headers:
            start = random.randint(1, 180)
            nights = random.randint(1, 7)
            self.client.post("/api/v1/bookings/",
                data={
                    "property_id": random.choice(LISTING_IDS),
                    "check_in": day(start),
                    "check_out": day(start + nights),
                    "guests": random.randint(1, 4),
                    "total_price": 100 * nights,
                },
                headers=self.headers)

    @task(5)
    def my_bookings(self):
        if self.headers:
            self.client.get("/api/v1/bookings/?page=1&limit=10", headers=self.headers)
