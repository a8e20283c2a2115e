"""
Locust load test suite

Run scenarios:
  locust -f locustfile.py --tags concurrency   # Departure overbooking race
  locust -f locustfile.py --tags throughput    # Availability cache
  locust -f locustfile.py --tags callbacks     # Webhook replays
  locust -f locustfile.py                      # All tests

Tokens are minted locally with the engine's SECRET_KEY, the way the
identity service would issue them.
"""

import random
from datetime import date, timedelta

from locust import HttpUser, task, between, tag, events

from booking_engine.core.config import get_settings
from booking_engine.core.security import create_access_token
from booking_engine.core.signing import sign

settings = get_settings()

ADMIN_HEADERS = {"Authorization": f"Bearer {create_access_token({'sub': 'load-admin', 'is_admin': True})}"}
DEPARTURE = (date.today() + timedelta(days=30)).isoformat()

# Shared state
TOUR_IDS = []
CONCURRENCY_TOUR_ID = None
ISSUED_ORDERS = []


def user_headers() -> dict:
    token = create_access_token({"sub": f"load-{random.randint(10000, 99999)}"})
    return {"Authorization": f"Bearer {token}"}


def guest_contact() -> dict:
    n = random.randint(10000, 99999)
    return {
        "contact_name": f"Guest {n}",
        "contact_email": f"guest_{n}@test.com",
        "contact_phone": f"090{n}00",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Departure under test: {DEPARTURE}")
    print("=" * 60)


def create_tour(client, max_participants: int) -> int:
    resp = client.post(
        "/api/v1/tours",
        json={
            "name": f"Load tour {random.randint(1, 10000)}",
            "price": 1_500_000,
            "max_participants": max_participants,
            "start_dates": [DEPARTURE],
            "transports": [{"name": "bus", "price": 200_000}],
        },
        headers=ADMIN_HEADERS,
    )
    return resp.json()["id"] if resp.status_code == 201 else None


class ConcurrencyUser(HttpUser):
    """
    TEST 1: 100 users race for 10 seats on one departure

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT consumed_seats FROM capacity_records WHERE tour_id = X;
    Should be <= 10 and equal the headcount sum of non-released bookings.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONCURRENCY_TOUR_ID
        self.headers = user_headers() if random.random() < 0.5 else {}
        if CONCURRENCY_TOUR_ID is None:
            CONCURRENCY_TOUR_ID = create_tour(self.client, max_participants=10)
            print(f"\nCreated tour {CONCURRENCY_TOUR_ID} with 10 seats\n")

    @tag("concurrency")
    @task
    def book_limited_seats(self):
        if not CONCURRENCY_TOUR_ID:
            return

        payload = {"tour_id": CONCURRENCY_TOUR_ID, "start_date": DEPARTURE, "headcount": 1}
        if not self.headers:
            payload.update(guest_contact())

        with self.client.post(
            "/api/v1/bookings", json=payload, headers=self.headers, catch_response=True
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: sold out or lost the race
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Availability reads, with and without Redis

    Run: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        if not TOUR_IDS:
            tour_id = create_tour(self.client, max_participants=random.randint(10, 50))
            if tour_id:
                TOUR_IDS.append(tour_id)

    @tag("throughput", "read")
    @task(10)
    def start_dates(self):
        if TOUR_IDS:
            self.client.get(
                f"/api/v1/tours/{random.choice(TOUR_IDS)}/start-dates",
                name="/api/v1/tours/{id}/start-dates",
            )

    @tag("throughput", "read")
    @task(3)
    def tour_detail(self):
        if TOUR_IDS:
            self.client.get(f"/api/v1/tours/{random.choice(TOUR_IDS)}", name="/api/v1/tours/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class CallbackUser(HttpUser):
    """
    TEST 3: Provider delivers each notification several times

    Run: locust -f locustfile.py --tags callbacks -u 20 -r 5 --run-time 30s

    Requires PAYMENT_GATEWAY=sandbox. Every replay must answer 204 (or 409
    once a newer attempt superseded the order), never apply twice.
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = user_headers()
        if not TOUR_IDS:
            tour_id = create_tour(self.client, max_participants=500)
            if tour_id:
                TOUR_IDS.append(tour_id)

    @tag("callbacks")
    @task(1)
    def start_payment(self):
        if not TOUR_IDS:
            return
        resp = self.client.post(
            "/api/v1/bookings",
            json={
                "tour_id": random.choice(TOUR_IDS),
                "start_date": DEPARTURE,
                "headcount": 1,
                "payment_method": "GATEWAY",
            },
            headers=self.headers,
        )
        if resp.status_code != 201:
            return
        booking = resp.json()
        intent = self.client.post(
            f"/api/v1/payments/{booking['id']}/gateway",
            headers=self.headers,
            name="/api/v1/payments/{id}/gateway",
        )
        if intent.status_code == 201:
            ISSUED_ORDERS.append((intent.json()["provider_order_id"], intent.json()["amount"]))

    @tag("callbacks")
    @task(5)
    def deliver_callback(self):
        if not ISSUED_ORDERS:
            return
        order_id, amount = random.choice(ISSUED_ORDERS)
        payload = {
            "partnerCode": settings.GATEWAY_PARTNER_CODE,
            "orderId": order_id,
            "requestId": order_id,
            "amount": amount,
            "transId": random.randint(10**9, 10**10),
            "resultCode": 0,
            "message": "Successful.",
        }
        payload["signature"] = sign(payload, settings.GATEWAY_SECRET_KEY)

        with self.client.post("/api/v1/payments/callback", json=payload, catch_response=True) as resp:
            if resp.status_code in (204, 409):
                resp.success()
            else:
                resp.failure(f"Expected 204/409, got {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Bad input must come back as 4xx, never 5xx

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = user_headers()

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_tour(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"tour_id": 999999, "start_date": DEPARTURE, "headcount": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def zero_headcount(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"tour_id": 1, "start_date": DEPARTURE, "headcount": 0},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (422,))

    @tag("edge")
    @task
    def guest_without_contact(self):
        with self.client.post(
            "/api/v1/bookings",
            json={"tour_id": 1, "start_date": DEPARTURE, "headcount": 1},
            catch_response=True,
        ) as resp:
            self._expect(resp, (404, 422))

    @tag("edge")
    @task
    def forged_callback(self):
        with self.client.post(
            "/api/v1/payments/callback",
            json={"orderId": "BK1-forged", "amount": 1, "transId": 1, "resultCode": 0, "signature": "00"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings", data="not json at all", headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, (400, 422))
