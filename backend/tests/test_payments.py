"""
Tests for payment initiation, direct settlement and provider callbacks.
"""

import json

import httpx
import pytest
from httpx import AsyncClient

from booking_engine.core.errors import GatewayError
from booking_engine.core.signing import canonical_message, sign, verify
from booking_engine.services.gateway_service import HttpPaymentGateway
from booking_engine.services.interfaces.gateway import IntentRequest, PaymentGateway
from booking_engine.services.strategy_factory import get_payment_gateway
from booking_engine.main import app

from conftest import DEPARTURE, GUEST_CONTACT, signed_callback


class UnavailableGateway(PaymentGateway):
    name = "unavailable"

    async def create_intent(self, request: IntentRequest) -> str:
        raise GatewayError("Payment provider is unavailable")


async def create_booking(client: AsyncClient, tour_id: int, headers=None, **fields) -> dict:
    payload = {"tour_id": tour_id, "start_date": DEPARTURE.isoformat(), "headcount": 2, **fields}
    response = await client.post("/api/v1/bookings", json=payload, headers=headers or {})
    assert response.status_code == 201
    return response.json()


async def start_gateway(client: AsyncClient, booking_id: int, headers) -> dict:
    response = await client.post(f"/api/v1/payments/{booking_id}/gateway", headers=headers)
    assert response.status_code == 201
    return response.json()


async def get_booking(client: AsyncClient, booking_id: int, headers) -> dict:
    return (await client.get(f"/api/v1/bookings/{booking_id}", headers=headers)).json()


# ---- signing ----


def test_canonical_message_sorted_without_signature():
    payload = {"orderId": "BK1", "amount": 100, "signature": "abc", "extraData": None}
    assert canonical_message(payload) == "amount=100&extraData=&orderId=BK1"


def test_signature_verification():
    payload = {"orderId": "BK1", "amount": 100}
    payload["signature"] = sign(payload, "secret")

    assert verify(payload, "secret")
    assert not verify(payload, "other-secret")
    assert not verify({**payload, "amount": 101}, "secret")
    assert not verify({"orderId": "BK1"}, "secret")


# ---- gateway initiation ----


@pytest.mark.asyncio
async def test_gateway_payment_at_creation(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers, payment_method="GATEWAY")

    assert booking["payment_method"] == "GATEWAY"
    assert booking["payment_status"] == "PENDING"
    assert booking["payment_url"].startswith("http://sandbox.test/pay?orderId=BK")


@pytest.mark.asyncio
async def test_gateway_outage_keeps_booking(client: AsyncClient, alice_headers, tour):
    """The booking survives a provider outage; payment can be retried later."""
    app.dependency_overrides[get_payment_gateway] = lambda: UnavailableGateway()

    booking = await create_booking(client, tour.id, alice_headers, payment_method="GATEWAY")
    assert booking["payment_url"] is None
    assert booking["payment_method"] is None

    response = await client.post(f"/api/v1/payments/{booking['id']}/gateway", headers=alice_headers)
    assert response.status_code == 502
    assert response.json()["code"] == "GATEWAY_ERROR"


@pytest.mark.asyncio
async def test_gateway_intent_amount_is_booking_total(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers, transport_name="Limousine")
    intent = await start_gateway(client, booking["id"], alice_headers)

    assert intent["amount"] == 2_200_000
    assert intent["booking_id"] == booking["id"]
    assert intent["provider_order_id"].startswith(f"BK{booking['id']}-")


@pytest.mark.asyncio
async def test_gateway_payment_for_other_users_booking(client: AsyncClient, alice_headers, bob_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    response = await client.post(f"/api/v1/payments/{booking['id']}/gateway", headers=bob_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_no_payment_for_rejected_booking(client: AsyncClient, alice_headers, admin_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    await client.patch(f"/api/v1/bookings/{booking['id']}/reject", json={"reason": "full"}, headers=admin_headers)

    response = await client.post(f"/api/v1/payments/{booking['id']}/gateway", headers=alice_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "PAYMENT_NOT_ALLOWED"


# ---- callbacks ----


@pytest.mark.asyncio
async def test_superseded_intent_callback_is_stale(client: AsyncClient, alice_headers, tour):
    """T1 then T2 issued: a successful callback for T1 is refused, T2 pays."""
    booking = await create_booking(client, tour.id, alice_headers)
    first = await start_gateway(client, booking["id"], alice_headers)
    second = await start_gateway(client, booking["id"], alice_headers)
    assert first["provider_order_id"] != second["provider_order_id"]

    stale = await client.post(
        "/api/v1/payments/callback", json=signed_callback(first["provider_order_id"], first["amount"])
    )
    assert stale.status_code == 409
    assert stale.json() == {"status": "rejected", "reason": "stale_intent"}
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "PENDING"

    applied = await client.post(
        "/api/v1/payments/callback", json=signed_callback(second["provider_order_id"], second["amount"])
    )
    assert applied.status_code == 204

    paid = await get_booking(client, booking["id"], alice_headers)
    assert paid["payment_status"] == "PAID"
    assert paid["paid_at"] is not None
    # Payment never moves the booking itself
    assert paid["status"] == "PENDING"


@pytest.mark.asyncio
async def test_duplicate_callback_acknowledged(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)
    callback = signed_callback(intent["provider_order_id"], intent["amount"])

    assert (await client.post("/api/v1/payments/callback", json=callback)).status_code == 204
    assert (await client.post("/api/v1/payments/callback", json=callback)).status_code == 204
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "PAID"


@pytest.mark.asyncio
async def test_failed_callback_then_retry(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)

    failed = await client.post(
        "/api/v1/payments/callback",
        json=signed_callback(intent["provider_order_id"], intent["amount"], result_code=1006),
    )
    assert failed.status_code == 204
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "FAILED"

    # A late success for the failed attempt does not count
    late = await client.post(
        "/api/v1/payments/callback", json=signed_callback(intent["provider_order_id"], intent["amount"])
    )
    assert late.status_code == 409

    retry = await start_gateway(client, booking["id"], alice_headers)
    ok = await client.post(
        "/api/v1/payments/callback", json=signed_callback(retry["provider_order_id"], retry["amount"])
    )
    assert ok.status_code == 204
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "PAID"


@pytest.mark.asyncio
async def test_callback_with_bad_signature(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)

    callback = signed_callback(intent["provider_order_id"], intent["amount"])
    callback["signature"] = "0" * 64

    response = await client.post("/api/v1/payments/callback", json=callback)
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_signature"
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "PENDING"


@pytest.mark.asyncio
async def test_callback_amount_mismatch(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)

    response = await client.post(
        "/api/v1/payments/callback", json=signed_callback(intent["provider_order_id"], intent["amount"] - 1)
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "amount_mismatch"


@pytest.mark.asyncio
async def test_callback_unknown_order(client: AsyncClient):
    response = await client.post("/api/v1/payments/callback", json=signed_callback("BK404-deadbeef", 1000))
    assert response.status_code == 400
    assert response.json()["reason"] == "unknown_order"


@pytest.mark.asyncio
async def test_callback_malformed(client: AsyncClient):
    response = await client.post("/api/v1/payments/callback", content=b"not json")
    assert response.status_code == 400

    unsigned_garbage = {"hello": "world"}
    unsigned_garbage["signature"] = sign(unsigned_garbage, "sandbox-secret-key")
    response = await client.post("/api/v1/payments/callback", json=unsigned_garbage)
    assert response.status_code == 400
    assert response.json()["reason"] == "malformed_payload"


@pytest.mark.asyncio
async def test_callback_after_switch_to_direct_is_stale(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)

    switched = await client.post(f"/api/v1/payments/{booking['id']}/direct", headers=alice_headers)
    assert switched.json() == {"booking_id": booking["id"], "payment_method": "DIRECT", "payment_status": "PENDING"}

    response = await client.post(
        "/api/v1/payments/callback", json=signed_callback(intent["provider_order_id"], intent["amount"])
    )
    assert response.status_code == 409
    assert (await get_booking(client, booking["id"], alice_headers))["payment_status"] == "PENDING"


@pytest.mark.asyncio
async def test_rejection_voids_pending_gateway_payment(client: AsyncClient, alice_headers, admin_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    intent = await start_gateway(client, booking["id"], alice_headers)

    rejected = await client.patch(
        f"/api/v1/bookings/{booking['id']}/reject", json={"reason": "tour cancelled"}, headers=admin_headers
    )
    assert rejected.json()["payment_status"] == "CANCELLED"

    response = await client.post(
        "/api/v1/payments/callback", json=signed_callback(intent["provider_order_id"], intent["amount"])
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_guest_pays_with_token(client: AsyncClient, tour):
    booking = await create_booking(client, tour.id, **GUEST_CONTACT)
    guest = {"X-Guest-Token": booking["guest_token"]}

    intent = await start_gateway(client, booking["id"], guest)
    response = await client.post(
        "/api/v1/payments/callback", json=signed_callback(intent["provider_order_id"], intent["amount"])
    )
    assert response.status_code == 204
    assert (await get_booking(client, booking["id"], guest))["payment_status"] == "PAID"


# ---- direct payments ----


@pytest.mark.asyncio
async def test_admin_marks_direct_payment_paid(client: AsyncClient, alice_headers, admin_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers, payment_method="DIRECT")

    assert (await client.patch(f"/api/v1/payments/{booking['id']}/paid", headers=alice_headers)).status_code == 403

    response = await client.patch(f"/api/v1/payments/{booking['id']}/paid", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["payment_status"] == "PAID"

    again = await client.patch(f"/api/v1/payments/{booking['id']}/paid", headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_PAID"

    restart = await client.post(f"/api/v1/payments/{booking['id']}/gateway", headers=alice_headers)
    assert restart.status_code == 409
    assert restart.json()["code"] == "ALREADY_PAID"


@pytest.mark.asyncio
async def test_mark_paid_requires_direct_method(client: AsyncClient, alice_headers, admin_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    await start_gateway(client, booking["id"], alice_headers)

    response = await client.patch(f"/api/v1/payments/{booking['id']}/paid", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "NOT_DIRECT_PAYMENT"


@pytest.mark.asyncio
async def test_direct_payment_is_idempotent(client: AsyncClient, alice_headers, tour):
    booking = await create_booking(client, tour.id, alice_headers)
    first = await client.post(f"/api/v1/payments/{booking['id']}/direct", headers=alice_headers)
    second = await client.post(f"/api/v1/payments/{booking['id']}/direct", headers=alice_headers)
    assert first.json() == second.json()


# ---- provider client ----


@pytest.mark.asyncio
async def test_http_gateway_signs_request_and_returns_pay_url():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"resultCode": 0, "message": "Successful.", "payUrl": "https://pay.test/x"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        gateway = HttpPaymentGateway(client=http_client)
        pay_url = await gateway.create_intent(
            IntentRequest(booking_id=7, provider_order_id="BK7-abc", amount=1_500_000, description="Booking #7")
        )

    assert pay_url == "https://pay.test/x"
    assert captured["orderId"] == "BK7-abc"
    assert captured["amount"] == 1_500_000
    assert verify(captured, "sandbox-secret-key")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"resultCode": 21, "message": "Invalid amount"}),
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json=[{"resultCode": 0, "payUrl": "https://pay.test/x"}]),
        httpx.Response(200, json="ok"),
    ],
)
async def test_http_gateway_errors(response):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as http_client:
        gateway = HttpPaymentGateway(client=http_client)
        with pytest.raises(GatewayError):
            await gateway.create_intent(
                IntentRequest(booking_id=7, provider_order_id="BK7-abc", amount=1, description="x")
            )
