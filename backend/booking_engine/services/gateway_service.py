"""
HTTP payment gateway for the redirect-payment provider.
Implements the PaymentGateway interface over the provider's create-payment API.

Wire flow:
  POST GATEWAY_ENDPOINT  {partnerCode, orderId, requestId, amount, orderInfo,
                          redirectUrl, ipnUrl, requestType, extraData, signature}
  <- {resultCode, message, payUrl}

resultCode 0 means the payment page was created; anything else, a transport
error, or a malformed answer is a GatewayError. Nothing is persisted on
failure, so the caller can simply initiate again.
"""

import time
from typing import Optional

import httpx

from booking_engine.core.config import get_settings
from booking_engine.core.errors import GatewayError
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import gateway_latency
from booking_engine.core.signing import sign
from booking_engine.services.interfaces.gateway import IntentRequest, PaymentGateway

logger = get_logger(__name__)


class HttpPaymentGateway(PaymentGateway):
    """
    Provider-backed gateway.

    Use when:
    - Real payments are taken (staging / production)
    """

    name = "http"

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.settings = get_settings()
        self._client = client

    def _build_payload(self, request: IntentRequest) -> dict:
        payload = {
            "partnerCode": self.settings.GATEWAY_PARTNER_CODE,
            "accessKey": self.settings.GATEWAY_ACCESS_KEY,
            "orderId": request.provider_order_id,
            "requestId": request.provider_order_id,
            "amount": request.amount,
            "orderInfo": request.description,
            "redirectUrl": self.settings.GATEWAY_REDIRECT_URL,
            "ipnUrl": self.settings.GATEWAY_IPN_URL,
            "requestType": "captureWallet",
            "extraData": "",
        }
        payload["signature"] = sign(payload, self.settings.GATEWAY_SECRET_KEY)
        return payload

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.settings.GATEWAY_ENDPOINT, json=payload)
        async with httpx.AsyncClient(timeout=self.settings.GATEWAY_TIMEOUT) as client:
            return await client.post(self.settings.GATEWAY_ENDPOINT, json=payload)

    async def create_intent(self, request: IntentRequest) -> str:
        payload = self._build_payload(request)
        start = time.perf_counter()
        try:
            response = await self._post(payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "gateway_request_failed",
                booking_id=request.booking_id,
                order_id=request.provider_order_id,
                error=str(e),
            )
            raise GatewayError("Payment provider is unavailable") from e
        finally:
            gateway_latency.observe(time.perf_counter() - start)

        if not isinstance(body, dict):
            logger.error(
                "gateway_response_malformed",
                booking_id=request.booking_id,
                order_id=request.provider_order_id,
                body_type=type(body).__name__,
            )
            raise GatewayError("Payment provider returned an unexpected response")

        if body.get("resultCode") != 0 or not body.get("payUrl"):
            logger.error(
                "gateway_request_refused",
                booking_id=request.booking_id,
                order_id=request.provider_order_id,
                result_code=body.get("resultCode"),
                message=body.get("message"),
            )
            raise GatewayError(f"Payment provider refused the order: {body.get('message', 'unknown error')}")

        return body["payUrl"]
