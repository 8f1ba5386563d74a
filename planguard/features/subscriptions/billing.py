"""
Billing provider collaborator.

The transition engine only needs three things from the provider: a
checkout session for paid plans, cancel-at-period-end toggling, and
authenticated webhooks. Provider failures surface as BillingError.
"""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from planguard.config import settings
from planguard.core.exceptions import BillingError, InvalidWebhookSignature
from planguard.core.metrics import billing_requests_total

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class BillingClient(Protocol):
    async def create_checkout_session(
        self,
        *,
        price_id: str,
        tenant_id: str,
        plan_id: str,
        billing_cycle: str,
        customer_id: str | None = None,
    ) -> CheckoutSession:
        ...

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        ...

    async def cancel_subscription(self, subscription_id: str) -> None:
        ...

    def verify_webhook(self, payload: bytes, signature_header: str | None) -> dict[str, Any]:
        ...


def _parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise InvalidWebhookSignature("Malformed webhook timestamp")
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise InvalidWebhookSignature("Malformed webhook signature header")
    return timestamp, signatures


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """HMAC-SHA256 over "{timestamp}.{payload}", hex encoded."""
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


class StripeBillingClient:
    """Thin Stripe REST client (form-encoded requests, JSON responses)."""

    def __init__(
        self,
        api_key: str | None,
        webhook_secret: str | None,
        base_url: str = "https://api.stripe.com/v1",
        timeout: float = 30.0,
        tolerance_seconds: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.tolerance_seconds = tolerance_seconds
        self._transport = transport

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            billing_requests_total.labels(operation=operation, status="not_configured").inc()
            raise BillingError(
                "Billing provider is not configured",
                details={"operation": operation},
            )

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.api_key, ""),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, data=data)
        except httpx.HTTPError as exc:
            billing_requests_total.labels(operation=operation, status="transport_error").inc()
            logger.error("billing_request_failed", operation=operation, error=str(exc))
            raise BillingError(
                "Billing provider unreachable",
                details={"operation": operation, "error": str(exc)},
            ) from exc

        if response.status_code >= 400:
            billing_requests_total.labels(operation=operation, status="error").inc()
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            logger.error(
                "billing_request_rejected",
                operation=operation,
                status_code=response.status_code,
                provider_message=message,
            )
            raise BillingError(
                "Billing provider rejected the request",
                details={
                    "operation": operation,
                    "status_code": response.status_code,
                    "provider_message": message,
                },
            )

        billing_requests_total.labels(operation=operation, status="ok").inc()
        return response.json()

    async def create_checkout_session(
        self,
        *,
        price_id: str,
        tenant_id: str,
        plan_id: str,
        billing_cycle: str,
        customer_id: str | None = None,
    ) -> CheckoutSession:
        data = {
            "mode": "subscription",
            "line_items[0][price]": price_id,
            "line_items[0][quantity]": 1,
            "success_url": settings.checkout_success_url,
            "cancel_url": settings.checkout_cancel_url,
            "client_reference_id": tenant_id,
            "metadata[tenant_id]": tenant_id,
            "metadata[plan_id]": plan_id,
            "metadata[billing_cycle]": billing_cycle,
        }
        if customer_id:
            data["customer"] = customer_id

        body = await self._request("create_checkout_session", "POST", "/checkout/sessions", data)
        return CheckoutSession(id=body["id"], url=body["url"])

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        await self._request(
            "set_cancel_at_period_end",
            "POST",
            f"/subscriptions/{subscription_id}",
            {"cancel_at_period_end": "true" if cancel else "false"},
        )

    async def cancel_subscription(self, subscription_id: str) -> None:
        await self._request("cancel_subscription", "DELETE", f"/subscriptions/{subscription_id}")

    def verify_webhook(self, payload: bytes, signature_header: str | None) -> dict[str, Any]:
        """
        Authenticate a webhook body and return the decoded event.

        Raises:
            InvalidWebhookSignature: missing/invalid signature or stale timestamp
            BillingError: no webhook secret configured
        """
        if not self.webhook_secret:
            raise BillingError("Webhook secret is not configured")
        if not signature_header:
            raise InvalidWebhookSignature("Missing Stripe-Signature header")

        timestamp, signatures = _parse_signature_header(signature_header)

        if abs(time.time() - timestamp) > self.tolerance_seconds:
            raise InvalidWebhookSignature(
                "Webhook timestamp outside tolerance",
                details={"tolerance_seconds": self.tolerance_seconds},
            )

        expected = sign_payload(payload, self.webhook_secret, timestamp)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise InvalidWebhookSignature("Webhook signature mismatch")

        try:
            return json.loads(payload)
        except ValueError:
            raise InvalidWebhookSignature("Webhook payload is not valid JSON")


_client: StripeBillingClient | None = None


def get_billing_client() -> BillingClient:
    """FastAPI dependency; overridden in tests."""
    global _client
    if _client is None:
        _client = StripeBillingClient(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            base_url=settings.stripe_api_base,
            timeout=settings.billing_timeout_seconds,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )
    return _client
