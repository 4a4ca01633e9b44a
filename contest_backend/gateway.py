"""
Payment gateway adapter for Stripe payment intents and webhook verification.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import stripe

from contest_backend.errors import (
    DependencyUnavailable,
    GatewaySignatureInvalid,
    NotFound,
)

logger = logging.getLogger(__name__)

PAYMENT_FAILED_EVENT = "payment_intent.payment_failed"


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass
class GatewayEvent:
    id: Optional[str]
    type: str
    object_id: Optional[str]


class PaymentGateway(Protocol):
    """Operations the submission workflow needs from the payment processor."""

    initialized: bool

    def create_intent(
        self, amount_minor_units: int, currency: str, metadata: dict
    ) -> PaymentIntent:
        ...

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        ...

    def verify_notification(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        ...


def _plain(obj: Any) -> dict:
    if not obj:
        return {}
    return {key: obj[key] for key in obj.keys()}


def construct_event(
    payload: bytes, signature: Optional[str], webhook_secret: Optional[str]
) -> GatewayEvent:
    """
    Verify a signed webhook payload with the Stripe SDK.

    Anything that does not verify raises GatewaySignatureInvalid and is never
    interpreted as an event.
    """
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise GatewaySignatureInvalid("Webhook secret not configured")
    if not signature:
        raise GatewaySignatureInvalid("Missing Stripe-Signature header")
    try:
        event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise GatewaySignatureInvalid(f"Webhook Error: {exc}") from exc
    except ValueError as exc:
        logger.warning("Webhook payload is not valid JSON: %s", exc)
        raise GatewaySignatureInvalid("Webhook Error: invalid payload") from exc

    data_object = event["data"]["object"]
    return GatewayEvent(
        id=event["id"] if "id" in event else None,
        type=event["type"],
        object_id=data_object["id"] if "id" in data_object else None,
    )


class StripePaymentGateway:
    """Stripe-backed gateway. Calls fail fast; nothing is retried here."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str] = None,
        *,
        timeout_seconds: float = 10.0,
    ):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is required for StripePaymentGateway")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        self.initialized = True

    @staticmethod
    def _to_intent(obj: Any) -> PaymentIntent:
        return PaymentIntent(
            id=obj["id"],
            status=obj["status"],
            amount=obj["amount"],
            currency=obj["currency"],
            client_secret=obj["client_secret"] if "client_secret" in obj else None,
            metadata=_plain(obj["metadata"] if "metadata" in obj else None),
        )

    def create_intent(
        self, amount_minor_units: int, currency: str, metadata: dict
    ) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount_minor_units,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata={key: str(value) for key, value in metadata.items()},
            )
        except stripe.StripeError as exc:
            logger.error("Failed to create payment intent: %s", exc)
            raise DependencyUnavailable("Failed to create payment intent") from exc
        logger.info("Payment intent created: %s", intent["id"])
        return self._to_intent(intent)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) == "resource_missing":
                raise NotFound("Payment intent not found") from exc
            logger.error("Payment intent lookup rejected: %s", exc)
            raise DependencyUnavailable("Payment verification failed") from exc
        except stripe.StripeError as exc:
            logger.error("Payment gateway unavailable: %s", exc)
            raise DependencyUnavailable("Payment gateway unavailable") from exc
        return self._to_intent(intent)

    def verify_notification(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        return construct_event(payload, signature, self.webhook_secret)


class InMemoryPaymentGateway:
    """
    Test double holding intents in memory. Webhooks are still verified with
    the Stripe SDK, so tests must sign payloads the way Stripe does.
    """

    def __init__(self, webhook_secret: Optional[str] = "whsec_test"):
        self.webhook_secret = webhook_secret
        self.intents: dict[str, PaymentIntent] = {}
        self.initialized = True
        self.unavailable = False

    def create_intent(
        self, amount_minor_units: int, currency: str, metadata: dict
    ) -> PaymentIntent:
        self._check_available()
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = PaymentIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=amount_minor_units,
            currency=currency,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            metadata={key: str(value) for key, value in metadata.items()},
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        self._check_available()
        intent = self.intents.get(intent_id)
        if intent is None:
            raise NotFound("Payment intent not found")
        return intent

    def verify_notification(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        return construct_event(payload, signature, self.webhook_secret)

    def set_status(self, intent_id: str, status: str) -> None:
        """Simulate the client completing (or failing) payment with Stripe."""
        self.intents[intent_id].status = status

    def _check_available(self) -> None:
        if self.unavailable:
            raise DependencyUnavailable("Payment gateway unavailable")
