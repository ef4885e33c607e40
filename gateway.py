"""
Payment gateway adapter over Stripe payment intents.

The adapter keeps no state of its own; the order flow owns durability.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
import structlog

from config import Settings
from errors import GatewayUnavailable, InvalidSignature, ValidationError

log = structlog.get_logger(__name__)

SUCCEEDED = "succeeded"
EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class Intent:
    id: str
    status: str
    client_secret: Optional[str] = None
    payment_method: Optional[str] = None
    amount: Optional[int] = None


@dataclass(frozen=True)
class GatewayEvent:
    type: str
    intent_id: Optional[str] = None
    payment_method: Optional[str] = None


class PaymentGateway:
    """Interface the order flow depends on."""

    def create_intent(self, amount: int, currency: str, metadata: Dict[str, str],
                      description: Optional[str] = None) -> Intent:
        raise NotImplementedError

    def retrieve_intent(self, intent_id: str) -> Intent:
        raise NotImplementedError

    def verify_webhook_signature(self, payload: bytes, signature: str, secret: str) -> GatewayEvent:
        raise NotImplementedError


def _payment_method_id(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return getattr(value, "id", None)


def to_gateway_event(event: Any) -> GatewayEvent:
    """Reduce a decoded event (``stripe.Event`` or plain dict) to what the order flow reads."""
    event_type = event.get("type") if isinstance(event, dict) else None
    data = event.get("data") if isinstance(event, dict) else None
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(event_type, str) or not isinstance(obj, dict):
        raise ValidationError("Invalid webhook payload")
    return GatewayEvent(
        type=event_type,
        intent_id=obj.get("id"),
        payment_method=_payment_method_id(obj.get("payment_method")),
    )


def parse_event(payload: str) -> GatewayEvent:
    """Decode an event body without checking its signature."""
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    return to_gateway_event(data)


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, timeout: float = 10.0, max_retries: int = 2,
                 client: Optional[stripe.StripeClient] = None):
        self.max_retries = max_retries
        # retries are opted into per call, see retrieve_intent
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            api_key=settings.stripe_secret_key,
            timeout=settings.stripe_timeout_seconds,
            max_retries=settings.stripe_max_retries,
        )

    def create_intent(self, amount, currency, metadata, description=None):
        params = {"amount": amount, "currency": currency, "metadata": metadata}
        if description:
            params["description"] = description
        # never retried: a duplicate intent would mean a duplicate charge attempt
        try:
            intent = self.client.v1.payment_intents.create(
                params=params, options={"max_network_retries": 0}
            )
        except stripe.StripeError as exc:
            log.error("intent_create_failed", error=str(exc), amount=amount)
            raise GatewayUnavailable("Error creating payment intent") from exc
        return Intent(
            id=intent.id,
            status=intent.status,
            client_secret=intent.client_secret,
            amount=intent.amount,
        )

    def retrieve_intent(self, intent_id):
        try:
            intent = self.client.v1.payment_intents.retrieve(
                intent_id, options={"max_network_retries": self.max_retries}
            )
        except stripe.APIConnectionError as exc:
            log.error("intent_retrieve_failed", intent_id=intent_id,
                      attempts=self.max_retries + 1)
            raise GatewayUnavailable("Payment gateway unreachable") from exc
        except stripe.StripeError as exc:
            log.error("intent_retrieve_failed", intent_id=intent_id, error=str(exc))
            raise GatewayUnavailable("Error retrieving payment intent") from exc
        return Intent(
            id=intent.id,
            status=intent.status,
            payment_method=_payment_method_id(intent.payment_method),
            amount=intent.amount,
        )

    def verify_webhook_signature(self, payload, signature, secret):
        if not signature or not secret:
            raise InvalidSignature("Missing webhook signature or secret")
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as exc:
            log.warning("webhook_signature_rejected", error=str(exc))
            raise InvalidSignature() from exc
        except (ValueError, TypeError, AttributeError) as exc:
            # signed, but not a JSON object stripe can build an Event from
            log.warning("webhook_payload_rejected", error=str(exc))
            raise ValidationError("Invalid webhook payload") from exc
        return to_gateway_event(event)
