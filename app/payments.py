"""Payment gateway adapter.

The booking flow only needs three calls (checkout session, payment intent
lookup, refund) plus webhook verification. ``StripeGateway`` implements them
with the Stripe SDK; tests swap in a fake with the same methods.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import stripe

from app.config import (
    DEPOSIT_PERCENTAGE, GATEWAY_TIMEOUT_SECONDS, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET,
)

logger = logging.getLogger(__name__)

# Maximum age of a webhook in seconds (5 minutes)
WEBHOOK_TOLERANCE_SECONDS = 300


class GatewayError(Exception):
    """Any failure talking to the payment processor."""


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""


@dataclass
class CheckoutSession:
    id: str
    url: str | None
    payment_intent: str | None

    @property
    def reference(self) -> str:
        # The intent is created lazily by the processor; fall back to the session
        return self.payment_intent or self.id


@dataclass
class PaymentIntent:
    id: str
    charge_ref: str | None


def calculate_deposit(total_price: int, percentage: float = DEPOSIT_PERCENTAGE) -> int:
    """Deposit in minor units, rounded half up: 4000 -> 2000, 1999 -> 1000."""
    amount = Decimal(total_price) * Decimal(str(percentage))
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway:
    """Interface the booking service depends on."""

    def create_checkout_session(self, amount: int, currency: str, metadata: dict,
                                description: str, success_url: str, cancel_url: str) -> CheckoutSession:
        raise NotImplementedError

    def retrieve_payment_intent(self, ref: str) -> PaymentIntent:
        raise NotImplementedError

    def create_refund(self, charge_ref: str, idempotency_key: str | None = None) -> str:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: str) -> dict:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str | None = STRIPE_SECRET_KEY,
                 webhook_secret: str | None = STRIPE_WEBHOOK_SECRET,
                 timeout: float = GATEWAY_TIMEOUT_SECONDS):
        self.webhook_secret = webhook_secret
        self.client = None
        if not api_key:
            logger.warning("STRIPE_SECRET_KEY not set; payment calls will fail until configured")
        else:
            self.client = stripe.StripeClient(
                api_key,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=1,
            )

    def _require_client(self) -> stripe.StripeClient:
        if self.client is None:
            raise GatewayError("Stripe client not configured")
        return self.client

    def create_checkout_session(self, amount, currency, metadata, description, success_url, cancel_url):
        client = self._require_client()
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": description},
                    "unit_amount": amount,
                },
                "quantity": 1,
            }],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            # Copy onto the intent so payment_failed events carry the slot too
            "payment_intent_data": {"metadata": metadata},
        }
        try:
            session = client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            raise GatewayError(f"checkout session failed: {e}") from e
        return CheckoutSession(id=session.id, url=session.url, payment_intent=session.payment_intent)

    def retrieve_payment_intent(self, ref):
        client = self._require_client()
        try:
            intent = client.payment_intents.retrieve(ref)
        except stripe.StripeError as e:
            raise GatewayError(f"payment intent lookup failed: {e}") from e
        return PaymentIntent(id=intent.id, charge_ref=intent.latest_charge)

    def create_refund(self, charge_ref, idempotency_key=None):
        client = self._require_client()
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        try:
            refund = client.refunds.create(params={"charge": charge_ref}, options=options)
        except stripe.StripeError as e:
            raise GatewayError(f"refund failed: {e}") from e
        return refund.id

    def construct_event(self, payload, signature):
        if not self.webhook_secret:
            raise WebhookSignatureError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise WebhookSignatureError("No signature")
        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret, tolerance=WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e
        return event.to_dict()
