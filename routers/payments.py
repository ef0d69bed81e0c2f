import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.booking_service import BookingService
from app.deps import get_booking_service, get_payment_gateway
from app.payments import WebhookSignatureError

logger = logging.getLogger(__name__)

router = APIRouter()

HANDLED_EVENTS = {
    "checkout.session.completed",
    "payment_intent.payment_failed",
    "checkout.session.expired",
}

@router.post("/webhook")
async def payment_webhook(
    request: Request,
    gateway=Depends(get_payment_gateway),
    service: BookingService = Depends(get_booking_service),
):
    """
    Signature-verified gateway callback. Delivery is at-least-once, so every
    branch is safe to replay:
      - checkout.session.completed      -> confirm the pending booking
      - payment_intent.payment_failed   -> cancel the pending booking
      - checkout.session.expired        -> cancel the pending booking
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        event = gateway.construct_event(payload, signature)
    except WebhookSignatureError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    object_id = obj.get("id")
    metadata = obj.get("metadata") or None

    if event_type not in HANDLED_EVENTS:
        logger.info("Unhandled event type: %s", event_type)
    elif not object_id:
        logger.warning("%s event without an object id; acknowledged", event_type)
    elif event_type == "checkout.session.completed":
        if metadata and metadata.get("booking_id"):
            service.confirm_payment(metadata, obj.get("payment_intent"))
        else:
            logger.warning("Checkout %s completed without a booking_id; acknowledged", object_id)
    elif event_type == "payment_intent.payment_failed":
        service.fail_payment(object_id, metadata)
    else:
        service.fail_payment(obj.get("payment_intent") or object_id, metadata)

    return {"received": True}
