"""
Stripe Webhook Handler
Keeps booking payment state in sync with Stripe
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .. import events
from ..database import get_db
from ..events import BookingEvent, format_money
from ..models import Booking, Transaction
from ..services.booking_events import dispatch_booking_events, queue_event
from ..services.stripe_service import PaymentError, StripeService, from_cents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["webhooks"])


def _booking_for_intent(db: Session, intent_id: str):
    if not intent_id:
        return None
    return db.query(Booking).filter(Booking.stripe_payment_intent_id == intent_id).first()


def _has_transaction(db: Session, stripe_id: str, types: tuple) -> bool:
    return (
        db.query(Transaction.id)
        .filter(Transaction.stripe_transaction_id == stripe_id, Transaction.type.in_(types))
        .first()
        is not None
    )


def handle_payment_succeeded(db: Session, intent: dict) -> bool:
    booking = _booking_for_intent(db, intent.get("id"))
    if not booking:
        logger.info(f"No booking for payment intent {intent.get('id')}, ignoring")
        return False
    if booking.payment_status == "captured" or not intent.get("amount_received"):
        return False

    amount = from_cents(intent["amount_received"])
    booking.payment_status = "captured"
    if booking.status == "pending":
        booking.status = "confirmed"
    if not _has_transaction(db, intent["id"], ("payment", "capture")):
        db.add(
            Transaction(
                booking_id=booking.id,
                type="payment",
                amount=amount,
                status="succeeded",
                stripe_transaction_id=intent["id"],
                notes="Recorded from Stripe webhook",
            )
        )
    db.commit()

    queue_event(
        db,
        BookingEvent(
            trigger=events.PAYMENT_CAPTURED,
            booking_id=booking.id,
            transaction_id=intent["id"],
            amount=amount,
        ),
    )
    logger.info(f"✅ Webhook: {booking.booking_number} captured {format_money(amount)}")
    return True


def handle_payment_failed(db: Session, intent: dict) -> bool:
    booking = _booking_for_intent(db, intent.get("id"))
    if not booking or booking.payment_status == "captured":
        return False

    amount = from_cents(intent.get("amount") or 0)
    error = (intent.get("last_payment_error") or {}).get("message")
    booking.payment_status = "failed"
    db.add(
        Transaction(
            booking_id=booking.id,
            type="payment",
            amount=amount,
            status="failed",
            stripe_transaction_id=intent["id"],
            notes=error,
        )
    )
    db.commit()

    queue_event(
        db,
        BookingEvent(
            trigger=events.PAYMENT_FAILED,
            booking_id=booking.id,
            transaction_id=intent["id"],
            amount=amount,
        ),
    )
    logger.warning(f"❌ Webhook: payment failed for {booking.booking_number}: {error}")
    return True


def handle_charge_refunded(db: Session, charge: dict) -> bool:
    booking = _booking_for_intent(db, charge.get("payment_intent"))
    if not booking:
        return False

    refunded_total = from_cents(charge.get("amount_refunded") or 0)
    full_refund = (charge.get("amount_refunded") or 0) >= (charge.get("amount") or 0)
    booking.payment_status = "refunded" if full_refund else "partially_refunded"

    # Refunds issued from the admin API are already recorded
    delta = round(refunded_total - (booking.total_refunded or 0), 2)
    if delta <= 0:
        db.commit()
        return False

    refunds = (charge.get("refunds") or {}).get("data") or []
    refund_id = refunds[0]["id"] if refunds else charge.get("id")
    booking.total_refunded = refunded_total
    db.add(
        Transaction(
            booking_id=booking.id,
            type="refund" if full_refund else "partial_refund",
            amount=delta,
            status="succeeded",
            stripe_transaction_id=refund_id,
            notes="Refunded in Stripe dashboard",
        )
    )
    db.commit()

    queue_event(
        db,
        BookingEvent(
            trigger=events.PAYMENT_REFUNDED,
            booking_id=booking.id,
            transaction_id=refund_id,
            amount=delta,
            refund_reason="Refund processed",
        ),
    )
    logger.info(f"💸 Webhook: {format_money(delta)} refunded on {booking.booking_number}")
    return True


HANDLERS = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "charge.refunded": handle_charge_refunded,
}


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Verify the Stripe signature and apply the event to its booking"""
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        StripeService().construct_webhook_event(payload, signature)
    except PaymentError as e:
        logger.warning(f"⚠️ Rejected Stripe webhook: {e.message}")
        raise HTTPException(status_code=400, detail=e.message) from e

    event = json.loads(payload)
    event_type = event.get("type")
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.debug(f"Unhandled Stripe event: {event_type}")
        return {"status": "success"}

    logger.info(f"📥 Stripe webhook: {event_type} ({event.get('id')})")
    handler(db, event["data"]["object"])
    await dispatch_booking_events(db)
    return {"status": "success"}
