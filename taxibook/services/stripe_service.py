"""
Stripe payment wrapper
All amounts are dollars on our side and cents on Stripe's.
"""

import logging
from typing import Optional

import stripe

from ..config import STRIPE_CURRENCY, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from ..models import Booking

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY


class PaymentError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def from_cents(amount: int) -> float:
    return round(amount / 100, 2)


def _booking_metadata(booking: Booking, **extra) -> dict:
    metadata = {
        "booking_id": str(booking.id),
        "booking_number": booking.booking_number,
        "customer_email": booking.customer_email,
    }
    metadata.update({k: str(v) for k, v in extra.items() if v is not None})
    return metadata


class StripeService:
    def _ensure_configured(self):
        if not stripe.api_key:
            raise PaymentError("Payment processing is not configured", "not_configured")

    def _call(self, action: str, fn, *args, **kwargs):
        self._ensure_configured()
        try:
            return fn(*args, **kwargs)
        except stripe.CardError as e:
            logger.warning(f"💳 Card declined during {action}: {e.user_message}")
            raise PaymentError(e.user_message or "Your card was declined", e.code) from e
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe error during {action}: {e}")
            raise PaymentError(e.user_message or "Payment processing failed", e.code) from e

    # ============================================
    # Payment intents
    # ============================================

    def create_payment_intent(
        self, booking: Booking, amount: Optional[float] = None, capture_method: str = "manual"
    ):
        amount = booking.total_amount if amount is None else amount
        params = {
            "amount": to_cents(amount),
            "currency": STRIPE_CURRENCY,
            "capture_method": capture_method,
            "receipt_email": booking.customer_email,
            "description": f"Booking {booking.booking_number}",
            "metadata": _booking_metadata(booking),
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        if booking.stripe_customer_id:
            params["customer"] = booking.stripe_customer_id
            if booking.save_payment_method:
                params["setup_future_usage"] = "off_session"
        return self._call("create_payment_intent", stripe.PaymentIntent.create, **params)

    def retrieve_payment_intent(self, intent_id: str):
        return self._call("retrieve_payment_intent", stripe.PaymentIntent.retrieve, intent_id)

    def capture(self, intent_id: str, amount: Optional[float] = None):
        params = {}
        if amount is not None:
            params["amount_to_capture"] = to_cents(amount)
        intent = self._call("capture", stripe.PaymentIntent.capture, intent_id, **params)
        logger.info(f"✅ Captured payment intent {intent_id}")
        return intent

    def cancel(self, intent_id: str):
        intent = self._call("cancel", stripe.PaymentIntent.cancel, intent_id)
        logger.info(f"Voided payment intent {intent_id}")
        return intent

    def refund(self, intent_id: str, amount: Optional[float] = None, reason: Optional[str] = None):
        params = {"payment_intent": intent_id, "reason": "requested_by_customer"}
        if amount is not None:
            params["amount"] = to_cents(amount)
        if reason:
            params["metadata"] = {"reason": reason[:500]}
        refund = self._call("refund", stripe.Refund.create, **params)
        logger.info(f"✅ Refunded {amount if amount is not None else 'full amount'} on {intent_id}")
        return refund

    def charge_now(
        self,
        booking: Booking,
        payment_method_id: str,
        amount: Optional[float] = None,
        description: Optional[str] = None,
    ):
        """Create and confirm an automatic-capture payment in one call"""
        amount = booking.total_amount if amount is None else amount
        params = {
            "amount": to_cents(amount),
            "currency": STRIPE_CURRENCY,
            "payment_method": payment_method_id,
            "confirm": True,
            "capture_method": "automatic",
            "receipt_email": booking.customer_email,
            "description": description or f"Booking {booking.booking_number}",
            "metadata": _booking_metadata(booking),
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        }
        if booking.stripe_customer_id:
            params["customer"] = booking.stripe_customer_id
            if booking.save_payment_method:
                params["setup_future_usage"] = "off_session"
        intent = self._call("charge_now", stripe.PaymentIntent.create, **params)
        if intent.status != "succeeded":
            raise PaymentError(f"Payment not completed (status: {intent.status})", intent.status)
        return intent

    # ============================================
    # Customers & saved cards
    # ============================================

    def get_or_create_customer(self, email: str, name: Optional[str] = None) -> str:
        existing = self._call("list_customers", stripe.Customer.list, email=email, limit=1)
        if existing.data:
            return existing.data[0].id
        customer = self._call("create_customer", stripe.Customer.create, email=email, name=name)
        logger.info(f"Created Stripe customer {customer.id} for {email}")
        return customer.id

    def create_setup_intent(self, customer_id: str, booking: Booking):
        return self._call(
            "create_setup_intent",
            stripe.SetupIntent.create,
            customer=customer_id,
            usage="off_session",
            metadata=_booking_metadata(booking),
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        )

    def retrieve_setup_intent(self, setup_intent_id: str):
        return self._call("retrieve_setup_intent", stripe.SetupIntent.retrieve, setup_intent_id)

    def charge_saved_method(self, booking: Booking, amount: Optional[float] = None):
        """Charge the card saved for post-service billing"""
        if not booking.stripe_customer_id or not booking.stripe_payment_method_id:
            raise PaymentError("No saved payment method for this booking", "no_payment_method")
        amount = booking.total_amount if amount is None else amount
        intent = self._call(
            "charge_saved_method",
            stripe.PaymentIntent.create,
            amount=to_cents(amount),
            currency=STRIPE_CURRENCY,
            customer=booking.stripe_customer_id,
            payment_method=booking.stripe_payment_method_id,
            off_session=True,
            confirm=True,
            description=f"Booking {booking.booking_number}",
            metadata=_booking_metadata(booking, charge="post_service"),
        )
        if intent.status != "succeeded":
            raise PaymentError(f"Payment not completed (status: {intent.status})", intent.status)
        return intent

    # ============================================
    # Webhooks
    # ============================================

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]):
        if not STRIPE_WEBHOOK_SECRET:
            raise PaymentError("Webhook secret not configured", "not_configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
        except ValueError as e:
            raise PaymentError("Invalid payload", "invalid_payload") from e
        except stripe.SignatureVerificationError as e:
            raise PaymentError("Invalid signature", "invalid_signature") from e
