"""
Post-trip tipping: tip links, QR codes and tip payments
"""

import base64
import io
import logging
from datetime import datetime
from typing import Optional

import qrcode
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import FRONTEND_URL
from ..events import format_money
from ..models import Booking, Transaction
from ..security_utils import generate_random_string
from .notification_service import NotificationService
from .pricing_service import suggested_tips
from .stripe_service import PaymentError, StripeService

logger = logging.getLogger(__name__)

TIP_TOKEN_LENGTH = 40


def tip_url(token: str) -> str:
    return f"{FRONTEND_URL}/tip/{token}"


def generate_qr_code(data: str) -> str:
    """Base64 PNG of a QR code for data"""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


class TipService:
    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        self.db = db
        self.stripe = stripe_service or StripeService()

    def get_by_token(self, token: str) -> Booking:
        booking = (
            self.db.query(Booking)
            .filter(Booking.tip_link_token == token, Booking.deleted_at.is_(None))
            .first()
        )
        if not booking:
            raise HTTPException(status_code=404, detail="Tip link not found")
        return booking

    def create_tip_link(self, booking: Booking) -> dict:
        if booking.status != "completed":
            raise HTTPException(status_code=422, detail="Tips can only be requested for completed trips")
        if booking.gratuity_added_at:
            raise HTTPException(status_code=422, detail="This booking has already been tipped")

        if not booking.tip_link_token:
            booking.tip_link_token = generate_random_string(TIP_TOKEN_LENGTH)
        url = tip_url(booking.tip_link_token)
        booking.qr_code_data = generate_qr_code(url)
        booking.tip_link_sent_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"💵 Tip link created for {booking.booking_number}")
        return {"tip_url": url, "token": booking.tip_link_token, "qr_code": booking.qr_code_data}

    async def send_tip_link(self, booking: Booking) -> dict:
        link = self.create_tip_link(booking)
        link["email_sent"] = await NotificationService(self.db).send_tip_request(booking, link["tip_url"])
        return link

    def tip_summary(self, token: str) -> dict:
        booking = self.get_by_token(token)
        if booking.gratuity_added_at:
            raise HTTPException(status_code=410, detail="A tip has already been added for this trip")

        fare = booking.final_fare if booking.final_fare is not None else booking.estimated_fare
        return {
            "booking_number": booking.booking_number,
            "customer_first_name": booking.customer_first_name,
            "pickup_date": booking.pickup_date,
            "pickup_address": booking.pickup_address,
            "dropoff_address": booking.dropoff_address,
            "vehicle_type": booking.vehicle_type.display_name if booking.vehicle_type else None,
            "fare": fare,
            "suggested_tips": suggested_tips(fare or 0),
        }

    async def process_tip(self, token: str, amount: float, payment_method_id: str) -> Booking:
        booking = self.get_by_token(token)
        if booking.gratuity_added_at:
            raise HTTPException(status_code=410, detail="A tip has already been added for this trip")
        if amount <= 0:
            raise HTTPException(status_code=422, detail="Tip amount must be greater than zero")

        try:
            intent = self.stripe.charge_now(
                booking,
                payment_method_id,
                amount=amount,
                description=f"Tip for booking {booking.booking_number}",
            )
        except PaymentError as e:
            logger.warning(f"💳 Tip payment failed for {booking.booking_number}: {e.message}")
            raise HTTPException(status_code=400, detail=e.message) from e

        booking.gratuity_amount = round((booking.gratuity_amount or 0) + amount, 2)
        booking.gratuity_added_at = datetime.utcnow()
        self.db.add(
            Transaction(
                booking_id=booking.id,
                type="tip",
                amount=round(amount, 2),
                status="succeeded",
                stripe_transaction_id=intent.id,
                notes="Post-trip tip",
            )
        )
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Tip of {format_money(amount)} added to {booking.booking_number}")

        await NotificationService(self.db).send_email_notification(
            "tip-thank-you",
            booking,
            {"transaction_amount": format_money(amount), "transaction_id": intent.id},
        )
        return booking
