"""Booking service - Business logic for the booking wizard and admin booking operations"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ... import events
from ...config import FRONTEND_URL
from ...events import BookingEvent, format_money
from ...models import Booking, BookingExtra, Extra, User, VehicleType
from ...services.booking_events import dispatch_booking_events, queue_event
from ...services.maps_service import get_route
from ...services.notification_service import NotificationService
from ...services.pricing_service import PricingService, calculate_fare, calculate_hourly_fare
from ...services.receipt_service import BookingPDFGenerator
from ...services.settings_service import SettingsService
from ...services.stripe_service import PaymentError, StripeService, from_cents
from ...services.tip_service import TipService, tip_url
from .repository import BookingRepository
from .schemas import (
    BookingCreate,
    BookingExtraItem,
    BookingUpdate,
    CompleteSetupRequest,
    ExpenseCreate,
    PriceRequest,
    ProcessPaymentRequest,
    RouteRequest,
)

logger = logging.getLogger(__name__)

# Columns that can't be blanked out through an admin PATCH
REQUIRED_FIELDS = {
    "status",
    "payment_status",
    "customer_first_name",
    "customer_last_name",
    "customer_email",
    "pickup_address",
    "pickup_date",
}


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        self.db = db
        self.repo = BookingRepository()
        self.stripe = stripe_service or StripeService()
        self.settings = SettingsService(db)
        self.pricing = PricingService(db)

    # ============================================================================
    # LOOKUPS
    # ============================================================================

    def get_public_booking(self, booking_number: str) -> Booking:
        booking = self.repo.get_by_number(self.db, booking_number)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    # ============================================================================
    # WIZARD: ROUTE, PRICES, EXTRAS
    # ============================================================================

    def validate_pickup_date(self, pickup_date: datetime, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        minimum_hours = self.settings.get("minimum_booking_hours", 2)
        maximum_days = self.settings.get("maximum_booking_days", 90)

        if pickup_date < now + timedelta(hours=minimum_hours):
            raise HTTPException(
                status_code=422,
                detail=f"Bookings must be made at least {minimum_hours} hours in advance.",
            )
        if pickup_date > now + timedelta(days=maximum_days):
            raise HTTPException(
                status_code=422,
                detail=f"Bookings can only be made up to {maximum_days} days in advance.",
            )

    async def validate_route(self, data: RouteRequest) -> dict:
        if data.pickup_date:
            self.validate_pickup_date(data.pickup_date)
        route = await get_route(data.pickup_address, data.dropoff_address, data.pickup_date)
        return {"valid": True, "route": route}

    async def calculate_prices(self, data: PriceRequest) -> dict:
        if data.booking_type == "hourly":
            if not data.duration_hours:
                raise HTTPException(
                    status_code=422, detail="Duration in hours is required for hourly bookings."
                )
            prices = self.pricing.calculate_prices(0, 0, "hourly", data.duration_hours)
            return {
                "booking_type": "hourly",
                "duration_hours": data.duration_hours,
                "vehicle_types": prices,
            }

        if not data.dropoff_address:
            raise HTTPException(
                status_code=422, detail="Dropoff location is required for one-way bookings."
            )
        route = await get_route(data.pickup_address, data.dropoff_address, data.pickup_date)
        prices = self.pricing.calculate_prices(route["distance"], route["duration"])
        return {"booking_type": "one_way", "route": route, "vehicle_types": prices}

    def list_extras(self, vehicle_type_id: Optional[int] = None) -> list[Extra]:
        extras = self.repo.get_active_extras(self.db)
        if vehicle_type_id is None:
            return extras
        return [e for e in extras if e.is_available_for(vehicle_type_id)]

    def _build_extras(
        self, items: list[BookingExtraItem], vehicle_type: VehicleType
    ) -> tuple[list[BookingExtra], float]:
        """Validate requested extras and snapshot their name and price"""
        if not items:
            return [], 0.0

        available = {
            e.id: e for e in self.repo.get_active_extras(self.db, [i.extra_id for i in items])
        }
        booking_extras = []
        total = 0.0
        for item in items:
            extra = available.get(item.extra_id)
            if extra is None or not extra.is_available_for(vehicle_type.id):
                raise HTTPException(
                    status_code=422,
                    detail=f"Extra {item.extra_id} is not available for this vehicle.",
                )
            if item.quantity > extra.max_quantity:
                raise HTTPException(
                    status_code=422,
                    detail=f"A maximum of {extra.max_quantity} x {extra.name} can be added.",
                )
            line_total = round(extra.price * item.quantity, 2)
            booking_extras.append(
                BookingExtra(
                    extra_id=extra.id,
                    name=extra.name,
                    unit_price=extra.price,
                    quantity=item.quantity,
                    total_price=line_total,
                )
            )
            total += line_total
        return booking_extras, round(total, 2)

    # ============================================================================
    # WIZARD: BOOKING & PAYMENT
    # ============================================================================

    async def create_booking(
        self, data: BookingCreate, now: Optional[datetime] = None
    ) -> tuple[Booking, bool]:
        """
        Create a booking from the wizard.
        Returns (booking, payment_required).
        """
        now = now or datetime.utcnow()
        self.validate_pickup_date(data.pickup_date, now)

        vehicle_type = self.repo.get_active_vehicle_type(self.db, data.vehicle_type_id)
        if not vehicle_type:
            raise HTTPException(status_code=404, detail="Vehicle type not found")

        route = None
        if data.booking_type == "hourly":
            if not data.duration_hours:
                raise HTTPException(
                    status_code=422, detail="Duration in hours is required for hourly bookings."
                )
            if not vehicle_type.hourly_enabled:
                raise HTTPException(
                    status_code=422, detail="This vehicle type does not support hourly bookings."
                )
            if not vehicle_type.allows_hours(data.duration_hours):
                raise HTTPException(
                    status_code=422,
                    detail=(
                        f"Hourly booking must be between {vehicle_type.minimum_hours} and "
                        f"{vehicle_type.maximum_hours} hours for this vehicle."
                    ),
                )
            estimated_fare = calculate_hourly_fare(vehicle_type, data.duration_hours)
        else:
            if not data.dropoff_address:
                raise HTTPException(
                    status_code=422, detail="Dropoff location is required for one-way bookings."
                )
            route = await get_route(data.pickup_address, data.dropoff_address, data.pickup_date)
            estimated_fare = calculate_fare(vehicle_type, route["distance"], route["duration"])

        booking_extras, extras_total = self._build_extras(data.extras, vehicle_type)
        user = self.db.query(User).filter(User.email == data.customer_email).first()

        booking = self.repo.create_booking(
            self.db,
            booking_extras,
            booking_type=data.booking_type,
            user_id=user.id if user else None,
            vehicle_type_id=vehicle_type.id,
            customer_first_name=data.customer_first_name.strip(),
            customer_last_name=data.customer_last_name.strip(),
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            pickup_address=data.pickup_address,
            pickup_lat=data.pickup_lat,
            pickup_lng=data.pickup_lng,
            dropoff_address=data.dropoff_address,
            dropoff_lat=data.dropoff_lat,
            dropoff_lng=data.dropoff_lng,
            pickup_date=data.pickup_date,
            duration_hours=data.duration_hours if data.booking_type == "hourly" else None,
            estimated_distance=route["distance"] if route else None,
            estimated_duration=route["duration"] if route else None,
            route_polyline=route.get("polyline") if route else None,
            estimated_fare=estimated_fare,
            extras_total=extras_total,
            final_fare=estimated_fare,
            gratuity_amount=round(data.gratuity_amount or 0, 2),
            gratuity_added_at=now if data.gratuity_amount else None,
            save_payment_method=data.save_payment_method,
            special_instructions=data.special_instructions,
            flight_number=data.flight_number,
            is_airport_pickup=data.is_airport_pickup,
            is_airport_dropoff=data.is_airport_dropoff,
            additional_data=data.additional_fields or {},
            status="pending",
            payment_status="pending",
        )
        logger.info(
            f"✅ Booking {booking.booking_number} created for {booking.customer_email} "
            f"({booking.booking_type}, {format_money(booking.total_amount)})"
        )

        if data.payment_method_id:
            await self._charge(booking, data.payment_method_id, data.save_payment_method)

        await dispatch_booking_events(self.db)
        return booking, not data.payment_method_id

    async def _charge(self, booking: Booking, payment_method_id: str, save_card: bool = False):
        """Charge the booking total now; marks the payment failed and raises 400 on decline"""
        amount = booking.total_amount
        booking.save_payment_method = save_card
        try:
            if save_card and not booking.stripe_customer_id:
                booking.stripe_customer_id = self.stripe.get_or_create_customer(
                    booking.customer_email, booking.customer_name
                )
            intent = self.stripe.charge_now(booking, payment_method_id, amount=amount)
        except PaymentError as e:
            booking.payment_status = "failed"
            self.db.commit()
            queue_event(
                self.db,
                BookingEvent(trigger=events.PAYMENT_FAILED, booking_id=booking.id, amount=amount),
            )
            await dispatch_booking_events(self.db)
            logger.warning(f"💳 Payment failed for {booking.booking_number}: {e.message}")
            raise HTTPException(status_code=400, detail=e.message) from e

        booking.payment_status = "captured"
        booking.status = "confirmed"
        booking.stripe_payment_intent_id = intent.id
        booking.stripe_payment_method_id = payment_method_id if save_card else None
        self.repo.add_transaction(
            self.db,
            booking,
            type="payment",
            amount=amount,
            status="succeeded",
            stripe_transaction_id=intent.id,
            notes=(
                f"Includes {format_money(booking.gratuity_amount)} tip"
                if booking.gratuity_amount
                else None
            ),
        )
        self.db.commit()
        self.db.refresh(booking)
        queue_event(
            self.db,
            BookingEvent(
                trigger=events.PAYMENT_CAPTURED,
                booking_id=booking.id,
                transaction_id=intent.id,
                amount=amount,
            ),
        )
        logger.info(f"💳 Charged {format_money(amount)} for {booking.booking_number}")

    def create_payment_intent(self, booking_number: str) -> dict:
        booking = self.get_public_booking(booking_number)
        if not booking.can_be_authorized():
            raise HTTPException(
                status_code=422, detail="This booking cannot be authorized at this time."
            )

        try:
            intent = self.stripe.create_payment_intent(booking)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        booking.stripe_payment_intent_id = intent.id
        self.db.commit()
        logger.info(f"💳 Payment intent {intent.id} created for {booking.booking_number}")
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}

    async def confirm_payment(self, booking_number: str, payment_intent_id: str) -> Booking:
        booking = self.get_public_booking(booking_number)
        if booking.stripe_payment_intent_id != payment_intent_id:
            raise HTTPException(status_code=422, detail="Invalid payment intent.")

        try:
            intent = self.stripe.retrieve_payment_intent(payment_intent_id)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        if intent.status not in ("requires_capture", "succeeded"):
            raise HTTPException(
                status_code=422, detail=f"Payment has not been authorized (status: {intent.status})."
            )

        captured = intent.status == "succeeded"
        transaction_type = "payment" if captured else "authorization"
        if self.repo.has_transaction(self.db, intent.id, transaction_type):
            return booking

        amount = from_cents(intent.amount)
        booking.payment_status = "captured" if captured else "authorized"
        if booking.status == "pending":
            booking.status = "confirmed"
        self.repo.add_transaction(
            self.db,
            booking,
            type=transaction_type,
            amount=amount,
            status="succeeded",
            stripe_transaction_id=intent.id,
        )
        self.db.commit()
        self.db.refresh(booking)

        queue_event(
            self.db,
            BookingEvent(
                trigger=events.PAYMENT_CAPTURED if captured else events.PAYMENT_AUTHORIZED,
                booking_id=booking.id,
                transaction_id=intent.id,
                amount=amount,
            ),
        )
        await dispatch_booking_events(self.db)
        logger.info(f"✅ Payment {booking.payment_status} for {booking.booking_number}")
        return booking

    async def process_payment(self, booking_number: str, data: ProcessPaymentRequest) -> Booking:
        booking = self.get_public_booking(booking_number)
        if booking.payment_status == "captured":
            raise HTTPException(status_code=422, detail="This booking has already been paid.")

        if data.gratuity_amount is not None:
            booking.gratuity_amount = round(data.gratuity_amount, 2)
            booking.gratuity_added_at = datetime.utcnow() if data.gratuity_amount > 0 else None

        await self._charge(booking, data.payment_method_id, data.save_payment_method)
        await dispatch_booking_events(self.db)
        return booking

    def create_setup_intent(self, booking_number: str) -> dict:
        """Save a card without charging (post_service payment mode)"""
        booking = self.get_public_booking(booking_number)
        if booking.payment_status != "pending":
            raise HTTPException(
                status_code=422,
                detail="This booking already has a payment method or has been paid.",
            )

        try:
            customer_id = booking.stripe_customer_id or self.stripe.get_or_create_customer(
                booking.customer_email, booking.customer_name
            )
            intent = self.stripe.create_setup_intent(customer_id, booking)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        booking.stripe_customer_id = customer_id
        booking.stripe_setup_intent_id = intent.id
        self.db.commit()
        return {
            "client_secret": intent.client_secret,
            "setup_intent_id": intent.id,
            "customer_id": customer_id,
        }

    async def complete_setup(self, booking_number: str, data: CompleteSetupRequest) -> Booking:
        booking = self.get_public_booking(booking_number)
        if booking.stripe_setup_intent_id != data.setup_intent_id:
            raise HTTPException(status_code=422, detail="Invalid setup intent.")

        try:
            intent = self.stripe.retrieve_setup_intent(data.setup_intent_id)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        if intent.status != "succeeded":
            raise HTTPException(status_code=422, detail="Card setup has not been completed.")

        payment_method = intent.payment_method
        booking.stripe_payment_method_id = (
            payment_method if isinstance(payment_method, str) else payment_method.id
        )
        booking.save_payment_method = True
        booking.status = "confirmed"
        # Charged when the trip is completed
        booking.payment_status = "pending"
        if data.gratuity_amount is not None:
            booking.gratuity_amount = round(data.gratuity_amount, 2)
            booking.gratuity_added_at = datetime.utcnow() if data.gratuity_amount > 0 else None
        self.db.commit()
        self.db.refresh(booking)

        await dispatch_booking_events(self.db)
        logger.info(f"💳 Card saved for {booking.booking_number}, charging after service")
        return booking

    def receipt_pdf(self, booking_number: str) -> tuple[Booking, bytes]:
        booking = self.get_public_booking(booking_number)
        return booking, BookingPDFGenerator(booking).receipt()

    def payment_mode(self) -> dict:
        return {
            "payment_mode": self.settings.payment_mode(),
            "cancellation_policy_url": self.settings.get(
                "cancellation_policy_url", f"{FRONTEND_URL}/cancellation-policy"
            ),
        }

    # ============================================================================
    # ADMIN
    # ============================================================================

    def list_bookings(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> dict:
        items, total = self.repo.list_bookings(
            self.db, status, payment_status, date_from, date_to, search, page, per_page
        )
        return {
            "items": items,
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": math.ceil(total / per_page) if per_page else 0,
        }

    async def update_booking(self, booking_id: int, data: BookingUpdate) -> Booking:
        booking = self.get_booking(booking_id)
        updates = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key not in REQUIRED_FIELDS
        }
        logger.info(f"📝 Updating booking {booking.booking_number}: {sorted(updates)}")
        booking = self.repo.update_booking(self.db, booking, **updates)
        await dispatch_booking_events(self.db)
        return booking

    def delete_booking(self, booking_id: int) -> dict:
        booking = self.get_booking(booking_id)
        self.repo.soft_delete(self.db, booking)
        logger.info(f"🗑️ Booking {booking.booking_number} deleted")
        return {"message": "Booking deleted successfully"}

    async def capture_payment(self, booking_id: int, amount: Optional[float] = None) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.payment_status != "authorized" or not booking.stripe_payment_intent_id:
            raise HTTPException(status_code=422, detail="Only authorized payments can be captured.")

        try:
            intent = self.stripe.capture(booking.stripe_payment_intent_id, amount)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        captured = round(amount if amount is not None else from_cents(intent.amount_received), 2)
        booking.payment_status = "captured"
        booking.final_fare = round(
            max(0.0, captured - (booking.extras_total or 0) - (booking.gratuity_amount or 0)), 2
        )
        self.repo.add_transaction(
            self.db,
            booking,
            type="capture",
            amount=captured,
            status="succeeded",
            stripe_transaction_id=intent.id,
        )
        self.db.commit()
        self.db.refresh(booking)

        queue_event(
            self.db,
            BookingEvent(
                trigger=events.PAYMENT_CAPTURED,
                booking_id=booking.id,
                transaction_id=intent.id,
                amount=captured,
            ),
        )
        await dispatch_booking_events(self.db)
        logger.info(f"✅ Captured {format_money(captured)} for {booking.booking_number}")
        return booking

    async def refund_payment(self, booking_id: int, amount: float, reason: str) -> Booking:
        booking = self.get_booking(booking_id)
        if (
            booking.payment_status not in ("captured", "partially_refunded")
            or not booking.stripe_payment_intent_id
        ):
            raise HTTPException(status_code=422, detail="This booking has no captured payment to refund.")

        refundable = booking.refundable_amount
        if amount - refundable > 0.005:
            raise HTTPException(
                status_code=422,
                detail=f"Refund amount cannot exceed {format_money(refundable)}.",
            )

        try:
            refund = self.stripe.refund(booking.stripe_payment_intent_id, amount, reason)
        except PaymentError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        full_refund = refundable - amount < 0.01
        booking.total_refunded = round((booking.total_refunded or 0) + amount, 2)
        booking.payment_status = "refunded" if full_refund else "partially_refunded"
        self.repo.add_transaction(
            self.db,
            booking,
            type="refund" if full_refund else "partial_refund",
            amount=round(amount, 2),
            status="succeeded",
            stripe_transaction_id=refund.id,
            notes=reason,
        )
        self.db.commit()
        self.db.refresh(booking)

        queue_event(
            self.db,
            BookingEvent(
                trigger=events.PAYMENT_REFUNDED,
                booking_id=booking.id,
                transaction_id=refund.id,
                amount=amount,
                refund_reason=reason,
            ),
        )
        await dispatch_booking_events(self.db)
        logger.info(f"💸 Refunded {format_money(amount)} on {booking.booking_number}")
        return booking

    async def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status in ("cancelled", "completed"):
            raise HTTPException(
                status_code=422, detail=f"A {booking.status} booking cannot be cancelled."
            )

        if booking.payment_status == "authorized" and booking.stripe_payment_intent_id:
            try:
                self.stripe.cancel(booking.stripe_payment_intent_id)
            except PaymentError as e:
                raise HTTPException(status_code=400, detail=e.message) from e
            booking.payment_status = "cancelled"
            self.repo.add_transaction(
                self.db,
                booking,
                type="void",
                amount=booking.total_amount,
                status="succeeded",
                stripe_transaction_id=booking.stripe_payment_intent_id,
                notes="Authorization released on cancellation",
            )

        booking.status = "cancelled"
        booking.cancellation_reason = reason
        self.db.commit()
        self.db.refresh(booking)

        await dispatch_booking_events(self.db)
        logger.info(f"🚫 Booking {booking.booking_number} cancelled")
        return booking

    async def complete_booking(self, booking_id: int) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status in ("cancelled", "completed"):
            raise HTTPException(
                status_code=422, detail=f"A {booking.status} booking cannot be completed."
            )

        if (
            self.settings.payment_mode() == "post_service"
            and booking.stripe_payment_method_id
            and booking.payment_status == "pending"
        ):
            await self._charge_saved_card(booking)

        booking.status = "completed"
        self.db.commit()
        self.db.refresh(booking)

        await dispatch_booking_events(self.db)
        logger.info(f"🏁 Booking {booking.booking_number} completed")
        return booking

    async def _charge_saved_card(self, booking: Booking):
        amount = booking.total_amount
        try:
            intent = self.stripe.charge_saved_method(booking, amount)
        except PaymentError as e:
            booking.payment_status = "failed"
            self.db.commit()
            queue_event(
                self.db,
                BookingEvent(trigger=events.PAYMENT_FAILED, booking_id=booking.id, amount=amount),
            )
            await dispatch_booking_events(self.db)
            logger.warning(f"💳 Post-service charge failed for {booking.booking_number}: {e.message}")
            raise HTTPException(status_code=400, detail=e.message) from e

        booking.payment_status = "captured"
        booking.stripe_payment_intent_id = intent.id
        self.repo.add_transaction(
            self.db,
            booking,
            type="payment",
            amount=amount,
            status="succeeded",
            stripe_transaction_id=intent.id,
            notes="Charged after service",
        )
        queue_event(
            self.db,
            BookingEvent(
                trigger=events.PAYMENT_CAPTURED,
                booking_id=booking.id,
                transaction_id=intent.id,
                amount=amount,
            ),
        )

    # ============================================================================
    # ADMIN: TIPS, EXPENSES, MANUAL EMAILS
    # ============================================================================

    async def send_tip_link(self, booking_id: int) -> dict:
        booking = self.get_booking(booking_id)
        return await TipService(self.db, self.stripe).send_tip_link(booking)

    def tip_qr_code(self, booking_id: int) -> dict:
        booking = self.get_booking(booking_id)
        if not booking.tip_link_token or not booking.qr_code_data:
            raise HTTPException(status_code=404, detail="No tip link has been created for this booking")
        return {"tip_url": tip_url(booking.tip_link_token), "qr_code": booking.qr_code_data}

    def add_expense(self, booking_id: int, data: ExpenseCreate):
        booking = self.get_booking(booking_id)
        return self.repo.add_expense(self.db, booking, **data.model_dump())

    def delete_expense(self, booking_id: int, expense_id: int) -> dict:
        booking = self.get_booking(booking_id)
        expense = self.repo.get_expense(self.db, booking, expense_id)
        if not expense:
            raise HTTPException(status_code=404, detail="Expense not found")
        self.repo.delete_expense(self.db, expense)
        return {"message": "Expense deleted successfully"}

    async def send_template_email(
        self, booking_id: int, template_slug: str, recipient_email: Optional[str] = None
    ) -> dict:
        booking = self.get_booking(booking_id)
        notifications = NotificationService(self.db)
        if notifications.get_active_template(template_slug) is None:
            raise HTTPException(status_code=404, detail="Email template not found or inactive")

        variables = {"recipient_email": recipient_email} if recipient_email else {}
        sent = await notifications.send_email_notification(template_slug, booking, variables)
        if not sent:
            raise HTTPException(status_code=502, detail="Email could not be sent. Check the email logs.")
        return {"message": f"Email '{template_slug}' sent", "sent": True}
