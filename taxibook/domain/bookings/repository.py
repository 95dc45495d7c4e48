"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models import Booking, BookingExpense, BookingExtra, Extra, Transaction, VehicleType


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def _active(db: Session):
        return db.query(Booking).filter(Booking.deleted_at.is_(None))

    @staticmethod
    def get_by_number(db: Session, booking_number: str) -> Optional[Booking]:
        return (
            BookingRepository._active(db)
            .options(selectinload(Booking.extras), selectinload(Booking.vehicle_type))
            .filter(Booking.booking_number == booking_number)
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, booking_id: int) -> Optional[Booking]:
        return BookingRepository._active(db).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_by_payment_intent(db: Session, intent_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.stripe_payment_intent_id == intent_id).first()

    @staticmethod
    def list_bookings(
        db: Session,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Booking], int]:
        """Filtered, paginated bookings ordered by pickup date (newest first)"""
        query = BookingRepository._active(db)

        if status:
            query = query.filter(Booking.status == status)
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status)
        if date_from:
            query = query.filter(Booking.pickup_date >= date_from)
        if date_to:
            query = query.filter(Booking.pickup_date <= date_to)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Booking.booking_number.ilike(term),
                    Booking.customer_first_name.ilike(term),
                    Booking.customer_last_name.ilike(term),
                    Booking.customer_email.ilike(term),
                )
            )

        total = query.count()
        items = (
            query.order_by(Booking.pickup_date.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    @staticmethod
    def create_booking(db: Session, extras: list[BookingExtra], **booking_data) -> Booking:
        booking = Booking(**booking_data)
        booking.extras = extras
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            if hasattr(booking, key):
                setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def soft_delete(db: Session, booking: Booking) -> None:
        booking.deleted_at = datetime.utcnow()
        db.commit()

    @staticmethod
    def add_transaction(db: Session, booking: Booking, **transaction_data) -> Transaction:
        transaction = Transaction(booking_id=booking.id, **transaction_data)
        db.add(transaction)
        return transaction

    @staticmethod
    def has_transaction(db: Session, stripe_transaction_id: str, transaction_type: str) -> bool:
        return (
            db.query(Transaction.id)
            .filter(
                Transaction.stripe_transaction_id == stripe_transaction_id,
                Transaction.type == transaction_type,
            )
            .first()
            is not None
        )

    # ============================================================================
    # Vehicles & extras
    # ============================================================================

    @staticmethod
    def get_active_vehicle_type(db: Session, vehicle_type_id: int) -> Optional[VehicleType]:
        return (
            db.query(VehicleType)
            .filter(VehicleType.id == vehicle_type_id, VehicleType.is_active.is_(True))
            .first()
        )

    @staticmethod
    def get_active_extras(db: Session, extra_ids: Optional[list[int]] = None) -> list[Extra]:
        query = db.query(Extra).filter(Extra.is_active.is_(True))
        if extra_ids is not None:
            query = query.filter(Extra.id.in_(extra_ids))
        return query.order_by(Extra.sort_order, Extra.name).all()

    # ============================================================================
    # Expenses
    # ============================================================================

    @staticmethod
    def add_expense(db: Session, booking: Booking, **expense_data) -> BookingExpense:
        expense = BookingExpense(booking_id=booking.id, **expense_data)
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def get_expense(db: Session, booking: Booking, expense_id: int) -> Optional[BookingExpense]:
        return (
            db.query(BookingExpense)
            .filter(BookingExpense.id == expense_id, BookingExpense.booking_id == booking.id)
            .first()
        )

    @staticmethod
    def delete_expense(db: Session, expense: BookingExpense) -> None:
        db.delete(expense)
        db.commit()
