"""
Admin dashboard statistics
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_admin
from ..database import get_db
from ..models import Booking, Transaction, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/dashboard", tags=["Admin Dashboard"])

INCOME_TYPES = ("payment", "capture", "tip")
REFUND_TYPES = ("refund", "partial_refund")


class DashboardStats(BaseModel):
    today_bookings: int
    today_revenue: float
    pending_bookings: int
    upcoming_bookings: int
    month_revenue: float
    month_completed: int


class RevenuePoint(BaseModel):
    date: date
    revenue: float
    bookings: int


def net_revenue(db: Session, start: datetime, end: Optional[datetime] = None) -> float:
    """Succeeded charges minus refunds recorded in [start, end)"""
    query = db.query(Transaction.type, func.sum(Transaction.amount)).filter(
        Transaction.status == "succeeded",
        Transaction.created_at >= start,
    )
    if end is not None:
        query = query.filter(Transaction.created_at < end)

    total = 0.0
    for tx_type, amount in query.group_by(Transaction.type).all():
        if tx_type in INCOME_TYPES:
            total += amount or 0
        elif tx_type in REFUND_TYPES:
            total -= amount or 0
    return round(total, 2)


def _active_bookings(db: Session):
    return db.query(func.count(Booking.id)).filter(Booking.deleted_at.is_(None))


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    now = datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today.replace(day=1)

    today_bookings = (
        _active_bookings(db)
        .filter(Booking.pickup_date >= today, Booking.pickup_date < today + timedelta(days=1))
        .scalar()
    )
    pending = _active_bookings(db).filter(Booking.status == "pending").scalar()
    upcoming = (
        _active_bookings(db)
        .filter(Booking.pickup_date >= now, Booking.status.in_(("pending", "confirmed")))
        .scalar()
    )
    month_completed = (
        _active_bookings(db)
        .filter(Booking.status == "completed", Booking.completed_at >= month_start)
        .scalar()
    )

    stats = DashboardStats(
        today_bookings=today_bookings or 0,
        today_revenue=net_revenue(db, today),
        pending_bookings=pending or 0,
        upcoming_bookings=upcoming or 0,
        month_revenue=net_revenue(db, month_start),
        month_completed=month_completed or 0,
    )
    logger.info(f"📊 Dashboard stats for {current_admin.email}: {stats.model_dump()}")
    return stats


@router.get("/revenue", response_model=list[RevenuePoint])
async def get_revenue_series(
    days: int = Query(30, ge=1, le=365),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Daily net revenue and booking counts, oldest day first"""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=days - 1)

    series = {
        (start + timedelta(days=offset)).date(): {"revenue": 0.0, "bookings": 0}
        for offset in range(days)
    }

    transactions = (
        db.query(Transaction)
        .filter(Transaction.status == "succeeded", Transaction.created_at >= start)
        .all()
    )
    for tx in transactions:
        day = series.get(tx.created_at.date())
        if day is None:
            continue
        if tx.type in INCOME_TYPES:
            day["revenue"] += tx.amount
        elif tx.type in REFUND_TYPES:
            day["revenue"] -= tx.amount

    created = (
        db.query(Booking.created_at)
        .filter(Booking.deleted_at.is_(None), Booking.created_at >= start)
        .all()
    )
    for (created_at,) in created:
        day = series.get(created_at.date())
        if day is not None:
            day["bookings"] += 1

    return [
        RevenuePoint(date=day, revenue=round(values["revenue"], 2), bookings=values["bookings"])
        for day, values in sorted(series.items())
    ]
