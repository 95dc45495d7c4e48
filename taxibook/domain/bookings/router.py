"""Booking routers - public booking wizard endpoints and the admin booking API"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...shared.validators import to_naive_utc
from ..fleet.schemas import ExtraResponse
from .schemas import (
    AdminBookingResponse,
    BookingCreate,
    BookingCreatedResponse,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    CancelRequest,
    CaptureRequest,
    CompleteSetupRequest,
    ConfirmPaymentRequest,
    ExpenseCreate,
    ExpenseResponse,
    PriceRequest,
    ProcessPaymentRequest,
    RefundRequest,
    RouteRequest,
    SendEmailRequest,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])
admin_router = APIRouter(prefix="/admin/bookings", tags=["Admin Bookings"])

# Route lookups hit the Google API; keep anonymous callers in check
rate_limit_routes = create_rate_limiter(limit=30, window_seconds=60, key_prefix="route_lookup")
rate_limit_bookings = create_rate_limiter(limit=10, window_seconds=60, key_prefix="create_booking")


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


# ============================================================================
# BOOKING WIZARD
# ============================================================================


@router.post("/validate-route")
async def validate_route(
    data: RouteRequest,
    _: None = Depends(rate_limit_routes),
    service: BookingService = Depends(get_booking_service),
):
    """Check that a route exists and return its distance and duration"""
    return await service.validate_route(data)


@router.post("/calculate-prices")
async def calculate_prices(
    data: PriceRequest,
    _: None = Depends(rate_limit_routes),
    service: BookingService = Depends(get_booking_service),
):
    """Fares for every active vehicle type"""
    return await service.calculate_prices(data)


@router.get("/extras", response_model=list[ExtraResponse])
async def list_extras(
    vehicle_type_id: Optional[int] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_extras(vehicle_type_id)


@router.get("/payment-mode")
async def get_payment_mode(service: BookingService = Depends(get_booking_service)):
    """Whether the wizard charges now or saves the card for after the trip"""
    return service.payment_mode()


@router.post("", response_model=BookingCreatedResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    _: None = Depends(rate_limit_bookings),
    service: BookingService = Depends(get_booking_service),
):
    booking, payment_required = await service.create_booking(data)
    return BookingCreatedResponse(
        booking=BookingResponse.model_validate(booking),
        message="Booking created successfully",
        payment_required=payment_required,
    )


@router.get("/{booking_number}", response_model=BookingResponse)
async def get_booking(booking_number: str, service: BookingService = Depends(get_booking_service)):
    return service.get_public_booking(booking_number)


@router.post("/{booking_number}/payment-intent")
async def create_payment_intent(
    booking_number: str, service: BookingService = Depends(get_booking_service)
):
    """Manual-capture PaymentIntent; the card is authorized now and captured by an admin"""
    return service.create_payment_intent(booking_number)


@router.post("/{booking_number}/confirm-payment")
async def confirm_payment(
    booking_number: str,
    data: ConfirmPaymentRequest,
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.confirm_payment(booking_number, data.payment_intent_id)
    return {
        "booking": BookingResponse.model_validate(booking),
        "message": "Payment authorized successfully"
        if booking.payment_status == "authorized"
        else "Payment completed successfully",
    }


@router.post("/{booking_number}/process-payment")
async def process_payment(
    booking_number: str,
    data: ProcessPaymentRequest,
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.process_payment(booking_number, data)
    return {
        "booking": BookingResponse.model_validate(booking),
        "message": "Payment processed successfully",
    }


@router.post("/{booking_number}/setup-intent")
async def create_setup_intent(
    booking_number: str, service: BookingService = Depends(get_booking_service)
):
    return service.create_setup_intent(booking_number)


@router.post("/{booking_number}/complete-setup")
async def complete_setup(
    booking_number: str,
    data: CompleteSetupRequest,
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.complete_setup(booking_number, data)
    return {
        "booking": BookingResponse.model_validate(booking),
        "message": "Card saved successfully. You will be charged after your ride is completed.",
    }


@router.get("/{booking_number}/receipt")
async def download_receipt(
    booking_number: str, service: BookingService = Depends(get_booking_service)
):
    booking, pdf = service.receipt_pdf(booking_number)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="receipt-{booking.booking_number}.pdf"'},
    )


# ============================================================================
# ADMIN BOOKINGS
# ============================================================================


@admin_router.get("", response_model=BookingListResponse)
async def admin_list_bookings(
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(
        status,
        payment_status,
        to_naive_utc(date_from),
        to_naive_utc(date_to),
        search,
        page,
        per_page,
    )


@admin_router.get("/{booking_id}", response_model=AdminBookingResponse)
async def admin_get_booking(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id)


@admin_router.patch("/{booking_id}", response_model=AdminBookingResponse)
async def admin_update_booking(
    booking_id: int,
    data: BookingUpdate,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.update_booking(booking_id, data)


@admin_router.delete("/{booking_id}")
async def admin_delete_booking(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.delete_booking(booking_id)


@admin_router.post("/{booking_id}/capture", response_model=AdminBookingResponse)
async def admin_capture_payment(
    booking_id: int,
    data: Optional[CaptureRequest] = None,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    logger.info(f"💳 Admin {current_admin.email} capturing payment for booking {booking_id}")
    return await service.capture_payment(booking_id, data.amount if data else None)


@admin_router.post("/{booking_id}/refund", response_model=AdminBookingResponse)
async def admin_refund_payment(
    booking_id: int,
    data: RefundRequest,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    logger.info(f"💸 Admin {current_admin.email} refunding booking {booking_id}")
    return await service.refund_payment(booking_id, data.amount, data.reason)


@admin_router.post("/{booking_id}/cancel", response_model=AdminBookingResponse)
async def admin_cancel_booking(
    booking_id: int,
    data: Optional[CancelRequest] = None,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.cancel_booking(booking_id, data.reason if data else None)


@admin_router.post("/{booking_id}/complete", response_model=AdminBookingResponse)
async def admin_complete_booking(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.complete_booking(booking_id)


@admin_router.post("/{booking_id}/tip-link")
async def admin_send_tip_link(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.send_tip_link(booking_id)


@admin_router.get("/{booking_id}/tip-qr")
async def admin_tip_qr_code(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.tip_qr_code(booking_id)


@admin_router.post("/{booking_id}/expenses", response_model=ExpenseResponse, status_code=201)
async def admin_add_expense(
    booking_id: int,
    data: ExpenseCreate,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.add_expense(booking_id, data)


@admin_router.delete("/{booking_id}/expenses/{expense_id}")
async def admin_delete_expense(
    booking_id: int,
    expense_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.delete_expense(booking_id, expense_id)


@admin_router.post("/{booking_id}/send-email")
async def admin_send_email(
    booking_id: int,
    data: SendEmailRequest,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.send_template_email(booking_id, data.template_slug, data.recipient_email)
