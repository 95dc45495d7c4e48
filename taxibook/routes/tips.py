"""
Public tipping routes, reached from the tip link or QR code after a trip
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..rate_limiter import create_rate_limiter
from ..services.tip_service import TipService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tip", tags=["Tips"])

rate_limit_tips = create_rate_limiter(limit=10, window_seconds=60, key_prefix="tip_payment")


class ProcessTipRequest(BaseModel):
    amount: float
    payment_method_id: str = Field(..., min_length=1)


def get_tip_service(db: Session = Depends(get_db)) -> TipService:
    return TipService(db)


@router.get("/{token}")
async def get_tip_page(token: str, service: TipService = Depends(get_tip_service)):
    return service.tip_summary(token)


@router.post("/{token}/process")
async def process_tip(
    token: str,
    data: ProcessTipRequest,
    _: None = Depends(rate_limit_tips),
    service: TipService = Depends(get_tip_service),
):
    """Charge the tip and send the thank-you email"""
    booking = await service.process_tip(token, data.amount, data.payment_method_id)
    return {
        "message": "Thank you for your tip!",
        "booking_number": booking.booking_number,
        "gratuity_amount": booking.gratuity_amount,
    }
