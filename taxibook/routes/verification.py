"""
Booking wizard email verification routes
Customers confirm their email with a 6-digit code before booking
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..rate_limiter import create_rate_limiter
from ..services.verification_service import VerificationService
from ..shared.validators import validate_email, validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Verification"])

rate_limit_codes = create_rate_limiter(limit=5, window_seconds=300, key_prefix="verification")


class SendVerificationRequest(BaseModel):
    email: str
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)


class VerifyEmailRequest(BaseModel):
    email: str
    code: str = Field(..., min_length=6, max_length=6)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ResendVerificationRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


def get_verification_service(db: Session = Depends(get_db)) -> VerificationService:
    return VerificationService(db)


@router.post("/send-verification")
async def send_verification(
    data: SendVerificationRequest,
    _: None = Depends(rate_limit_codes),
    service: VerificationService = Depends(get_verification_service),
):
    """Email a verification code, creating the customer record if needed"""
    return await service.send_code(data.email, data.first_name, data.last_name, data.phone)


@router.post("/verify-email")
async def verify_email(
    data: VerifyEmailRequest,
    service: VerificationService = Depends(get_verification_service),
):
    return service.verify(data.email, data.code)


@router.post("/resend-verification")
async def resend_verification(
    data: ResendVerificationRequest,
    _: None = Depends(rate_limit_codes),
    service: VerificationService = Depends(get_verification_service),
):
    return await service.resend_code(data.email)
