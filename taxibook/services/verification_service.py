"""
Booking wizard email verification
6-digit codes stored on the customer's User row, valid for 10 minutes
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..email_service import EmailSendError, send_verification_code_email
from ..models import User
from ..security_utils import constant_time_compare, generate_verification_code, mask_email

logger = logging.getLogger(__name__)

CODE_TTL_MINUTES = 10
MAX_ATTEMPTS = 5
RESEND_COOLDOWN_SECONDS = 60


class VerificationService:
    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower().strip()).first()

    def _check_cooldown(self, user: User, now: datetime):
        if user.verification_sent_at and now - user.verification_sent_at < timedelta(
            seconds=RESEND_COOLDOWN_SECONDS
        ):
            raise HTTPException(
                status_code=429, detail="Please wait 1 minute before requesting another code."
            )

    async def _issue_code(self, user: User, now: datetime) -> dict:
        code = generate_verification_code()
        user.verification_code = code
        user.verification_expires_at = now + timedelta(minutes=CODE_TTL_MINUTES)
        user.verification_attempts = 0
        self.db.commit()

        try:
            await send_verification_code_email(user.email, code)
        except EmailSendError as e:
            logger.error(f"❌ Failed to send verification code to {mask_email(user.email)}: {e}")
            raise HTTPException(
                status_code=500, detail="Failed to send verification email. Please try again."
            ) from e

        user.verification_sent_at = now
        self.db.commit()
        logger.info(f"📧 Verification code sent to {mask_email(user.email)}")
        return {"message": "Verification code sent successfully", "expires_in": CODE_TTL_MINUTES * 60}

    async def send_code(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.utcnow()
        user = self._get_user(email)
        if user is None:
            user = User(email=email.lower().strip())
            self.db.add(user)
        else:
            self._check_cooldown(user, now)

        name = " ".join(p for p in (first_name, last_name) if p).strip()
        if name:
            user.name = name
        if phone:
            user.phone = phone
        self.db.flush()
        return await self._issue_code(user, now)

    async def resend_code(self, email: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        user = self._get_user(email)
        if user is None or not user.verification_code:
            raise HTTPException(
                status_code=404, detail="No active verification session. Please start a new booking."
            )
        self._check_cooldown(user, now)
        return await self._issue_code(user, now)

    def _clear_code(self, user: User):
        user.verification_code = None
        user.verification_expires_at = None
        user.verification_attempts = 0

    def verify(self, email: str, code: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        user = self._get_user(email)
        if user is None or not user.verification_code:
            raise HTTPException(
                status_code=404, detail="No verification code found. Please request a new one."
            )

        if user.verification_expires_at and user.verification_expires_at < now:
            self._clear_code(user)
            self.db.commit()
            raise HTTPException(
                status_code=410, detail="Verification code has expired. Please request a new one."
            )

        if user.verification_attempts >= MAX_ATTEMPTS:
            self._clear_code(user)
            self.db.commit()
            raise HTTPException(
                status_code=429, detail="Too many failed attempts. Please request a new code."
            )

        if not constant_time_compare(user.verification_code, code.strip()):
            user.verification_attempts += 1
            self.db.commit()
            logger.warning(
                f"⚠️ Invalid verification code for {mask_email(user.email)} "
                f"(attempt {user.verification_attempts})"
            )
            raise HTTPException(
                status_code=422,
                detail={
                    "message": "Invalid verification code",
                    "attempts_remaining": MAX_ATTEMPTS - user.verification_attempts,
                },
            )

        self._clear_code(user)
        if not user.email_verified_at:
            user.email_verified_at = now
        self.db.commit()
        logger.info(f"✅ Email verified: {mask_email(user.email)}")
        return {"message": "Email verified successfully", "verified": True}
