import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import authenticate_admin, get_current_admin, issue_admin_token
from ..config import ACCESS_TOKEN_EXPIRE_HOURS
from ..database import get_db
from ..models import User
from ..rate_limiter import create_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/auth", tags=["Authentication"])

rate_limit_login = create_rate_limiter(limit=10, window_seconds=300, key_prefix="admin_login")


class LoginRequest(BaseModel):
    email: str
    password: str


class AdminResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    is_admin: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AdminResponse


@router.post("/login", response_model=TokenResponse)
async def login(
    data: LoginRequest,
    _: None = Depends(rate_limit_login),
    db: Session = Depends(get_db),
):
    """Exchange admin credentials for a bearer token"""
    user = authenticate_admin(db, data.email, data.password)
    logger.info(f"🔐 Admin login: {user.email}")
    return TokenResponse(
        access_token=issue_admin_token(user),
        expires_in=ACCESS_TOKEN_EXPIRE_HOURS * 3600,
        user=AdminResponse.model_validate(user),
    )


@router.get("/me", response_model=AdminResponse)
async def get_me(current_admin: User = Depends(get_current_admin)):
    return current_admin
