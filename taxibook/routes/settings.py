import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import get_current_admin
from ..config import FRONTEND_URL
from ..database import get_db
from ..models import User
from ..services.settings_service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["Settings"])
admin_router = APIRouter(prefix="/admin/settings", tags=["Admin Settings"])


def get_settings_service(db: Session = Depends(get_db)) -> SettingsService:
    return SettingsService(db)


@router.get("/public")
async def get_public_settings(service: SettingsService = Depends(get_settings_service)):
    """Settings the booking wizard needs before the customer starts"""
    return service.public_settings()


@router.get("/payment-mode")
async def get_payment_mode(service: SettingsService = Depends(get_settings_service)):
    return {
        "payment_mode": service.payment_mode(),
        "cancellation_policy_url": service.get(
            "cancellation_policy_url", f"{FRONTEND_URL}/cancellation-policy"
        ),
    }


@admin_router.get("")
async def get_settings(
    current_admin: User = Depends(get_current_admin),
    service: SettingsService = Depends(get_settings_service),
):
    return service.grouped()


@admin_router.put("")
@admin_router.patch("")
async def update_settings(
    data: dict[str, Any],
    current_admin: User = Depends(get_current_admin),
    service: SettingsService = Depends(get_settings_service),
):
    if not data:
        raise HTTPException(status_code=422, detail="No settings provided")

    if "payment_mode" in data and data["payment_mode"] not in ("immediate", "post_service"):
        raise HTTPException(
            status_code=422, detail="payment_mode must be 'immediate' or 'post_service'"
        )

    for key, value in data.items():
        try:
            service.set(key, value)
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=422, detail=f"Invalid value for {key}: {e}") from e

    logger.info(f"⚙️ {current_admin.email} updated settings: {sorted(data)}")
    return {"message": "Settings updated successfully", "settings": service.grouped()}
