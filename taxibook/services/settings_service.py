"""
Typed key/value settings stored in the database and cached in Redis
"""

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from ..cache import cache
from ..config import COMPANY_EMAIL, COMPANY_NAME, COMPANY_PHONE, STRIPE_PUBLISHABLE_KEY
from ..models import Setting

logger = logging.getLogger(__name__)

SETTINGS_CACHE_TTL = 3600

# key -> (default, type, group, display name)
DEFAULT_SETTINGS: dict[str, tuple[Any, str, str, str]] = {
    "business_name": (COMPANY_NAME, "string", "business", "Business Name"),
    "business_email": (COMPANY_EMAIL, "string", "business", "Business Email"),
    "support_phone": (COMPANY_PHONE, "string", "business", "Support Phone"),
    "admin_email": ("", "string", "notifications", "Admin Notification Email"),
    "payment_mode": ("immediate", "string", "payments", "Payment Mode"),
    "minimum_booking_hours": (2, "integer", "booking", "Minimum Hours Before Pickup"),
    "maximum_booking_days": (90, "integer", "booking", "Maximum Days In Advance"),
    "allow_same_day_booking": (True, "boolean", "booking", "Allow Same Day Booking"),
    "time_increment": (5, "integer", "booking", "Pickup Time Increment (minutes)"),
}


def cast_value(value: Any, value_type: str) -> Any:
    if value is None:
        return None
    if value_type == "integer":
        return int(value)
    if value_type == "boolean":
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("1", "true", "yes", "on")
    if value_type == "json":
        return json.loads(value) if isinstance(value, str) else value
    return str(value)


def serialize_value(value: Any, value_type: str) -> str:
    if value_type == "json":
        return json.dumps(value)
    if value_type == "boolean":
        return "1" if cast_value(value, "boolean") else "0"
    return str(value)


class SettingsService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        cache_key = f"settings:{key}"
        cached_value = cache.get(cache_key)
        if cached_value is not None:
            return cached_value

        setting = self.db.query(Setting).filter(Setting.key == key).first()
        if setting is None or setting.value in (None, ""):
            if default is None and key in DEFAULT_SETTINGS:
                return DEFAULT_SETTINGS[key][0]
            return default

        value = cast_value(setting.value, setting.type)
        cache.set(cache_key, value, SETTINGS_CACHE_TTL)
        return value

    def set(self, key: str, value: Any) -> Setting:
        setting = self.db.query(Setting).filter(Setting.key == key).first()
        if setting is None:
            default, value_type, group, display_name = DEFAULT_SETTINGS.get(
                key, (None, "string", "general", key.replace("_", " ").title())
            )
            setting = Setting(key=key, type=value_type, group=group, display_name=display_name)
            cast_value(value, value_type)
            self.db.add(setting)
        else:
            cast_value(value, setting.type)

        setting.value = serialize_value(value, setting.type)
        self.db.commit()
        self.db.refresh(setting)
        cache.delete(f"settings:{key}")
        logger.info(f"⚙️ Setting updated: {key}")
        return setting

    def grouped(self) -> dict[str, list[dict]]:
        groups: dict[str, list[dict]] = {}
        for setting in self.db.query(Setting).order_by(Setting.group, Setting.key).all():
            groups.setdefault(setting.group, []).append(
                {
                    "key": setting.key,
                    "value": cast_value(setting.value, setting.type),
                    "type": setting.type,
                    "display_name": setting.display_name,
                    "description": setting.description,
                }
            )
        return groups

    def admin_email(self) -> str:
        return self.get("admin_email") or self.get("business_email") or ""

    def payment_mode(self) -> str:
        mode = self.get("payment_mode", "immediate")
        return mode if mode in ("immediate", "post_service") else "immediate"

    def public_settings(self) -> dict:
        return {
            "support_phone": self.get("support_phone"),
            "business_email": self.get("business_email"),
            "business_name": self.get("business_name"),
            "stripe_publishable_key": STRIPE_PUBLISHABLE_KEY,
            "payment_mode": self.payment_mode(),
            "booking": {
                "minimum_hours": self.get("minimum_booking_hours", 2),
                "maximum_days": self.get("maximum_booking_days", 90),
                "allow_same_day": self.get("allow_same_day_booking", True),
                "time_increment": self.get("time_increment", 5),
            },
        }

    def seed_defaults(self) -> int:
        created = 0
        for key, (default, value_type, group, display_name) in DEFAULT_SETTINGS.items():
            if self.db.query(Setting).filter(Setting.key == key).first():
                continue
            self.db.add(
                Setting(
                    key=key,
                    value=serialize_value(default, value_type),
                    type=value_type,
                    group=group,
                    display_name=display_name,
                )
            )
            created += 1
        self.db.commit()
        return created
