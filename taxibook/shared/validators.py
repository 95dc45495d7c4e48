"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:[-_][a-z0-9]+)*$")


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164-ish form.

    10-digit numbers are treated as US numbers (+1 prefix).

    Raises:
        ValueError: If the number has fewer than 10 or more than 15 digits
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) < 10 or len(digits) > 15:
        raise ValueError("Phone number must have between 10 and 15 digits")
    return f"+{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email


def validate_email_list(value: Optional[str]) -> Optional[str]:
    """Validate a comma separated list of emails and return it normalized"""
    if not value or not value.strip():
        return None
    emails = [validate_email(e) for e in value.split(",") if e.strip()]
    return ", ".join(emails) or None


def validate_slug(slug: str) -> str:
    slug = slug.strip().lower()
    if not SLUG_PATTERN.match(slug):
        raise ValueError("Slug may only contain lowercase letters, numbers, hyphens and underscores")
    return slug


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "item"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Datetimes are stored as naive UTC; convert aware values on the way in"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
