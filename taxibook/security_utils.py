"""
Security Utilities
Password hashing, tokens and HTML sanitization
"""

import hmac
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer
from jose import JWTError
from jose import jwt as jose_jwt
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_HOURS, SECRET_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKENS
# ============================================================================


def generate_random_string(length: int = 40) -> str:
    """URL-safe alphanumeric token (tip links)"""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_verification_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire, "iat": datetime.utcnow()})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """Returns the payload, or None when the token is invalid or expired"""
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def constant_time_compare(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


# ============================================================================
# INPUT SANITIZATION
# ============================================================================

EMAIL_ALLOWED_TAGS = [
    "p", "br", "strong", "b", "em", "i", "u", "a", "ul", "ol", "li",
    "h1", "h2", "h3", "h4", "blockquote", "pre", "code", "span", "div",
    "table", "thead", "tbody", "tr", "th", "td", "img", "hr",
]
EMAIL_ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "target", "style"],
    "img": ["src", "alt", "width", "height", "style"],
    "*": ["style", "align"],
}


def sanitize_html(html_content: str) -> str:
    """Strip scripts and unsafe attributes from admin-authored email HTML"""
    return bleach.clean(
        html_content or "",
        tags=EMAIL_ALLOWED_TAGS,
        attributes=EMAIL_ALLOWED_ATTRIBUTES,
        protocols=["http", "https", "mailto", "tel"],
        css_sanitizer=CSSSanitizer(),
        strip=True,
    )


def mask_email(email: str) -> str:
    name, _, domain = email.partition("@")
    if len(name) <= 2:
        return f"{name[:1]}***@{domain}"
    return f"{name[:2]}***@{domain}"
