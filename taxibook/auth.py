import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import create_jwt_token, verify_jwt_token, verify_password

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def authenticate_admin(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user or not verify_password(password, user.hashed_password):
        logger.warning(f"⚠️ Failed admin login for {email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_admin:
        logger.warning(f"⚠️ Non-admin login attempt for {email}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def issue_admin_token(user: User) -> str:
    return create_jwt_token({"sub": str(user.id), "email": user.email, "role": "admin"})


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the user from a Bearer JWT"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    payload = verify_jwt_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token subject") from e

    user = db.get(User, user_id)
    if not user:
        logger.warning(f"⚠️ Token for missing user {user_id}")
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    """Use this dependency for every /admin route"""
    if not user.is_admin:
        logger.warning(f"⚠️ User {user.email} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
