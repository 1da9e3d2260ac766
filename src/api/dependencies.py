"""FastAPI dependencies for authentication and services."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.database import get_db
from src.models.user import User
from src.services.auth import decode_access_token
from src.services.badges import BadgeAggregator
from src.services.device_registry import DeviceTokenRegistry
from src.services.preferences import PreferenceStore

security = HTTPBearer()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    token = credentials.credentials
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def get_device_registry(
    db: Annotated[Session, Depends(get_db)],
) -> DeviceTokenRegistry:
    """Get device token registry with dependencies."""
    return DeviceTokenRegistry(db)


def get_preference_store(
    db: Annotated[Session, Depends(get_db)],
) -> PreferenceStore:
    """Get preference store with dependencies."""
    return PreferenceStore(db)


def get_badge_aggregator(
    db: Annotated[Session, Depends(get_db)],
) -> BadgeAggregator:
    """Get badge aggregator with dependencies."""
    return BadgeAggregator(db)
