"""
Security utilities
JWT access token encoding and verification
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from pydantic import BaseModel

from lawnroute.config import get_settings

settings = get_settings()


class TokenData(BaseModel):
    """Data extracted from JWT token"""
    user_id: str
    role: str
    business_id: Optional[str] = None
    crew_id: Optional[str] = None
    token_type: str = "access"


def create_access_token(
    user_id: str,
    role: str,
    business_id: Optional[str] = None,
    crew_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token

    Args:
        user_id: User's unique identifier
        role: User's role (admin, manager, supervisor, operator, helper)
        business_id: Associated business ID
        crew_id: Crew the user works on, if any
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "sub": user_id,
        "role": role,
        "business_id": business_id,
        "crew_id": crew_id,
        "type": "access",
        "exp": expire,
        "iat": datetime.now(timezone.utc)
    }

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[TokenData]:
    """
    Verify and decode a JWT token

    Returns:
        TokenData if valid, None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        return None

    user_id: Optional[str] = payload.get("sub")
    role: Optional[str] = payload.get("role")
    payload_type: str = payload.get("type", "access")

    if user_id is None or role is None:
        return None

    if payload_type != token_type:
        return None

    return TokenData(
        user_id=user_id,
        role=role,
        business_id=payload.get("business_id"),
        crew_id=payload.get("crew_id"),
        token_type=payload_type
    )
