import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal

import jwt
from fastapi import HTTPException, status
from pydantic import BaseModel

from config import (
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    JWT_SECRET_KEY,
)


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # email address
    typ: Literal["otp"]  # authentication type
    exp: datetime | None = None  # expiration time


def create_access_token(
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT proving that the email passed OTP verification.

    Args:
        email: The verified email address
        expires_delta: Custom expiration time (optional)

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": email,
        "typ": "otp",
        "exp": expire,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }

    return jwt.encode(to_encode, str(JWT_SECRET_KEY), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            str(JWT_SECRET_KEY),
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
        return TokenPayload(**payload)
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid authentication credentials",
        )
