"""
JWT verification utilities.

WHY: Identity is issued elsewhere. This service only needs to:
1. Verify a bearer token's signature and expiry
2. Read the owner id from the "sub" claim
create_access_token exists for local development and tests.
"""

from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError

from chaching.core.config import settings
from chaching.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed JWT for the given owner id.

    Args:
        subject: Owner id stored in the "sub" claim
        expires_delta: Optional custom expiration time
        extra_claims: Additional claims to include

    Returns:
        JWT token string

    Example:
        >>> token = create_access_token("user-1")
        >>> verify_token(token)["sub"]
        'user-1'
    """
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))

    to_encode: Dict[str, Any] = dict(extra_claims or {})
    to_encode.update(
        {
            "sub": subject,
            "exp": expire,
            "iat": now,
            "nbf": now,
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )
