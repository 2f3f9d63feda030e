"""JWT access token handling.

Tokens are issued by the identity service; this service only validates
them. ``create_access_token`` exists for scripts and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from src.config.settings import get_settings


def create_access_token(
    user_id: UUID | str,
    role: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token.

    Token payload includes:
        - sub, role, email
        - exp: Expiration timestamp
        - iat: Issued at timestamp
        - type: "access" (for validation)
    """
    settings = get_settings()
    now = datetime.now(UTC)
    expire = now + (
        expires_delta or timedelta(minutes=settings.auth_access_token_expire_minutes)
    )

    return jwt.encode(
        {
            "sub": str(user_id),
            "role": role,
            "email": email,
            "exp": expire,
            "iat": now,
            "type": "access",
        },
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)
    if "sub" not in payload:
        msg = "Access token missing sub claim"
        raise JWTError(msg)

    return payload
