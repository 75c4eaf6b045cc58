"""
Access token handling and HTTP security headers.

Sign-up and sign-in live in the identity provider in front of this service.
The engine only issues and verifies the short lived JWT access tokens that
carry the acting user's id (``sub``) and role.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from quickcart.core.config import get_settings
from quickcart.core.logging import get_logger

logger = get_logger(__name__)


class SecurityError(Exception):
    """Base class for security related failures."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class TokenError(SecurityError):
    """Raised when a token cannot be issued or verified."""

    pass


def create_access_token(
    user_id: UUID,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Issue a signed access token for ``user_id`` acting as ``role``.

    Args:
        user_id: Subject of the token
        role: Role claim checked by the authorization policy
        expires_delta: Lifetime override, defaults to the configured minutes

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": expire,
        "type": "access",
    }
    token = jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)

    logger.debug(
        "Access token issued",
        subject=str(user_id),
        role=role,
        expires_at=expire.isoformat(),
    )
    return token


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Args:
        token: Encoded JWT

    Returns:
        Claims dictionary with a parsed ``sub`` UUID

    Raises:
        TokenError: If the signature, expiry, type or subject is invalid
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        logger.warning("Access token rejected", error=str(e))
        raise TokenError("Could not validate credentials") from e

    if payload.get("type") != "access":
        raise TokenError("Invalid token type", token_type=payload.get("type"))

    try:
        payload["sub"] = UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise TokenError("Invalid token subject") from e

    return payload


def get_security_headers() -> Dict[str, str]:
    """
    Headers added to every response.

    The API serves JSON only, so the content security policy forbids
    everything except the interactive docs in development.
    """
    settings = get_settings()
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
    if settings.is_production:
        headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    return headers
