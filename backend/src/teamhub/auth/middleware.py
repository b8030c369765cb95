"""Authentication dependencies for FastAPI.

Tokens are issued by the identity provider; this service only verifies them.
The `sub` claim is the user ID.
"""

from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from teamhub.errors import AuthenticationError
from teamhub.logging_config import get_logger
from teamhub.settings import Settings

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def verify_token(token: str, settings: Settings) -> dict[str, Any] | None:
    """Verify and decode a bearer JWT.

    Args:
        token: JWT token string
        settings: Settings carrying the identity secret

    Returns:
        Token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
        )
    except JWTError as e:
        logger.debug("token_verification_failed", error=str(e))
        return None


async def get_current_user_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str | None:
    """Get the authenticated user ID, or None for anonymous callers."""
    if not credentials:
        return None

    payload = verify_token(credentials.credentials, request.app.state.services.settings)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    request.state.user_id = str(user_id)
    return str(user_id)


def require_auth(user_id: str | None = Depends(get_current_user_id)) -> str:
    """Require authentication.

    Raises:
        AuthenticationError: rendered as a 401 envelope
    """
    if not user_id:
        raise AuthenticationError("Authentication required")
    return user_id
