"""
API Dependencies

FastAPI dependency injection for authentication and capabilities.

Security: bearer tokens issued by the auth provider are verified
cryptographically (HS256 with AUTH_JWT_SECRET). Never decode without
verification.
"""

import logging
import secrets
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from directory_billing.config.settings import get_settings
from directory_billing.infrastructure.db.repositories.account_repository import (
    ADMIN_ROLE,
    get_account_capabilities,
)


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    """Verify an access token and return its claims."""
    settings = get_settings()
    options = {"require": ["exp", "sub"]}
    if settings.auth_jwt_issuer:
        options["require"].append("iss")

    return jwt.decode(
        token,
        settings.auth_jwt_secret,
        algorithms=["HS256"],
        audience=settings.auth_jwt_audience,
        issuer=settings.auth_jwt_issuer,
        options=options,
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify the account id from a bearer JWT.

    Returns:
        Authenticated account id (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return user_id


async def require_admin(user_id: str = Depends(get_current_user_id)) -> str:
    """
    Require the admin capability.

    Returns:
        The admin's account id, recorded as the actor in audit rows.
    """
    if not await get_account_capabilities().has_capability(user_id, ADMIN_ROLE):
        logger.warning(f"Account {user_id} attempted an admin operation")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin capability required",
        )
    return user_id


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
) -> bool:
    """Verify the scheduler's ``Authorization: Bearer <CRON_SECRET>`` header."""
    expected = f"Bearer {get_settings().cron_secret}"

    # Use secrets.compare_digest for timing-attack resistance
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("Invalid cron secret attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )

    return True


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from directory_billing.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    ListingRepoDep,
)
