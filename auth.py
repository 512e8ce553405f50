"""
Authentication Utilities Module

Application session tokens and the FastAPI dependencies that resolve them.
Sessions are JWTs signed with python-jose; the subject is the user id.
Airtable's own tokens never leave the server.

Usage:
    from auth import create_session_token, get_current_user

    token = create_session_token(user.id)

    @router.get("/me")
    async def me(user: User = Depends(get_current_user)):
        ...
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings, get_settings
from core import models, database
from utils.logging import get_logger
from utils.exceptions import AuthenticationError, AuthExpiredError, AccessDeniedError

logger = get_logger(__name__)

# Bearer token from the Authorization header; missing header handled below
bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# JWT Session Tokens
# =============================================================================

def create_session_token(
    user_id: str,
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed session token.

    Args:
        user_id: Id of the authenticated user (stored as "sub")
        settings: Settings to sign with; defaults to get_settings()
        expires_delta: Optional custom lifetime.
                       Defaults to SESSION_TOKEN_EXPIRE_DAYS.

    Returns:
        str: Encoded JWT
    """
    settings = settings or get_settings()
    lifetime = expires_delta or timedelta(days=settings.SESSION_TOKEN_EXPIRE_DAYS)
    now = datetime.now(timezone.utc)

    to_encode = {
        "sub": user_id,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    """
    Decode and validate a session token.

    Returns:
        dict: Decoded payload, or None if invalid or expired
    """
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


# =============================================================================
# User Authentication Dependencies
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(database.get_db)
) -> models.User:
    """
    FastAPI dependency resolving the bearer token to a user.

    Raises:
        AuthenticationError: Missing, invalid or expired token, or unknown user
        AccessDeniedError: Account is deactivated
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")

    payload = decode_session_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        logger.warning("Rejected invalid session token")
        raise AuthenticationError("Invalid or expired token")

    user = await db.get(models.User, payload["sub"])
    if user is None:
        logger.warning(f"User not found for token subject: {payload['sub']}")
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AccessDeniedError("Account is deactivated")

    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(database.get_db)
) -> Optional[models.User]:
    """
    Optional version of get_current_user for public endpoints.

    Returns:
        Optional[User]: User if a valid token was sent, None otherwise
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials, db)
    except (AuthenticationError, AccessDeniedError):
        return None


async def get_airtable_token(
    user: models.User = Depends(get_current_user)
) -> str:
    """
    The current user's Airtable access token.

    Raises:
        AuthExpiredError: Token has expired; the client should refresh
    """
    expires_at = models.as_utc(user.airtable_token_expires_at)
    if expires_at is not None and datetime.now(timezone.utc) > expires_at:
        raise AuthExpiredError()
    return user.airtable_access_token
