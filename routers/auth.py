"""
Authentication Router

Airtable OAuth login and account management.

Endpoints:
    GET    /api/auth/airtable           - Start OAuth, returns authUrl
    GET    /api/auth/airtable/callback  - OAuth redirect target
    POST   /api/auth/refresh            - Refresh the Airtable token
    GET    /api/auth/me                 - Current user
    POST   /api/auth/logout             - End the session
    DELETE /api/auth/account            - Delete account and all data
    POST   /api/auth/verify             - Check session and Airtable token
    POST   /api/auth/update-profile     - Change display name
    GET    /api/auth/stats              - Account statistics
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import Settings
from core import models, schemas, database
from core.dependencies import get_app_settings, get_auth_controller, get_form_service
from auth import get_current_user
from services.auth.oauth import AuthFlowController
from services.auth.session_store import new_session_id
from services.forms.form_service import FormService
from utils.exceptions import AuthExpiredError, InvalidRequestError
from utils.logging import get_logger
from utils.rate_limit import limiter, RATE_LIMITS

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication & Users"])


# =============================================================================
# OAuth
# =============================================================================

@router.get(
    "/airtable",
    response_model=schemas.AuthUrlResponse,
    summary="Start Airtable login",
)
@limiter.limit(RATE_LIMITS["auth"])
async def airtable_login(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """
    Begin the Airtable OAuth flow.

    Sets the session cookie that the callback must carry back; the OAuth
    state and PKCE verifier stay on the server under that session id.

    Returns:
        AuthUrlResponse: URL to send the browser to
    """
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME) or new_session_id()
    auth_url = await controller.begin_authorization(session_id)

    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.OAUTH_STATE_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
    )
    return schemas.AuthUrlResponse(auth_url=auth_url)


@router.get(
    "/airtable/callback",
    summary="Airtable OAuth callback",
    responses={
        307: {"description": "Redirect to the client with the session token"},
        400: {"description": "State mismatch or missing code"},
    }
)
@limiter.limit(RATE_LIMITS["auth"])
async def airtable_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    db: AsyncSession = Depends(database.get_db),
    settings: Settings = Depends(get_app_settings),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """
    Finish the OAuth flow and hand the session token to the client.

    Raises:
        StateMismatchError: State differs from the one stored for the session
        UpstreamError: Airtable token exchange failed
    """
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    token, user = await controller.complete_authorization(
        db,
        session_id,
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )

    redirect = RedirectResponse(
        f"{settings.CLIENT_URL.rstrip('/')}/auth/callback?token={token}",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
    redirect.delete_cookie(settings.SESSION_COOKIE_NAME)
    return redirect


@router.post(
    "/refresh",
    response_model=schemas.MessageResponse,
    summary="Refresh Airtable token",
)
@limiter.limit(RATE_LIMITS["auth"])
async def refresh_token(
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(database.get_db),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """
    Swap the stored Airtable refresh token for a new token pair.

    Raises:
        NoRefreshTokenError: No refresh token stored
    """
    await controller.refresh(db, current_user.id)
    return {"message": "Token refreshed successfully"}


# =============================================================================
# Session
# =============================================================================

@router.get("/me", response_model=schemas.UserResponse, summary="Current user")
async def read_me(
    current_user: models.User = Depends(get_current_user),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """
    Get the authenticated user.

    Raises:
        AuthExpiredError: Airtable token expired (needsRefresh in body)
    """
    if controller.is_expired(current_user):
        raise AuthExpiredError("Token expired")
    return current_user


@router.post("/logout", response_model=schemas.MessageResponse, summary="Log out")
async def logout(
    request: Request,
    response: Response,
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """End the session. The client discards its token."""
    await controller.logout(request.cookies.get(settings.SESSION_COOKIE_NAME))
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    logger.info(f"User logged out: {current_user.id}")
    return {"message": "Logged out successfully"}


@router.delete("/account", response_model=schemas.MessageResponse, summary="Delete account")
async def delete_account(
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(database.get_db),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """Delete the account with all its forms and responses."""
    await controller.delete_account(db, current_user.id)
    return {"message": "Account and all associated data deleted successfully"}


@router.post("/verify", response_model=schemas.VerifyResponse, summary="Verify session")
async def verify(
    current_user: models.User = Depends(get_current_user),
    controller: AuthFlowController = Depends(get_auth_controller),
):
    """
    Check the session token and the stored Airtable token.

    An expired Airtable token is reported as valid with needsRefresh.
    """
    if controller.is_expired(current_user):
        return schemas.VerifyResponse(
            valid=True,
            needs_refresh=True,
            message="Airtable token expired, refresh required",
        )
    return schemas.VerifyResponse(valid=True, user=current_user)


# =============================================================================
# Profile
# =============================================================================

@router.post(
    "/update-profile",
    response_model=schemas.ProfileUpdateResponse,
    summary="Update profile",
)
async def update_profile(
    data: schemas.ProfileUpdate,
    current_user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(database.get_db),
):
    """
    Change the user's display name.

    Raises:
        InvalidRequestError: Name missing or blank
    """
    name = (data.name or "").strip()
    if not name:
        raise InvalidRequestError("Name is required", field="name")

    current_user.profile = {**(current_user.profile or {}), "name": name}
    await db.commit()
    await db.refresh(current_user)

    return {"message": "Profile updated successfully", "user": current_user}


@router.get("/stats", response_model=schemas.AccountStats, summary="Account statistics")
async def account_stats(
    current_user: models.User = Depends(get_current_user),
    forms: FormService = Depends(get_form_service),
):
    """Form, response and view counts plus the most recently updated forms."""
    return await forms.account_stats(current_user)
