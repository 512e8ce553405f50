"""
Airtable OAuth Flow

AuthFlowController bridges the application session (a signed JWT) to
Airtable's OAuth2 authorization-code flow with PKCE.

Flow:
    1. begin_authorization(session_id) stores a random state and code
       verifier under the browser's session id and returns the Airtable
       authorization URL.
    2. complete_authorization(...) checks the returned state against the
       stored one, exchanges the code for tokens, identifies the Airtable
       user, upserts the User row and returns a session JWT.
    3. refresh(...) swaps the stored refresh token for a new token pair.

Token endpoint calls are single attempts; provider failures surface
immediately.
"""

import base64
import hashlib
import secrets
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from auth import create_session_token
from config.constants import AIRTABLE_OAUTH_SCOPES, PKCE_CHALLENGE_METHOD
from config.settings import Settings
from core.models import User, Form, Response, generate_id, utcnow, as_utc
from services.airtable.client import AirtableClient
from services.airtable.exceptions import AirtableAPIError
from services.auth.session_store import (
    save_oauth_session,
    load_oauth_session,
    clear_oauth_session,
)
from utils.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    InvalidRequestError,
    NoRefreshTokenError,
    NotFoundError,
    StateMismatchError,
    UpstreamError,
)
from utils.logging import get_logger, log_api_call

logger = get_logger(__name__)

# Airtable's whoami only returns an email with the user.email:read scope
PLACEHOLDER_EMAIL_DOMAIN = "users.airtable.invalid"


# =============================================================================
# PKCE helpers
# =============================================================================

def generate_state() -> str:
    return secrets.token_hex(16)


def generate_code_verifier() -> str:
    return secrets.token_urlsafe(32)


def code_challenge_for(verifier: str) -> str:
    """base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def is_token_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """now > expires_at; no expiry means the token never expires."""
    if expires_at is None:
        return False
    now = as_utc(now) if now else utcnow()
    return now > as_utc(expires_at)


class AuthFlowController:
    """
    Airtable OAuth2 controller.

    One instance per process; the database session is passed per call.
    """

    SERVICE_NAME = "Airtable OAuth"

    def __init__(
        self,
        settings: Settings,
        airtable_client: AirtableClient,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.airtable = airtable_client
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.AIRTABLE_TIMEOUT_SECONDS)
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Authorization
    # =========================================================================

    async def begin_authorization(self, session_id: str) -> str:
        """
        Build the Airtable authorization URL for this browser session.

        Args:
            session_id: Opaque id from the session cookie

        Returns:
            Authorization URL the browser should be sent to
        """
        state = generate_state()
        verifier = generate_code_verifier() if self.settings.AIRTABLE_USE_PKCE else None

        await save_oauth_session(
            session_id, state, verifier, ttl=self.settings.OAUTH_STATE_TTL_SECONDS
        )

        params = {
            "client_id": self.settings.AIRTABLE_CLIENT_ID,
            "redirect_uri": self.settings.AIRTABLE_REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(AIRTABLE_OAUTH_SCOPES),
            "state": state,
        }
        if verifier:
            params["code_challenge"] = code_challenge_for(verifier)
            params["code_challenge_method"] = PKCE_CHALLENGE_METHOD

        return f"{self.settings.AIRTABLE_AUTH_URL}?{urlencode(params)}"

    async def complete_authorization(
        self,
        db: AsyncSession,
        session_id: Optional[str],
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> Tuple[str, User]:
        """
        Finish the OAuth callback.

        Args:
            db: Database session
            session_id: Session id from the cookie set by begin_authorization
            code: Authorization code from the callback
            state: State echoed back by Airtable
            error: Provider error code, when the user denied access

        Returns:
            (session token, user)

        Raises:
            AuthenticationError: Provider reported an error
            InvalidRequestError: No code in the callback
            StateMismatchError: State missing, expired or different
            UpstreamError: Token exchange or whoami failed
        """
        if error:
            raise AuthenticationError(
                error_description or "Airtable authorization was denied",
                details={"providerError": error},
            )
        if not code:
            raise InvalidRequestError("Missing authorization code", field="code")

        session = await load_oauth_session(session_id)
        if not session or not state or session.get("oauthState") != state:
            logger.warning("OAuth callback rejected: state mismatch")
            raise StateMismatchError()

        await clear_oauth_session(session_id)

        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.AIRTABLE_REDIRECT_URI,
        }
        if session.get("codeVerifier"):
            form["code_verifier"] = session["codeVerifier"]

        try:
            tokens = await self._post_token(form)
        except AirtableAPIError as e:
            raise UpstreamError(
                "Failed to exchange authorization code",
                details={"statusCode": e.status_code, "error": e.error_body},
            )

        try:
            identity = await self.airtable.whoami(tokens["access_token"])
        except AirtableAPIError as e:
            raise UpstreamError(
                "Failed to identify Airtable user",
                details={"statusCode": e.status_code, "error": e.error_body},
            )

        user = await self._upsert_user(db, identity, tokens)
        token = create_session_token(user.id, self.settings)

        logger.info(f"User logged in via Airtable: {user.id}")
        return token, user

    async def logout(self, session_id: Optional[str]) -> None:
        """Drop any OAuth session left behind. Session JWTs are not revoked."""
        await clear_oauth_session(session_id)

    # =========================================================================
    # Tokens
    # =========================================================================

    async def refresh(self, db: AsyncSession, user_id: str) -> User:
        """
        Exchange the stored refresh token for a new token pair.

        The stored refresh token is replaced only when Airtable returns a
        new one. Concurrent refreshes are not serialized; the last write wins.

        Raises:
            NotFoundError: Unknown user
            NoRefreshTokenError: No refresh token stored
            AuthExpiredError: Airtable rejected the refresh token
            UpstreamError: Any other token endpoint failure
        """
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="user", resource_id=user_id)
        if not user.airtable_refresh_token:
            raise NoRefreshTokenError()

        try:
            tokens = await self._post_token({
                "grant_type": "refresh_token",
                "refresh_token": user.airtable_refresh_token,
            })
        except AirtableAPIError as e:
            if e.status_code in (400, 401):
                raise AuthExpiredError(
                    "Airtable refresh token was rejected",
                    details={"error": e.error_body},
                )
            raise UpstreamError(
                "Failed to refresh Airtable token",
                details={"statusCode": e.status_code, "error": e.error_body},
            )

        self._apply_tokens(user, tokens)
        await db.commit()
        await db.refresh(user)

        logger.info(f"Airtable token refreshed for user {user.id}")
        return user

    def is_expired(self, user: User, now: Optional[datetime] = None) -> bool:
        return is_token_expired(user.airtable_token_expires_at, now)

    async def ensure_fresh_token(self, db: AsyncSession, user: User) -> str:
        """
        Access token for background work on behalf of a user.

        Refreshes first when the token has expired and a refresh token
        exists.

        Raises:
            AuthExpiredError: Expired with no way to refresh
        """
        if not self.is_expired(user):
            return user.airtable_access_token
        if not user.airtable_refresh_token:
            raise AuthExpiredError()
        refreshed = await self.refresh(db, user.id)
        return refreshed.airtable_access_token

    # =========================================================================
    # Account
    # =========================================================================

    async def delete_account(self, db: AsyncSession, user_id: str) -> None:
        """
        Remove a user with all their forms and responses.

        Responses, forms and the user are deleted in one transaction.
        """
        form_ids = select(Form.id).where(Form.user_id == user_id)

        result = await db.execute(delete(Response).where(Response.form_id.in_(form_ids)))
        await db.execute(delete(Form).where(Form.user_id == user_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()

        logger.info(f"Account deleted: {user_id} ({result.rowcount} responses removed)")

    # =========================================================================
    # Internal
    # =========================================================================

    async def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        """POST form-encoded data to the token endpoint."""
        client = await self._get_client()
        auth = None
        if self.settings.AIRTABLE_CLIENT_SECRET:
            auth = (self.settings.AIRTABLE_CLIENT_ID, self.settings.AIRTABLE_CLIENT_SECRET)
        else:
            data = {**data, "client_id": self.settings.AIRTABLE_CLIENT_ID}

        endpoint = f"POST {self.settings.AIRTABLE_TOKEN_URL}"
        start = time.perf_counter()
        try:
            response = await client.post(self.settings.AIRTABLE_TOKEN_URL, data=data, auth=auth)
        except httpx.HTTPError as e:
            log_api_call(self.SERVICE_NAME, endpoint, False, (time.perf_counter() - start) * 1000, error=str(e))
            raise AirtableAPIError(0, str(e) or e.__class__.__name__, endpoint) from e

        duration_ms = (time.perf_counter() - start) * 1000
        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            error = AirtableAPIError(response.status_code, payload, endpoint)
            log_api_call(self.SERVICE_NAME, endpoint, False, duration_ms, error=error.error_message)
            raise error

        log_api_call(self.SERVICE_NAME, endpoint, True, duration_ms)
        return response.json()

    @staticmethod
    def _apply_tokens(user: User, tokens: Dict[str, Any]) -> None:
        user.airtable_access_token = tokens["access_token"]
        if tokens.get("refresh_token"):
            user.airtable_refresh_token = tokens["refresh_token"]
        expires_in = tokens.get("expires_in")
        user.airtable_token_expires_at = (
            utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
        )

    async def _upsert_user(
        self,
        db: AsyncSession,
        identity: Dict[str, Any],
        tokens: Dict[str, Any],
    ) -> User:
        airtable_user_id = identity["id"]
        email = (identity.get("email") or "").strip().lower()

        result = await db.execute(select(User).where(User.airtable_user_id == airtable_user_id))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(
                id=generate_id(),
                airtable_user_id=airtable_user_id,
                email=email or f"{airtable_user_id}@{PLACEHOLDER_EMAIL_DOMAIN}".lower(),
                profile={
                    "name": email.split("@")[0] if email else None,
                    "avatarUrl": None,
                    "airtableUsername": identity.get("email"),
                },
                is_active=True,
            )
            db.add(user)
            logger.info(f"New user registered: {airtable_user_id}")
        elif email:
            user.email = email

        self._apply_tokens(user, tokens)
        user.last_login_at = utcnow()

        await db.commit()
        await db.refresh(user)
        return user
