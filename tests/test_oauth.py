"""
Tests for the Airtable OAuth flow controller.

Token endpoint and whoami are served by FakeAirtable.
"""

from datetime import timedelta
from urllib.parse import urlparse, parse_qs

import pytest
from sqlalchemy import select, func

from auth import decode_session_token
from core.models import User, Form, Response, generate_id, utcnow
from services.auth.oauth import code_challenge_for
from services.auth.session_store import load_oauth_session, save_oauth_session
from utils.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    NoRefreshTokenError,
    StateMismatchError,
    UpstreamError,
)

TOKEN_PATH = "/oauth2/v1/token"
WHOAMI_PATH = "/v0/meta/whoami"


def _token_form(request):
    return parse_qs(request.content.decode())


async def _user_count(db):
    return (await db.execute(select(func.count()).select_from(User))).scalar_one()


class TestBeginAuthorization:
    """Tests for building the authorization URL."""

    async def test_url_carries_state_scopes_and_challenge(self, auth_controller):
        """The authorize URL carries state, scopes and the S256 challenge."""
        url = await auth_controller.begin_authorization("sid-1")

        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        session = await load_oauth_session("sid-1")

        assert parsed.netloc == "airtable.com"
        assert params["client_id"] == "test-client-id"
        assert params["response_type"] == "code"
        assert params["scope"] == "data.records:read data.records:write schema.bases:read"
        assert params["state"] == session["oauthState"]
        assert params["code_challenge_method"] == "S256"
        assert params["code_challenge"] == code_challenge_for(session["codeVerifier"])

    async def test_each_login_gets_fresh_state(self, auth_controller):
        """Every login gets its own state."""
        await auth_controller.begin_authorization("sid-a")
        await auth_controller.begin_authorization("sid-b")

        first = await load_oauth_session("sid-a")
        second = await load_oauth_session("sid-b")

        assert first["oauthState"] != second["oauthState"]


class TestCompleteAuthorization:
    """Tests for the OAuth callback."""

    @pytest.fixture
    def provider(self, fake_airtable):
        fake_airtable.add("POST", TOKEN_PATH, json={
            "access_token": "acc-1",
            "refresh_token": "ref-1",
            "expires_in": 3600,
            "token_type": "Bearer",
        })
        fake_airtable.add("GET", WHOAMI_PATH, json={"id": "usrNew", "email": "New@Example.com"})
        return fake_airtable

    async def test_state_mismatch_writes_nothing(self, auth_controller, test_db, provider):
        """A forged state is rejected before any user is written."""
        await save_oauth_session("sid-1", "expected-state", "verifier", ttl=600)

        with pytest.raises(StateMismatchError):
            await auth_controller.complete_authorization(test_db, "sid-1", code="c", state="forged")

        assert await _user_count(test_db) == 0
        assert provider.calls("POST", TOKEN_PATH) == []

    async def test_missing_session_is_state_mismatch(self, auth_controller, test_db, provider):
        """A callback without a stored session is a state mismatch."""
        with pytest.raises(StateMismatchError):
            await auth_controller.complete_authorization(test_db, None, code="c", state="s")

        assert await _user_count(test_db) == 0

    async def test_provider_error_rejected(self, auth_controller, test_db):
        with pytest.raises(AuthenticationError):
            await auth_controller.complete_authorization(
                test_db, "sid-1", code=None, state="s", error="access_denied"
            )

    async def test_success_creates_user_and_session_token(self, auth_controller, test_db, provider):
        """A good callback stores tokens and returns a session token."""
        await save_oauth_session("sid-1", "state-1", "verifier-1", ttl=600)

        token, user = await auth_controller.complete_authorization(
            test_db, "sid-1", code="code-1", state="state-1"
        )

        assert decode_session_token(token)["sub"] == user.id
        assert user.airtable_user_id == "usrNew"
        assert user.email == "new@example.com"
        assert user.airtable_access_token == "acc-1"
        assert user.airtable_refresh_token == "ref-1"
        assert user.airtable_token_expires_at is not None
        assert user.last_login_at is not None

        form = _token_form(provider.calls("POST", TOKEN_PATH)[0])
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["code-1"]
        assert form["code_verifier"] == ["verifier-1"]
        assert form["client_id"] == ["test-client-id"]

    async def test_session_is_consumed(self, auth_controller, test_db, provider):
        """The OAuth session cannot be replayed."""
        await save_oauth_session("sid-1", "state-1", "verifier-1", ttl=600)
        await auth_controller.complete_authorization(test_db, "sid-1", code="c", state="state-1")

        assert await load_oauth_session("sid-1") is None
        with pytest.raises(StateMismatchError):
            await auth_controller.complete_authorization(test_db, "sid-1", code="c", state="state-1")

    async def test_existing_user_is_updated(self, auth_controller, test_db, provider, make_user):
        """Logging in again updates the existing user."""
        existing = await make_user(airtable_user_id="usrNew", email="new@example.com")
        await save_oauth_session("sid-1", "state-1", None, ttl=600)

        _, user = await auth_controller.complete_authorization(
            test_db, "sid-1", code="c", state="state-1"
        )

        assert user.id == existing.id
        assert user.airtable_access_token == "acc-1"
        assert await _user_count(test_db) == 1

    async def test_missing_email_gets_placeholder(self, auth_controller, test_db, fake_airtable):
        fake_airtable.add("POST", TOKEN_PATH, json={"access_token": "acc", "expires_in": 3600})
        fake_airtable.add("GET", WHOAMI_PATH, json={"id": "usrX"})
        await save_oauth_session("sid-1", "state-1", None, ttl=600)

        _, user = await auth_controller.complete_authorization(
            test_db, "sid-1", code="c", state="state-1"
        )

        assert user.email == "usrx@users.airtable.invalid"

    async def test_exchange_failure_surfaced(self, auth_controller, test_db, fake_airtable):
        """A failed token exchange surfaces as an upstream error and writes no user."""
        fake_airtable.add("POST", TOKEN_PATH, status=400, json={"error": "invalid_grant"})
        await save_oauth_session("sid-1", "state-1", "v", ttl=600)

        with pytest.raises(UpstreamError) as exc_info:
            await auth_controller.complete_authorization(test_db, "sid-1", code="c", state="state-1")

        assert exc_info.value.details["statusCode"] == 400
        assert len(fake_airtable.calls("POST", TOKEN_PATH)) == 1
        assert await _user_count(test_db) == 0


class TestRefresh:
    """Tests for token refresh."""

    async def test_keeps_refresh_token_when_not_rotated(self, auth_controller, test_db, fake_airtable, make_user):
        """The old refresh token is kept when none is returned."""
        user = await make_user(refresh_token="stable-refresh")
        fake_airtable.add("POST", TOKEN_PATH, json={"access_token": "new-access", "expires_in": 3600})

        refreshed = await auth_controller.refresh(test_db, user.id)

        assert refreshed.airtable_access_token == "new-access"
        assert refreshed.airtable_refresh_token == "stable-refresh"
        form = _token_form(fake_airtable.calls("POST", TOKEN_PATH)[0])
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["stable-refresh"]

    async def test_replaces_rotated_refresh_token(self, auth_controller, test_db, fake_airtable, make_user):
        """A rotated refresh token replaces the stored one."""
        user = await make_user(refresh_token="old")
        fake_airtable.add("POST", TOKEN_PATH, json={
            "access_token": "a", "refresh_token": "new", "expires_in": 60,
        })

        refreshed = await auth_controller.refresh(test_db, user.id)

        assert refreshed.airtable_refresh_token == "new"

    async def test_updates_expiry(self, auth_controller, test_db, fake_airtable, make_user):
        user = await make_user(expires_in=timedelta(hours=-1))
        fake_airtable.add("POST", TOKEN_PATH, json={"access_token": "a", "expires_in": 3600})

        refreshed = await auth_controller.refresh(test_db, user.id)

        assert auth_controller.is_expired(refreshed) is False

    async def test_no_refresh_token(self, auth_controller, test_db, make_user):
        """Refreshing without a refresh token raises NoRefreshTokenError."""
        user = await make_user(refresh_token=None)

        with pytest.raises(NoRefreshTokenError):
            await auth_controller.refresh(test_db, user.id)

    async def test_rejected_refresh_token(self, auth_controller, test_db, fake_airtable, make_user):
        """A rejected refresh means the login has expired."""
        user = await make_user()
        fake_airtable.add("POST", TOKEN_PATH, status=400, json={"error": "invalid_grant"})

        with pytest.raises(AuthExpiredError):
            await auth_controller.refresh(test_db, user.id)


class TestDeleteAccount:
    """Tests for cascading account deletion."""

    async def test_removes_forms_and_responses(self, auth_controller, test_db, make_user, make_form):
        """Account deletion removes the user with all forms and responses."""
        user = await make_user()
        other = await make_user(airtable_user_id="usrOther", email="o@example.com")
        form = await make_form(user)
        kept = await make_form(other)
        for target in (form, kept):
            test_db.add(Response(
                id=generate_id(),
                form_id=target.id,
                airtable_base_id="appBase",
                airtable_table_id="tblLeads",
                answers=[],
                submitted_by={},
                status="pending",
                errors=[],
                sync_attempts=0,
                is_synced=False,
                response_metadata={},
                created_at=utcnow(),
            ))
        await test_db.commit()

        await auth_controller.delete_account(test_db, user.id)
        test_db.expunge_all()

        assert await test_db.get(User, user.id) is None
        forms = (await test_db.execute(select(Form.id))).scalars().all()
        responses = (await test_db.execute(select(Response.form_id))).scalars().all()
        assert forms == [kept.id]
        assert responses == [kept.id]
