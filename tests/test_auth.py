"""
Unit Tests for Authentication

Tests for session token utilities and token expiry checks.
"""

import base64
import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from auth import create_session_token, decode_session_token
from services.auth.oauth import code_challenge_for, is_token_expired


class TestSessionTokens:
    """Tests for JWT session token utilities."""

    def test_create_and_decode_token(self):
        """Token should encode and decode correctly."""
        token = create_session_token("abc123")

        decoded = decode_session_token(token)

        assert decoded is not None
        assert decoded["sub"] == "abc123"
        assert "exp" in decoded

    def test_default_lifetime_is_seven_days(self):
        """Default expiry is seven days from now."""
        token = create_session_token("abc123")
        decoded = decode_session_token(token)

        lifetime = decoded["exp"] - decoded["iat"]
        assert lifetime == 7 * 24 * 3600

    def test_expired_token_returns_none(self):
        """Expired token should not decode."""
        token = create_session_token("abc123", expires_delta=timedelta(seconds=-10))

        assert decode_session_token(token) is None

    def test_invalid_token_returns_none(self):
        """Invalid token should return None."""
        assert decode_session_token("invalid.token.here") is None

    def test_empty_token_returns_none(self):
        """Empty token should return None."""
        assert decode_session_token("") is None


class TestTokenExpiry:
    """Tests for the Airtable token expiry predicate."""

    def test_no_expiry_never_expires(self):
        assert is_token_expired(None) is False

    def test_future_expiry_not_expired(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert is_token_expired(now + timedelta(minutes=1), now=now) is False

    def test_past_expiry_expired(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert is_token_expired(now - timedelta(seconds=1), now=now) is True

    def test_exact_expiry_not_expired(self):
        """Strictly after the expiry counts as expired."""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert is_token_expired(now, now=now) is False

    def test_naive_expiry_treated_as_utc(self):
        """SQLite returns naive datetimes."""
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        naive = datetime(2024, 1, 1, 11, 0)
        assert is_token_expired(naive, now=now) is True


class TestPKCE:
    """Tests for the PKCE code challenge."""

    def test_challenge_is_unpadded_base64url_sha256(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        expected = base64.urlsafe_b64encode(
            hashlib.sha256(verifier.encode()).digest()
        ).decode().rstrip("=")

        challenge = code_challenge_for(verifier)

        assert challenge == expected
        assert "=" not in challenge

    def test_known_vector(self):
        """RFC 7636 appendix B example."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
