"""
Auth Services

Airtable OAuth flow and the server-side session store backing it.
"""

from .oauth import AuthFlowController, code_challenge_for, is_token_expired
from .session_store import new_session_id, load_oauth_session

__all__ = [
    "AuthFlowController",
    "code_challenge_for",
    "is_token_expired",
    "new_session_id",
    "load_oauth_session",
]
