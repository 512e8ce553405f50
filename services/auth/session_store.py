"""
OAuth Session Store

Server-side storage for a login in progress. The browser only holds an
opaque session id cookie; the OAuth state and PKCE verifier stay on the
server (Redis or in-process, see utils.cache) until the callback consumes
them or the TTL runs out.
"""

import secrets
from typing import Any, Dict, Optional

from utils.cache import get_cached, set_cached, delete_cached

SESSION_KEY_PREFIX = "oauth_session:"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def _key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


async def save_oauth_session(
    session_id: str,
    state: str,
    code_verifier: Optional[str],
    ttl: int,
) -> None:
    await set_cached(
        _key(session_id),
        {"oauthState": state, "codeVerifier": code_verifier},
        ttl=ttl,
    )


async def load_oauth_session(session_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not session_id:
        return None
    return await get_cached(_key(session_id))


async def clear_oauth_session(session_id: Optional[str]) -> bool:
    if not session_id:
        return False
    return await delete_cached(_key(session_id))
