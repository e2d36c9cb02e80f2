"""Binds a state token to the browser that started the flow.

The cookie holds sha256(state token). A callback is only accepted when the
state in its query string hashes to the cookie value, so a state token
planted in someone else's browser is useless.
"""

import logging
from typing import Mapping

from oauth.cookies import CookieDirective
from oauth.crypto import constant_time_equals, sha256_hex
from oauth.errors import StateFailure
from oauth.stores import DEFAULT_STATE_TTL

logger = logging.getLogger(__name__)

SESSION_COOKIE = "__Host-session"


class SessionBinder:
    def __init__(self, ttl_seconds: int = DEFAULT_STATE_TTL):
        self.ttl_seconds = ttl_seconds

    def bind(self, state_token: str) -> CookieDirective:
        # Lax so the cookie survives the top-level redirect back from LINE
        return CookieDirective(SESSION_COOKIE, sha256_hex(state_token), samesite="lax", max_age=self.ttl_seconds)

    def clear(self) -> CookieDirective:
        return CookieDirective(SESSION_COOKIE, samesite="lax", delete=True)

    def verify(self, state_token: str, cookies: Mapping[str, str]) -> CookieDirective:
        """Check the binding against request.cookies; returns the clear directive."""
        if not state_token:
            raise StateFailure("Missing state parameter", status_code=400, kind="STATE_MISSING")

        session_hash = cookies.get(SESSION_COOKIE)
        if not session_hash:
            logger.info("[SESSION] Callback without session cookie")
            raise StateFailure("Missing session cookie", status_code=400, kind="SESSION_COOKIE_MISSING")

        if not constant_time_equals(session_hash, sha256_hex(state_token)):
            logger.warning("[SESSION] Session binding mismatch")
            raise StateFailure("Session binding mismatch", status_code=403, kind="SESSION_MISMATCH")

        return self.clear()
