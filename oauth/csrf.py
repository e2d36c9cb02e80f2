"""Double-submit CSRF protection for the approval form."""

import logging
from typing import Mapping

from oauth.cookies import CookieDirective
from oauth.crypto import constant_time_equals, random_token
from oauth.errors import CsrfFailure

logger = logging.getLogger(__name__)

CSRF_COOKIE = "__Host-csrf"
CSRF_FIELD = "csrf_token"


class CsrfGuard:
    """Issues a CSRF token bound to a cookie and validates form submissions.

    Nothing is stored server-side: the token is valid when the hidden form
    field and the cookie carry the same value.
    """

    def issue(self) -> tuple[str, CookieDirective]:
        """Return (token, cookie). The caller sends the cookie."""
        token = random_token()
        return token, CookieDirective(CSRF_COOKIE, token, samesite="strict")

    def validate(self, submitted_token: str, cookies: Mapping[str, str]) -> None:
        if not submitted_token or not isinstance(submitted_token, str):
            logger.info("[CSRF] Rejected: token missing from form")
            raise CsrfFailure("Missing CSRF token", status_code=400, kind="CSRF_MISSING")

        cookie_token = cookies.get(CSRF_COOKIE)
        if not cookie_token:
            logger.info("[CSRF] Rejected: cookie missing")
            raise CsrfFailure("Missing CSRF token", status_code=400, kind="CSRF_MISSING")

        if not constant_time_equals(submitted_token, cookie_token):
            logger.warning("[CSRF] Rejected: token mismatch")
            raise CsrfFailure("CSRF token mismatch", status_code=403, kind="CSRF_MISMATCH")

    def clear(self) -> CookieDirective:
        return CookieDirective(CSRF_COOKIE, samesite="strict", delete=True)
