"""Signed cookie listing the OAuth clients this browser already approved.

Cookie value (URL-encoded): `<json list of client ids>|<hex hmac-sha256>`.
A cookie that fails to parse or verify counts as no approvals; rotating the
secret therefore makes every user consent again.
"""

import json
import logging
from typing import Mapping
from urllib.parse import quote, unquote

from oauth.cookies import CookieDirective
from oauth.crypto import sign, verify_signature

logger = logging.getLogger(__name__)

APPROVED_COOKIE = "__Host-approved"
APPROVAL_MAX_AGE = 365 * 24 * 60 * 60  # 1 year


class ApprovalCache:
    def __init__(self, secret: str):
        if not secret:
            raise ValueError("ApprovalCache needs a signing secret (COOKIE_ENCRYPTION_KEY)")
        self.secret = secret

    def approved_clients(self, cookies: Mapping[str, str]) -> list[str]:
        raw = cookies.get(APPROVED_COOKIE)
        if not raw:
            return []

        decoded = unquote(raw)
        data, sep, signature = decoded.rpartition("|")
        if not sep:
            return []

        if not verify_signature(data, signature, self.secret):
            logger.info("[APPROVAL] Ignoring approved-clients cookie with bad signature")
            return []

        try:
            clients = json.loads(data)
        except ValueError:
            return []

        if not isinstance(clients, list) or not all(isinstance(c, str) for c in clients):
            return []
        return clients

    def is_approved(self, client_id: str, cookies: Mapping[str, str]) -> bool:
        return client_id in self.approved_clients(cookies)

    def approve(self, client_id: str, cookies: Mapping[str, str]) -> CookieDirective:
        """Add client_id to the list and return the replacement cookie."""
        approved = self.approved_clients(cookies)
        if client_id not in approved:
            approved.append(client_id)

        data = json.dumps(approved, separators=(",", ":"))
        value = quote(f"{data}|{sign(data, self.secret)}", safe="")
        return CookieDirective(APPROVED_COOKIE, value, samesite="lax", max_age=APPROVAL_MAX_AGE)
