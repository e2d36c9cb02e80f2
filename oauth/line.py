"""LINE Login client.

Builds the authorization URL, exchanges authorization codes and fetches the
user profile. Calls are never retried: LINE authorization codes are single
use, so a second attempt could not succeed.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from oauth.errors import IdpFailure
from oauth.models import LineProfile

logger = logging.getLogger(__name__)

LINE_AUTHORIZE_URL = "https://access.line.me/oauth2/v2.1/authorize"
LINE_TOKEN_URL = "https://api.line.me/oauth2/v2.1/token"
LINE_PROFILE_URL = "https://api.line.me/v2/profile"
LINE_SCOPE = "profile openid"


class LineClient:
    """Talks to LINE Login on behalf of the authorization flow.

    Args:
        timeout: Seconds per request; None keeps the httpx default.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(self, timeout: Optional[float] = None, transport: httpx.AsyncBaseTransport = None):
        self.timeout = timeout if timeout is not None else httpx.Timeout(5.0)
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def build_authorize_url(self, channel_id: str, redirect_uri: str, state_token: str) -> str:
        params = {
            "response_type": "code",
            "client_id": channel_id,
            "redirect_uri": redirect_uri,
            "state": state_token,
            "scope": LINE_SCOPE,
        }
        return f"{LINE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, channel_id: str, channel_secret: str, redirect_uri: str) -> str:
        """Exchange an authorization code for a LINE access token."""
        async with self._client() as client:
            response = await client.post(
                LINE_TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": channel_id,
                    "client_secret": channel_secret,
                },
            )

        if not response.is_success:
            logger.warning(f"[LINE] Token exchange failed ({response.status_code}): {response.text}")
            raise IdpFailure(
                "Failed to exchange LINE authorization code",
                kind="IDP_EXCHANGE_FAILED",
                upstream_body=response.text,
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        access_token = body.get("access_token") if isinstance(body, dict) else None

        if not access_token:
            logger.warning(f"[LINE] Token response without access_token: {response.text}")
            raise IdpFailure(
                "Missing access token from LINE",
                kind="IDP_EXCHANGE_FAILED",
                upstream_body=response.text,
            )

        return access_token

    async def fetch_profile(self, access_token: str) -> LineProfile:
        async with self._client() as client:
            response = await client.get(
                LINE_PROFILE_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if not response.is_success:
            logger.warning(f"[LINE] Profile fetch failed ({response.status_code}): {response.text}")
            raise IdpFailure(
                "Failed to fetch LINE profile",
                kind="IDP_PROFILE_FAILED",
                upstream_body=response.text,
            )

        try:
            return LineProfile.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning(f"[LINE] Malformed profile response: {response.text}")
            raise IdpFailure(
                "Failed to fetch LINE profile",
                kind="IDP_PROFILE_FAILED",
                upstream_body=response.text,
            )
