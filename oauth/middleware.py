"""Middleware for the MCP endpoint.

MCPOAuthMiddleware validates Bearer tokens and exposes the identity payload
(Props) to tools as request.state.props. DevPropsMiddleware attaches a fixed
identity when OAuth is disabled for local tool testing.
"""

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from oauth.errors import OAuthError
from oauth.jwt_utils import props_from_payload, verify_access_token
from oauth.models import Props

logger = logging.getLogger(__name__)


class MCPOAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for the Streamable HTTP MCP endpoint."""

    def __init__(self, app, server_url: str, jwt_secret: str):
        super().__init__(app)
        self.server_url = server_url
        self.jwt_secret = jwt_secret

    def _unauthorized(self, description: str) -> JSONResponse:
        return JSONResponse(
            {"error": "unauthorized", "error_description": description},
            status_code=401,
            headers={
                "WWW-Authenticate": f'Bearer resource_metadata="{self.server_url}/.well-known/oauth-protected-resource"'
            },
        )

    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            logger.info("[AUTH] Request rejected: no Bearer token")
            return self._unauthorized("Missing or invalid Authorization header")

        token_data = verify_access_token(auth_header[7:], self.jwt_secret, issuer=self.server_url)
        if not token_data:
            logger.info("[AUTH] Request rejected: invalid or expired token")
            return self._unauthorized("Invalid or expired token")

        props = props_from_payload(token_data)
        if props is None:
            logger.warning("[AUTH] Request rejected: token without identity payload")
            return self._unauthorized("Invalid token")

        request.state.props = props
        logger.info(f"[AUTH] Request authorized: {props.display_name} ({props.line_user_id})")
        return await call_next(request)


class DevPropsMiddleware(BaseHTTPMiddleware):
    """Attach the identity of DEV_LINE_USER_ID to every request.

    Development only: lets tools be exercised without going through LINE
    Login. The account is resolved on the first request and cached.
    """

    def __init__(self, app, identity, line_user_id: str):
        super().__init__(app)
        self.identity = identity
        self.line_user_id = line_user_id
        self._props: Optional[Props] = None

    async def dispatch(self, request: Request, call_next):
        if self._props is None:
            try:
                account_id = await self.identity.resolve(self.line_user_id)
            except OAuthError as e:
                logger.error(f"[AUTH] Dev auth failed ({e.kind}): check DEV_LINE_USER_ID and COMMON_PASSWORD_PREFIX")
                return JSONResponse(
                    {"error": "dev_auth_failed", "error_description": e.message},
                    status_code=500,
                )
            self._props = Props(
                line_user_id=self.line_user_id,
                supabase_user_id=account_id,
                display_name="dev",
            )

        request.state.props = self._props
        return await call_next(request)
