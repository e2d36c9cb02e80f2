"""OAuth 2.1 provider for MCP clients.

This is the component the LINE broker delegates to:
- Discovery metadata (/.well-known/*)
- Client registration (/register) and client lookup
- Parsing /authorize requests
- Issuing authorization codes once the broker has identified the user
- Token endpoint (/token) for code and refresh-token grants
"""

import base64
import hashlib
import json
import logging
import secrets
import time
from typing import Mapping, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from oauth.crypto import constant_time_equals
from oauth.errors import ClientRequestInvalid
from oauth.jwt_utils import (
    ACCESS_TOKEN_EXPIRE_SECONDS,
    create_access_token,
    create_refresh_token,
    props_from_payload,
    verify_refresh_token,
)
from oauth.models import AuthRequest, ClientInfo, Props
from oauth.stores import KeyValueStore

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "oauth_client:"
CODE_PREFIX = "oauth_code:"
CODE_TTL = 600  # 10 minutes
SCOPES_SUPPORTED = ["mcp:tools", "mcp:read"]


class TokenError(Exception):
    """RFC 6749 token endpoint error."""

    def __init__(self, error: str, description: str = None, status_code: int = 400):
        super().__init__(description or error)
        self.error = error
        self.description = description
        self.status_code = status_code

    def to_response(self) -> JSONResponse:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return JSONResponse(body, status_code=self.status_code)


def pkce_s256(code_verifier: str) -> str:
    return base64.urlsafe_b64encode(
        hashlib.sha256(code_verifier.encode()).digest()
    ).rstrip(b"=").decode()


class OAuthProvider:
    def __init__(self, kv: KeyValueStore, server_url: str, jwt_secret: str):
        self.kv = kv
        self.server_url = server_url
        self.jwt_secret = jwt_secret

    # ============== Clients ==============

    async def register_client(self, data: dict) -> ClientInfo:
        auth_method = data.get("token_endpoint_auth_method", "none")
        client = ClientInfo(
            client_id=secrets.token_urlsafe(24),
            client_secret=secrets.token_urlsafe(32) if auth_method != "none" else None,
            client_name=data.get("client_name") or "MCP Client",
            redirect_uris=data.get("redirect_uris") or [],
            grant_types=data.get("grant_types") or ["authorization_code", "refresh_token"],
            response_types=data.get("response_types") or ["code"],
            token_endpoint_auth_method=auth_method,
            created_at=int(time.time()),
        )
        await self.kv.put(CLIENT_PREFIX + client.client_id, client.model_dump_json())
        logger.info(f"[REGISTER] Client registered: {client.client_name} ({client.client_id})")
        return client

    async def lookup_client(self, client_id: str) -> Optional[ClientInfo]:
        if not client_id:
            return None
        stored = await self.kv.get(CLIENT_PREFIX + client_id)
        if stored is None:
            return None
        try:
            return ClientInfo.model_validate_json(stored)
        except ValidationError:
            logger.warning(f"[REGISTER] Stored client {client_id} could not be decoded")
            return None

    # ============== Authorization ==============

    async def parse_auth_request(self, query: Mapping[str, str]) -> AuthRequest:
        """Build an AuthRequest from /authorize query parameters.

        A missing client_id is returned as-is; the caller decides how to
        reject it.
        """
        response_type = query.get("response_type", "code")
        if response_type != "code":
            raise ClientRequestInvalid("Unsupported response type")

        auth_request = AuthRequest(
            response_type=response_type,
            client_id=query.get("client_id", ""),
            redirect_uri=query.get("redirect_uri", ""),
            scope=query.get("scope", "").split(),
            state=query.get("state", ""),
            code_challenge=query.get("code_challenge", ""),
            code_challenge_method=query.get("code_challenge_method", "S256") or "S256",
            resource=query.get("resource"),
        )
        if not auth_request.client_id:
            return auth_request
        return await self.validate_auth_request(auth_request)

    async def validate_auth_request(self, auth_request: AuthRequest) -> AuthRequest:
        """Check the client and redirect URI against the registry."""
        client = await self.lookup_client(auth_request.client_id)
        if client is None:
            raise ClientRequestInvalid("Invalid client")

        if not auth_request.redirect_uri and len(client.redirect_uris) == 1:
            auth_request.redirect_uri = client.redirect_uris[0]
        if auth_request.redirect_uri not in client.redirect_uris:
            raise ClientRequestInvalid("Invalid redirect URI")

        if auth_request.code_challenge and auth_request.code_challenge_method not in ("S256", "plain"):
            raise ClientRequestInvalid("Unsupported code challenge method")

        return auth_request

    async def complete_authorization(
        self,
        request: AuthRequest,
        user_id: str,
        metadata: dict,
        scope: list[str],
        props: Props,
    ) -> str:
        """Issue an authorization code and return the client redirect URL."""
        code = secrets.token_urlsafe(32)
        grant = {
            "client_id": request.client_id,
            "redirect_uri": request.redirect_uri,
            "scope": scope,
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
            "user_id": user_id,
            "metadata": metadata,
            "props": props.model_dump(),
        }
        await self.kv.put(CODE_PREFIX + code, json.dumps(grant), ttl=CODE_TTL)
        logger.info(f"[AUTHORIZE] Code issued for user {user_id} to client {request.client_id}")

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        separator = "&" if "?" in request.redirect_uri else "?"
        return f"{request.redirect_uri}{separator}{urlencode(params)}"

    # ============== Tokens ==============

    def _issue_tokens(self, props: Props, client_id: str, scope: str) -> dict:
        return {
            "access_token": create_access_token(props, client_id, scope, self.server_url, self.jwt_secret),
            "token_type": "Bearer",
            "expires_in": ACCESS_TOKEN_EXPIRE_SECONDS,
            "refresh_token": create_refresh_token(props, client_id, scope, self.server_url, self.jwt_secret),
            "scope": scope,
        }

    async def _authenticate_client(self, client_id: str, client_secret: Optional[str]) -> ClientInfo:
        client = await self.lookup_client(client_id)
        if client is None:
            raise TokenError("invalid_client", "Unknown client", status_code=401)
        if client.client_secret:
            if not client_secret or not constant_time_equals(client_secret, client.client_secret):
                raise TokenError("invalid_client", "Client authentication failed", status_code=401)
        return client

    async def exchange_authorization_code(
        self,
        code: str,
        client_id: str,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> dict:
        if not code:
            raise TokenError("invalid_request", "Missing code")

        stored = await self.kv.take(CODE_PREFIX + code)
        if stored is None:
            raise TokenError("invalid_grant", "Invalid or expired code")
        grant = json.loads(stored)

        client_id = client_id or grant["client_id"]
        if client_id != grant["client_id"]:
            raise TokenError("invalid_grant", "Client mismatch")
        await self._authenticate_client(client_id, client_secret)

        if redirect_uri and redirect_uri != grant["redirect_uri"]:
            raise TokenError("invalid_grant", "Redirect URI mismatch")

        challenge = grant.get("code_challenge")
        if challenge:
            if not code_verifier:
                raise TokenError("invalid_grant", "Missing code verifier")
            if grant.get("code_challenge_method") == "plain":
                expected = code_verifier
            else:
                expected = pkce_s256(code_verifier)
            if not constant_time_equals(expected, challenge):
                raise TokenError("invalid_grant", "PKCE verification failed")

        props = Props.model_validate(grant["props"])
        scope = " ".join(grant.get("scope") or [])
        logger.info(f"[TOKEN] Tokens issued for user {grant['user_id']} to client {client_id}")
        return self._issue_tokens(props, client_id, scope)

    async def refresh(self, refresh_token: str, client_id: str, client_secret: Optional[str] = None) -> dict:
        payload = verify_refresh_token(refresh_token or "", self.jwt_secret, issuer=self.server_url)
        if payload is None:
            raise TokenError("invalid_grant", "Invalid or expired refresh token")

        client_id = client_id or payload.get("client_id")
        if client_id != payload.get("client_id"):
            raise TokenError("invalid_grant", "Client mismatch")
        await self._authenticate_client(client_id, client_secret)

        props = props_from_payload(payload)
        if props is None:
            raise TokenError("invalid_grant", "Malformed refresh token")
        return self._issue_tokens(props, client_id, payload.get("scope", ""))


def build_provider_router(provider: OAuthProvider) -> APIRouter:
    """Discovery, registration and token endpoints."""
    router = APIRouter(tags=["oauth"])
    server_url = provider.server_url

    @router.get("/.well-known/oauth-protected-resource")
    async def oauth_protected_resource():
        """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
        return {
            "resource": f"{server_url}/mcp",
            "authorization_servers": [server_url],
            "scopes_supported": SCOPES_SUPPORTED,
            "bearer_methods_supported": ["header"],
        }

    @router.get("/.well-known/oauth-authorization-server")
    async def oauth_authorization_server():
        """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
        return {
            "issuer": server_url,
            "authorization_endpoint": f"{server_url}/authorize",
            "token_endpoint": f"{server_url}/token",
            "registration_endpoint": f"{server_url}/register",
            "scopes_supported": SCOPES_SUPPORTED,
            "response_types_supported": ["code"],
            "response_modes_supported": ["query"],
            "grant_types_supported": ["authorization_code", "refresh_token"],
            "token_endpoint_auth_methods_supported": ["none", "client_secret_post"],
            "code_challenge_methods_supported": ["S256", "plain"],
        }

    @router.post("/register")
    async def register_client(request: Request):
        """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
        try:
            data = await request.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        redirect_uris = data.get("redirect_uris")
        if not redirect_uris or not isinstance(redirect_uris, list):
            return JSONResponse(
                {"error": "invalid_redirect_uri", "error_description": "redirect_uris is required"},
                status_code=400,
            )

        client = await provider.register_client(data)
        return JSONResponse(client.model_dump(exclude_none=True), status_code=201)

    @router.post("/token")
    async def token(request: Request):
        """OAuth 2.0 Token Endpoint."""
        content_type = request.headers.get("content-type", "")
        try:
            if content_type.startswith("application/json"):
                data = await request.json()
            else:
                data = dict(await request.form())
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return JSONResponse(
                {"error": "invalid_request", "error_description": "Expected a form or JSON object body"},
                status_code=400,
            )

        grant_type = data.get("grant_type")
        logger.debug(f"[TOKEN] grant_type: {grant_type}, client_id: {data.get('client_id')}")

        try:
            if grant_type == "authorization_code":
                tokens = await provider.exchange_authorization_code(
                    code=data.get("code"),
                    client_id=data.get("client_id"),
                    client_secret=data.get("client_secret"),
                    redirect_uri=data.get("redirect_uri"),
                    code_verifier=data.get("code_verifier"),
                )
            elif grant_type == "refresh_token":
                tokens = await provider.refresh(
                    refresh_token=data.get("refresh_token"),
                    client_id=data.get("client_id"),
                    client_secret=data.get("client_secret"),
                )
            else:
                raise TokenError("unsupported_grant_type")
        except TokenError as e:
            logger.info(f"[TOKEN] Rejected: {e.error} {e.description or ''}")
            return e.to_response()

        return JSONResponse(tokens, headers={"Cache-Control": "no-store"})

    return router
