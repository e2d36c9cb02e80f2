# Tests for the MCP bearer middleware, the dev identity middleware and tools.

import json

import pytest
from conftest import LINE_USER_ID, SERVER_URL, FakeIdentity
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from oauth.jwt_utils import create_access_token, create_refresh_token
from oauth.middleware import DevPropsMiddleware, MCPOAuthMiddleware
from oauth.models import Props
from tools import greet

SECRET = "jwt-signing-key"
PROPS = Props(line_user_id=LINE_USER_ID, supabase_user_id="account-1", display_name="Taro")


def _app(middleware, **options) -> FastAPI:
    app = FastAPI()
    app.add_middleware(middleware, **options)

    @app.get("/whoami")
    async def whoami(request: Request):
        return request.state.props.model_dump()

    return app


@pytest.fixture
def bearer_client():
    return TestClient(_app(MCPOAuthMiddleware, server_url=SERVER_URL, jwt_secret=SECRET))


class TestMCPOAuthMiddleware:
    def test_valid_token_exposes_props(self, bearer_client):
        token = create_access_token(PROPS, "client-a", "mcp:tools", SERVER_URL, SECRET)
        resp = bearer_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json() == PROPS.model_dump()

    def test_missing_token(self, bearer_client):
        resp = bearer_client.get("/whoami")
        assert resp.status_code == 401
        assert "resource_metadata" in resp.headers["WWW-Authenticate"]

    def test_wrong_secret(self, bearer_client):
        token = create_access_token(PROPS, "client-a", "mcp:tools", SERVER_URL, "other-secret")
        resp = bearer_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_wrong_issuer(self, bearer_client):
        token = create_access_token(PROPS, "client-a", "mcp:tools", "https://elsewhere", SECRET)
        resp = bearer_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_refresh_token_is_rejected(self, bearer_client):
        token = create_refresh_token(PROPS, "client-a", "mcp:tools", SERVER_URL, SECRET)
        resp = bearer_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_expired_token(self, bearer_client):
        token = create_access_token(PROPS, "client-a", "mcp:tools", SERVER_URL, SECRET, expires_in=-10)
        resp = bearer_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestDevPropsMiddleware:
    def test_resolves_dev_user_once(self):
        identity = FakeIdentity()
        client = TestClient(_app(DevPropsMiddleware, identity=identity, line_user_id=LINE_USER_ID))
        assert client.get("/whoami").json()["line_user_id"] == LINE_USER_ID
        client.get("/whoami")
        assert identity.calls == [LINE_USER_ID]

    def test_unlinked_dev_user(self):
        client = TestClient(_app(DevPropsMiddleware, identity=FakeIdentity({}), line_user_id="U-unknown"))
        resp = client.get("/whoami")
        assert resp.status_code == 500
        assert resp.json()["error"] == "dev_auth_failed"


class TestHelloTool:
    @pytest.mark.asyncio
    async def test_greets_authenticated_user(self):
        result = json.loads(await greet(PROPS, FakeIdentity({LINE_USER_ID: "account-1"})))
        assert result["supabase_user_id"] == "account-1"
        assert result["line_user_id"] == LINE_USER_ID
        assert "Taro" in result["message"]

    @pytest.mark.asyncio
    async def test_without_identity(self):
        assert await greet(None, FakeIdentity()) == "Auth error: no authenticated user"

    @pytest.mark.asyncio
    async def test_sign_in_failure(self):
        result = await greet(PROPS, FakeIdentity({}))
        assert result == "Auth error: Failed to sign in to Supabase"
