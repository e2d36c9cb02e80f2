# Shared fixtures: configuration, in-memory store, fake LINE and Supabase.

import json
from http.cookiejar import DefaultCookiePolicy
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import Config
from oauth.endpoints import AuthorizationFlow, build_router
from oauth.errors import AccountNotLinked
from oauth.line import LINE_PROFILE_URL, LINE_TOKEN_URL, LineClient
from oauth.provider import OAuthProvider, build_provider_router
from oauth.stores import MemoryKeyValueStore, StateStore

SERVER_URL = "https://mcp.example.com"
CLIENT_REDIRECT = "https://client.example.com/oauth/callback"
LINE_USER_ID = "U1234567890abcdef"
ACCOUNT_ID = "8f14e45f-ceea-467f-a0e6-2b7b6f5b3a11"


class FakeLine:
    """Programmable LINE API for httpx.MockTransport."""

    def __init__(self):
        self.token_status = 200
        self.token_body = {"access_token": "line-access-token", "token_type": "Bearer"}
        self.profile_status = 200
        self.profile_body = {"userId": LINE_USER_ID, "displayName": "Taro", "pictureUrl": "https://img.example/t.png"}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == LINE_TOKEN_URL:
            return httpx.Response(self.token_status, json=self.token_body)
        if url == LINE_PROFILE_URL:
            return httpx.Response(self.profile_status, json=self.profile_body)
        return httpx.Response(404, text="not found")

    def token_form(self) -> dict:
        token_requests = [r for r in self.requests if str(r.url) == LINE_TOKEN_URL]
        return {k: v[0] for k, v in parse_qs(token_requests[-1].content.decode()).items()}


class FakeIdentity:
    def __init__(self, accounts: dict = None):
        self.accounts = {LINE_USER_ID: ACCOUNT_ID} if accounts is None else accounts
        self.calls = []

    async def resolve(self, line_user_id: str) -> str:
        self.calls.append(line_user_id)
        if line_user_id not in self.accounts:
            raise AccountNotLinked()
        return self.accounts[line_user_id]

    async def sign_in(self, line_user_id: str):
        return object(), await self.resolve(line_user_id)


@pytest.fixture
def config():
    return Config({
        "SERVER_URL": SERVER_URL,
        "SERVER_NAME": "Recipe MCP",
        "SERVER_DESCRIPTION": "Your recipes, from any MCP client",
        "LINE_CHANNEL_ID": "1650000000",
        "LINE_CHANNEL_SECRET": "line-channel-secret",
        "COOKIE_ENCRYPTION_KEY": "cookie-signing-key",
        "JWT_SECRET": "jwt-signing-key",
        "SUPABASE_URL": "https://project.supabase.co",
        "SUPABASE_ANON_KEY": "anon-key",
    })


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def fake_line():
    return FakeLine()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def provider(kv, config):
    return OAuthProvider(kv, server_url=SERVER_URL, jwt_secret=config.jwt_secret)


@pytest.fixture
def flow(config, provider, kv, fake_line, identity):
    return AuthorizationFlow(
        config=config,
        provider=provider,
        state_store=StateStore(kv),
        line=LineClient(transport=httpx.MockTransport(fake_line.handler)),
        identity=identity,
    )


@pytest.fixture
def test_app(flow, provider):
    app = FastAPI()
    app.include_router(build_router(flow))
    app.include_router(build_provider_router(provider))
    return app


@pytest.fixture
def client(test_app):
    test_client = TestClient(test_app, base_url="https://testserver", follow_redirects=False)
    # Tests send cookies explicitly; never replay Set-Cookie from earlier responses
    test_client.cookies.jar.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return test_client


@pytest.fixture
def registered_client(client):
    """client_id of a registered public MCP client."""
    resp = client.post(
        "/register",
        content=json.dumps({"client_name": "Claude", "redirect_uris": [CLIENT_REDIRECT]}),
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 201
    return resp.json()["client_id"]


def set_cookies(response) -> dict:
    """Map of cookie name -> full Set-Cookie header from a response."""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0]
        cookies[name] = header
    return cookies


def cookie_value(set_cookie_header: str) -> str:
    # Removal directives carry an empty quoted value
    return set_cookie_header.split(";", 1)[0].split("=", 1)[1].strip('"')
