# Tests for the LINE Login client.

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import LINE_USER_ID, FakeLine

from oauth.errors import IdpFailure
from oauth.line import LINE_AUTHORIZE_URL, LineClient


@pytest.fixture
def fake():
    return FakeLine()


@pytest.fixture
def line(fake):
    return LineClient(transport=httpx.MockTransport(fake.handler))


class TestAuthorizeUrl:
    def test_parameters(self, line):
        url = line.build_authorize_url("1650000000", "https://mcp.example.com/callback", "state-123")
        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == LINE_AUTHORIZE_URL
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        assert params == {
            "response_type": "code",
            "client_id": "1650000000",
            "redirect_uri": "https://mcp.example.com/callback",
            "state": "state-123",
            "scope": "profile openid",
        }

    def test_no_network(self, fake, line):
        line.build_authorize_url("1", "https://x/callback", "s")
        assert fake.requests == []


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_success(self, fake, line):
        token = await line.exchange_code("code-1", "1650000000", "secret", "https://mcp.example.com/callback")
        assert token == "line-access-token"
        assert fake.token_form() == {
            "grant_type": "authorization_code",
            "code": "code-1",
            "redirect_uri": "https://mcp.example.com/callback",
            "client_id": "1650000000",
            "client_secret": "secret",
        }

    @pytest.mark.asyncio
    async def test_error_status(self, fake, line):
        fake.token_status = 400
        fake.token_body = {"error": "invalid_grant", "error_description": "code expired"}
        with pytest.raises(IdpFailure) as exc:
            await line.exchange_code("code-1", "1", "secret", "https://x/callback")
        assert exc.value.kind == "IDP_EXCHANGE_FAILED"
        assert exc.value.status_code == 500
        assert "invalid_grant" in exc.value.upstream_body
        # The upstream body is for logs, not for the user
        assert "invalid_grant" not in exc.value.message

    @pytest.mark.asyncio
    async def test_missing_access_token(self, fake, line):
        fake.token_body = {"token_type": "Bearer"}
        with pytest.raises(IdpFailure) as exc:
            await line.exchange_code("code-1", "1", "secret", "https://x/callback")
        assert exc.value.kind == "IDP_EXCHANGE_FAILED"

    @pytest.mark.asyncio
    async def test_single_attempt(self, fake, line):
        fake.token_status = 500
        with pytest.raises(IdpFailure):
            await line.exchange_code("code-1", "1", "secret", "https://x/callback")
        assert len(fake.requests) == 1


class TestFetchProfile:
    @pytest.mark.asyncio
    async def test_success(self, fake, line):
        profile = await line.fetch_profile("line-access-token")
        assert profile.user_id == LINE_USER_ID
        assert profile.display_name == "Taro"
        assert profile.picture_url == "https://img.example/t.png"
        assert fake.requests[0].headers["Authorization"] == "Bearer line-access-token"

    @pytest.mark.asyncio
    async def test_without_picture(self, fake, line):
        fake.profile_body = {"userId": "U1", "displayName": "Hanako"}
        profile = await line.fetch_profile("t")
        assert profile.picture_url is None

    @pytest.mark.asyncio
    async def test_error_status(self, fake, line):
        fake.profile_status = 401
        fake.profile_body = {"message": "invalid token"}
        with pytest.raises(IdpFailure) as exc:
            await line.fetch_profile("t")
        assert exc.value.kind == "IDP_PROFILE_FAILED"

    @pytest.mark.asyncio
    async def test_malformed_body(self, fake, line):
        fake.profile_body = {"displayName": "no id"}
        with pytest.raises(IdpFailure) as exc:
            await line.fetch_profile("t")
        assert exc.value.kind == "IDP_PROFILE_FAILED"
