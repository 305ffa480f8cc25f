from urllib.parse import parse_qs

import httpx
import pytest

from errors import UpstreamAuthFailed
from tonie_auth import TonieSessionProvider


@pytest.mark.asyncio
async def test_login_success(app_config, tonie_cloud):
    tonie_cloud.route(
        "POST",
        app_config.tonie_token_url,
        (200, {"access_token": "abc", "token_type": "Bearer", "expires_in": 300, "refresh_token": "r"}),
    )

    async with tonie_cloud.client() as client:
        token = await TonieSessionProvider(app_config, client=client).login()

    assert token.access_token == "abc"
    assert token.expires_in == 300
    assert token.refresh_token == "r"


@pytest.mark.asyncio
async def test_login_sends_password_grant(app_config, tonie_cloud):
    tonie_cloud.route("POST", app_config.tonie_token_url, (200, {"access_token": "abc"}))

    async with tonie_cloud.client() as client:
        await TonieSessionProvider(app_config, client=client).login()

    request = tonie_cloud.requests[0]
    form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
    assert form == {
        "grant_type": "password",
        "client_id": "my-tonies",
        "scope": "openid",
        "username": "service@example.com",
        "password": "service-secret",
    }
    assert request.headers["user-agent"] == app_config.user_agent
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"


@pytest.mark.asyncio
async def test_login_rejected(app_config, tonie_cloud):
    tonie_cloud.route("POST", app_config.tonie_token_url, (401, "invalid_grant"))

    async with tonie_cloud.client() as client:
        with pytest.raises(UpstreamAuthFailed) as exc_info:
            await TonieSessionProvider(app_config, client=client).login()

    error = exc_info.value
    assert error.http_status == 401
    assert error.upstream_status == 401
    assert error.details == "HTTP 401: invalid_grant"
    assert error.to_response()["error"] == "Failed to authenticate with Tonie API"


@pytest.mark.asyncio
async def test_login_rejected_without_body(app_config, tonie_cloud):
    tonie_cloud.route("POST", app_config.tonie_token_url, (503, None))

    async with tonie_cloud.client() as client:
        with pytest.raises(UpstreamAuthFailed) as exc_info:
            await TonieSessionProvider(app_config, client=client).login()

    assert exc_info.value.details == "HTTP 503: Authentication failed"


@pytest.mark.asyncio
async def test_login_without_token(app_config, tonie_cloud):
    tonie_cloud.route("POST", app_config.tonie_token_url, (200, {"token_type": "Bearer"}))

    async with tonie_cloud.client() as client:
        with pytest.raises(UpstreamAuthFailed, match="Failed to authenticate") as exc_info:
            await TonieSessionProvider(app_config, client=client).login()

    assert exc_info.value.details == "No access token received from authentication"


@pytest.mark.asyncio
async def test_login_network_error(app_config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamAuthFailed) as exc_info:
            await TonieSessionProvider(app_config, client=client).login()

    assert exc_info.value.details.startswith("Network error:")
    assert exc_info.value.upstream_status is None


@pytest.mark.asyncio
async def test_every_login_hits_the_token_endpoint(app_config, tonie_cloud):
    tonie_cloud.route("POST", app_config.tonie_token_url, (200, {"access_token": "abc"}))

    async with tonie_cloud.client() as client:
        provider = TonieSessionProvider(app_config, client=client)
        await provider.login()
        await provider.login()

    assert tonie_cloud.count("POST", app_config.tonie_token_url) == 2
