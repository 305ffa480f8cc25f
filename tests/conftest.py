import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
from unittest.mock import AsyncMock

from config.platform import AppConfig
from models import AccessToken

API_BASE = "https://api.test/v2"
TOKEN_URL = "https://login.test/token"
STORAGE_URL = "https://storage.test/upload"

RouteReply = Union[Callable[[httpx.Request], httpx.Response], Tuple[int, Any]]


class FakeTonieCloud:
    """Routes requests by (method, url) and records every call in order."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], RouteReply] = {}
        self.calls: List[Tuple[str, str]] = []
        self.requests: List[httpx.Request] = []

    def route(self, method: str, url: str, reply: RouteReply) -> None:
        self.routes[(method, url)] = reply

    def count(self, method: str, url: str) -> int:
        return self.calls.count((method, url))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url))
        self.calls.append(key)
        self.requests.append(request)
        reply = self.routes.get(key)
        if reply is None:
            return httpx.Response(404, text=f"no route for {key}")
        if callable(reply):
            return reply(request)
        status, payload = reply
        if payload is None:
            return httpx.Response(status)
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status, content=payload)
        return httpx.Response(status, content=json.dumps(payload).encode("utf-8"))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        tonie_email="service@example.com",
        tonie_password="service-secret",
        app_password="letmein",
        tonie_api_base=API_BASE,
        tonie_token_url=TOKEN_URL,
        tmp_dir=str(tmp_path),
        download_timeout_seconds=5.0,
    )


@pytest.fixture
def tonie_cloud():
    return FakeTonieCloud()


@pytest.fixture
def mock_session_provider():
    provider = AsyncMock()
    provider.login = AsyncMock(return_value=AccessToken(access_token="test-token"))
    return provider


@pytest.fixture
def upload_target_payload():
    return {
        "fileId": "file-123",
        "request": {
            "url": STORAGE_URL,
            "fields": {"key": "uploads/file-123", "policy": "cG9saWN5", "x-amz-signature": "sig"},
        },
    }
