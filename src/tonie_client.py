import json
import logging
from typing import Any, Optional

import httpx

from config.platform import AppConfig
from errors import UpstreamApiFailed

logger = logging.getLogger(__name__)


class TonieApiClient:
    """Thin authenticated wrapper around the Tonie cloud REST API. No retries."""

    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.base_url = config.tonie_api_base.rstrip("/")
        self.user_agent = config.user_agent
        self.client = client

    async def request(
        self,
        path: str,
        access_token: str,
        method: str = "GET",
        body: Optional[Any] = None,
    ) -> Any:
        """
        Issue one JSON request against the API base.

        Returns:
            Decoded JSON body, or None for an empty 2xx response

        Raises:
            UpstreamApiFailed: Non-2xx (carrying the upstream status) or transport error (no status)
        """
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        content = json.dumps(body) if body is not None else None

        try:
            if self.client is not None:
                response = await self.client.request(method, url, headers=headers, content=content)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} network error: {e}")
            raise UpstreamApiFailed(f"Network error: {e}", path=path)

        if not response.is_success:
            error_text = response.text or "API request failed"
            logger.warning(f"{method} {path} failed with HTTP {response.status_code}")
            raise UpstreamApiFailed(
                f"HTTP {response.status_code}: {error_text}",
                http_status=response.status_code,
                path=path,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON body")
            raise UpstreamApiFailed(
                f"Invalid JSON response: {response.text[:200]}",
                path=path,
            )

    async def get(self, path: str, access_token: str) -> Any:
        return await self.request(path, access_token)

    async def post(self, path: str, access_token: str, body: Optional[Any] = None) -> Any:
        return await self.request(path, access_token, method="POST", body=body)
