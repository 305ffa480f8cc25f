"""
Tonie Session Provider
Exchanges the service account credentials for a bearer token via the OAuth2
resource-owner password grant. Tokens are never cached: every top-level request logs in again.
"""

import logging
from typing import Optional

import httpx

from config.platform import AppConfig
from errors import UpstreamAuthFailed
from models import AccessToken

logger = logging.getLogger(__name__)


class TonieSessionProvider:
    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client

    async def login(self) -> AccessToken:
        """
        Log in as the configured service account.

        Returns:
            AccessToken with the bearer token for subsequent API calls

        Raises:
            UpstreamAuthFailed: On non-2xx status, missing token or network failure
        """
        form = {
            "grant_type": "password",
            "client_id": self.config.tonie_client_id,
            "scope": "openid",
            "username": self.config.tonie_email,
            "password": self.config.tonie_password,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "User-Agent": self.config.user_agent,
        }

        try:
            if self.client is not None:
                response = await self.client.post(self.config.tonie_token_url, data=form, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(self.config.tonie_token_url, data=form, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Tonie login network error: {e}")
            raise UpstreamAuthFailed(f"Network error: {e}")

        if not response.is_success:
            error_text = response.text or "Authentication failed"
            logger.warning(f"Tonie login rejected with HTTP {response.status_code}")
            raise UpstreamAuthFailed(
                f"HTTP {response.status_code}: {error_text}",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise UpstreamAuthFailed("No access token received from authentication")

        logger.info("Authenticated with Tonie API")
        return AccessToken(
            access_token=access_token,
            token_type=data.get("token_type") or "Bearer",
            expires_in=data.get("expires_in"),
            refresh_token=data.get("refresh_token"),
        )
