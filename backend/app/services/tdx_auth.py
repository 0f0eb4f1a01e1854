"""
TDX (Transport Data eXchange) OAuth client-credentials token handling.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, TDXAuthError, UpstreamServiceError
from app.services.http import json_body

logger = logging.getLogger(__name__)


class TDXTokenProvider:
    """
    Fetch and cache a TDX access token.

    The cached token is reused until it is within the safety margin of its
    expiry. Concurrent callers share a single refresh.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        auth_url: Optional[str] = None,
        safety_margin: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self.client_id = settings.TDX_CLIENT_ID if client_id is None else client_id
        self.client_secret = settings.TDX_CLIENT_SECRET if client_secret is None else client_secret
        self.auth_url = auth_url or settings.TDX_AUTH_URL
        self.safety_margin = settings.TDX_TOKEN_SAFETY_MARGIN if safety_margin is None else safety_margin
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at - self.safety_margin

    async def get_token(self) -> str:
        """Return a valid access token, requesting a new one when needed."""
        if self._is_valid():
            return self._token

        async with self._lock:
            # Another task may have refreshed while we waited
            if self._is_valid():
                return self._token
            return await self._refresh()

    def invalidate(self) -> None:
        """Forget the cached token, e.g. after a data API answered 401."""
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("TDX_CLIENT_ID and TDX_CLIENT_SECRET must be configured")

        logger.info("Fetching new TDX access token")
        requested_at = self._clock()
        try:
            response = await self._client.post(
                self.auth_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as e:
            logger.error(f"Error getting token: {e}", extra={"service": "TDX Auth"})
            raise UpstreamServiceError("TDX Auth", f"network error: {e}") from e

        if response.is_error:
            logger.error(f"Token request rejected ({response.status_code}): {response.text}", extra={"service": "TDX Auth"})
            raise TDXAuthError(response.status_code, response.text)

        data = json_body(response, "TDX Auth")
        if not isinstance(data, dict) or "access_token" not in data:
            raise UpstreamServiceError("TDX Auth", "token response has no access_token")
        self._token = data["access_token"]
        self._expires_at = requested_at + float(data.get("expires_in", 0))
        logger.debug(f"TDX token valid for {data.get('expires_in')}s")
        return self._token
