"""
Client-credentials access token cache.
"""

import json
import time
from typing import Any, Dict, Optional

import httpx

from integration_shared.errors import TokenEndpointError, TokenMissing, UpstreamUnavailable
from integration_shared.logging import get_logger
from integration_shared.metrics import MetricsCollector
from ..caching import AsyncLoadingCache
from ..http_util import bearer
from ..io_bundle import IOBundle

# The cache has no key dimension; every lookup uses this one.
_TOKEN_KEY = "access_token"


class AccessTokenCache:
    """Caches the bearer token used for every platform API call."""

    def __init__(
        self,
        io_bundle: IOBundle,
        client_id: str,
        client_secret: str,
        audience: str,
        token_url: str,
        *,
        refresh_after: float = 6 * 60 * 60,
        connect_timeout: float = 3.0,
        read_timeout: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.io_bundle = io_bundle
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.token_url = token_url
        self.timeout = httpx.Timeout(read_timeout, connect=connect_timeout, pool=connect_timeout)
        self.metrics = metrics or MetricsCollector()
        self.logger = get_logger("integration.access_token")

        self._cache: AsyncLoadingCache[str, str] = AsyncLoadingCache(
            lambda _key: self.load_token(),
            name="access_token",
            refresh_after_write=refresh_after,
            metrics=self.metrics,
        )

    def _request_body(self) -> bytes:
        return json.dumps({
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": self.audience,
            "grant_type": "client_credentials",
        }).encode("utf-8")

    def _parse_response(self, response: httpx.Response) -> str:
        status = response.status_code
        if status >= 300:
            self.logger.error("Access token request rejected", url=self.token_url, status=status)
            raise TokenEndpointError(status, self.token_url, response.text)
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise TokenMissing("access_token response is not valid JSON") from exc
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise TokenMissing()
        return access_token

    async def load_token(self) -> str:
        """Run the client-credentials exchange on the async client."""
        start = time.perf_counter()
        try:
            response = await self.io_bundle.http_async_client.post(
                self.token_url,
                content=self._request_body(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise self._unavailable(exc) from exc
        self.metrics.record_upstream_request("token", response.status_code, time.perf_counter() - start)
        token = self._parse_response(response)
        self.logger.info("Access token loaded")
        return token

    def load_token_blocking(self) -> str:
        """Run the client-credentials exchange on the blocking client."""
        start = time.perf_counter()
        try:
            response = self.io_bundle.http_client.post(
                self.token_url,
                content=self._request_body(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise self._unavailable(exc) from exc
        self.metrics.record_upstream_request("token", response.status_code, time.perf_counter() - start)
        token = self._parse_response(response)
        self.logger.info("Access token loaded")
        return token

    def _unavailable(self, exc: Exception) -> UpstreamUnavailable:
        self.logger.error("Access token request failed", url=self.token_url, error=str(exc))
        return UpstreamUnavailable(
            f"Failed to reach token endpoint [{self.token_url}]",
            details={"url": self.token_url, "error": str(exc)},
        )

    @staticmethod
    def _headers() -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def get_token(self) -> str:
        """Return the cached token, loading it on first use."""
        return await self._cache.get(_TOKEN_KEY)

    async def get_auth_header(self) -> str:
        return bearer(await self.get_token())

    async def warmup(self) -> None:
        """Eagerly load the token so the first platform call does not pay for it."""
        await self.get_token()

    def warmup_blocking(self) -> None:
        """Load the token with the blocking client, for synchronous startup code."""
        self._cache.put(_TOKEN_KEY, self.load_token_blocking())

    def invalidate(self) -> None:
        self._cache.invalidate(_TOKEN_KEY)
