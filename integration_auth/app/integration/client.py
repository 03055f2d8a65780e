"""
Integration client for the platform API.
"""

import json
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from integration_shared.errors import GraphQLTransportError, NoIntegration, UpstreamError, UpstreamUnavailable
from integration_shared.logging import get_logger
from integration_shared.metrics import MetricsCollector
from ..caching import AsyncLoadingCache
from ..http_util import DEFAULT_ACCEPT_ENCODING
from ..io_bundle import IOBundle
from ..tokens import AccessTokenCache
from .merge import merge_patch
from .models import GraphQLResponse


def config_from_integration(integration: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Config of an enabled integration; None when absent or disabled.

    Only the JSON boolean ``true`` enables an integration.
    """
    if not isinstance(integration, dict):
        return None
    if integration.get("enabled") is not True:
        return None
    config = integration.get("config")
    return config if config is not None else {}


class IntegrationClient:
    """Reads, updates and queries a tenant's integration on the platform."""

    def __init__(
        self,
        io_bundle: IOBundle,
        token_cache: AccessTokenCache,
        app_domain: str,
        client_id: str,
        https: bool = True,
        *,
        cache_size: int = 16,
        cache_ttl: float = 60,
        connect_timeout: float = 2.5,
        read_timeout: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.io_bundle = io_bundle
        self.token_cache = token_cache
        self.app_domain = app_domain
        self.client_id = client_id
        self.base_url = f"{'https' if https else 'http'}://{app_domain}"
        self.timeout = httpx.Timeout(read_timeout, connect=connect_timeout, pool=connect_timeout)
        self.metrics = metrics or MetricsCollector()
        self.logger = get_logger("integration.client")

        self._cache: AsyncLoadingCache[str, Optional[Dict[str, Any]]] = AsyncLoadingCache(
            self.load_integration,
            name="integration",
            maximum_size=cache_size,
            expire_after_write=cache_ttl,
            metrics=self.metrics,
        )

    def integration_url(self, tenant_alias: str) -> str:
        return f"{self.base_url}/api/v1/{tenant_alias}/integration"

    def graphql_url(self, tenant_alias: str) -> str:
        return f"{self.base_url}/api/v1/{tenant_alias}/graphql"

    async def _headers(self) -> Dict[str, str]:
        return {
            "Accept-Encoding": DEFAULT_ACCEPT_ENCODING,
            "Authorization": await self.token_cache.get_auth_header(),
        }

    async def _send(self, target: str, method: str, url: str, **kwargs) -> httpx.Response:
        headers = await self._headers()
        if "content" in kwargs:
            headers["Content-Type"] = "application/json"
        start = time.perf_counter()
        try:
            response = await self.io_bundle.http_async_client.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except httpx.HTTPError as exc:
            self.metrics.record_upstream_request(target, "error", time.perf_counter() - start)
            self.logger.error("Platform request failed", target=target, url=url, error=str(exc))
            raise UpstreamUnavailable(
                f"Failed to reach [{url}]", details={"url": url, "error": str(exc)}
            ) from exc
        self.metrics.record_upstream_request(target, response.status_code, time.perf_counter() - start)
        return response

    async def load_integration(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        """Fetch the tenant's integration record; None when it has none (404)."""
        url = f"{self.integration_url(tenant_alias)}/{quote(self.client_id, safe='')}"
        response = await self._send("integration", "GET", url)
        status = response.status_code
        if status < 300:
            record = response.json()
            if not isinstance(record, dict):
                self.logger.error("Integration record is not an object", tenant_alias=tenant_alias)
                raise UpstreamError(
                    status,
                    url,
                    response.text,
                    message=f"Integration record from [{url}] is not a JSON object",
                )
            return record
        if status == 404:
            self.logger.info("Integration not configured", tenant_alias=tenant_alias)
            return None
        self.logger.error("Integration load failed", tenant_alias=tenant_alias, status=status)
        raise UpstreamError(status, url, response.text)

    async def get_cached_integration(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return await self._cache.get(tenant_alias)

    def clear_integration_cache(self, tenant_alias: str) -> None:
        self._cache.invalidate(tenant_alias)

    async def get_cached_integration_config(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return config_from_integration(await self.get_cached_integration(tenant_alias))

    async def load_integration_config(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return config_from_integration(await self.load_integration(tenant_alias))

    async def update_integration_config(
        self, tenant_alias: str, integration_config: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge ``integration_config`` into the tenant's current config and save it.

        The record is loaded fresh (bypassing the cache). The cached entry is
        invalidated only after the platform accepted the write. An empty
        success response (e.g. 204) returns the record as it was sent.
        """
        integration = await self.load_integration(tenant_alias)
        if integration is None:
            raise NoIntegration(tenant_alias)

        current_config = integration.get("config")
        integration["config"] = merge_patch(
            current_config if current_config is not None else {}, integration_config
        )

        url = self.integration_url(tenant_alias)
        response = await self._send("integration_update", "PUT", url, content=json.dumps(integration))
        status = response.status_code
        if status > 299:
            self.logger.error("Integration update failed", tenant_alias=tenant_alias, status=status)
            raise UpstreamError(
                status,
                url,
                response.text,
                message=f"status[{status}] received when updating integration. Response: {response.text}",
            )

        self.clear_integration_cache(tenant_alias)
        self.logger.info("Integration config updated", tenant_alias=tenant_alias)
        if not response.content:
            return integration
        return response.json()

    async def graphql(
        self,
        tenant_alias: str,
        query: str,
        operation_name: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> GraphQLResponse:
        """Run a GraphQL operation as the integration for ``tenant_alias``."""
        if not query or not query.strip():
            raise ValueError("query must not be blank")
        body: Dict[str, Any] = {"query": query}
        if operation_name is not None:
            body["operationName"] = operation_name
        if variables:
            body["variables"] = variables

        url = self.graphql_url(tenant_alias)
        response = await self._send("graphql", "POST", url, content=json.dumps(body))
        status = response.status_code
        if status > 299:
            raise GraphQLTransportError(status, tenant_alias, response.text, uri=url)

        result = GraphQLResponse.model_validate(response.json())
        if result.has_errors:
            self.logger.info(
                "GraphQL response contained errors",
                tenant_alias=tenant_alias,
                operation_name=operation_name,
                errors=len(result.errors),
            )
        return result
