"""
Integration auth facade.

Builds the key cache, access-token cache and integration client from settings
around one shared IO bundle, and exposes the token protocol bound to them.
"""

from typing import Any, Dict, Optional

from integration_shared.config import IntegrationSettings
from integration_shared.logging import get_logger, set_tenant_context
from integration_shared.metrics import MetricsCollector
from .integration import GraphQLResponse, IntegrationClient
from .io_bundle import IOBundle
from .jwks import JWKSKeyCache, SigningKey
from .tokens import AccessTokenCache
from .validation import token_protocol
from .validation.token_protocol import Verdict


class IntegrationAuth:
    """Everything an integration needs to talk to the platform."""

    def __init__(
        self,
        settings: IntegrationSettings,
        io_bundle: IOBundle,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings
        self.io_bundle = io_bundle
        self.metrics = metrics or MetricsCollector()
        self.logger = get_logger("integration.auth")

        self.key_cache = JWKSKeyCache(
            io_bundle,
            settings.app_domain,
            settings.https,
            refresh_after=settings.jwks_refresh_seconds,
            maximum_size=settings.jwks_cache_size,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            metrics=self.metrics,
        )
        self.token_cache = AccessTokenCache(
            io_bundle,
            settings.client_id,
            settings.client_secret,
            settings.jwt_audience,
            settings.jwt_token_url,
            refresh_after=settings.access_token_refresh_seconds,
            connect_timeout=settings.token_connect_timeout,
            read_timeout=settings.read_timeout,
            metrics=self.metrics,
        )
        self.integration_client = IntegrationClient(
            io_bundle,
            self.token_cache,
            settings.app_domain,
            settings.client_id,
            settings.https,
            cache_size=settings.integration_cache_size,
            cache_ttl=settings.integration_cache_ttl_seconds,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            metrics=self.metrics,
        )

    @property
    def client_id(self) -> str:
        return self.settings.client_id

    @property
    def client_secret(self) -> str:
        return self.settings.client_secret

    def init(self) -> None:
        """Blocking warm-up for synchronous startup code."""
        self.token_cache.warmup_blocking()

    async def start(self) -> None:
        """Async warm-up, e.g. from an application lifespan hook."""
        await self.token_cache.warmup()

    async def get_cached_jwk_for_kid(self, kid: Optional[str]) -> SigningKey:
        return await self.key_cache.get(kid)

    def _record(self, operation: str, ok: bool, reason: Optional[str] = None) -> None:
        result = "accepted" if ok else "rejected"
        self.metrics.increment_counter("token_verifications_total", operation=operation, result=result)
        if not ok:
            self.logger.info("Token rejected", operation=operation, reason=reason)

    async def verify_tenant_scoped_token(
        self, tenant_scoped_token: str, integration_name: Optional[str] = None
    ) -> Verdict:
        verdict = await token_protocol.verify_tenant_scoped_token(
            self.get_cached_jwk_for_kid,
            integration_name or self.settings.integration_name,
            tenant_scoped_token,
        )
        self._record("tenant_token", verdict.ok, None if verdict.ok else verdict.value)
        if verdict.ok:
            set_tenant_context(verdict.value)
        return verdict

    async def get_integration_access_key(
        self,
        tenant_scoped_token: str,
        integration_name: Optional[str] = None,
        jwt_issuer: Optional[str] = None,
    ) -> Verdict:
        verdict = await token_protocol.get_access_key(
            self.get_cached_jwk_for_kid,
            integration_name or self.settings.integration_name,
            self.client_secret,
            jwt_issuer if jwt_issuer is not None else self.settings.jwt_issuer,
            tenant_scoped_token,
        )
        self._record("access_key_mint", verdict.ok, None if verdict.ok else verdict.value)
        return verdict

    def verify_integration_access_key(self, access_key: Optional[str]) -> Optional[str]:
        error = token_protocol.verify_access_key(self.client_secret, access_key)
        self._record("access_key", error is None, error)
        return error

    async def validate_webhook(self, signature_header: Optional[str], body: bytes) -> Optional[str]:
        error = await token_protocol.verify_webhook_signature(
            self.get_cached_jwk_for_kid, signature_header, body
        )
        self._record("webhook", error is None, error)
        return error

    async def get_auth_header(self) -> str:
        return await self.token_cache.get_auth_header()

    async def load_integration(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return await self.integration_client.load_integration(tenant_alias)

    async def get_cached_integration(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return await self.integration_client.get_cached_integration(tenant_alias)

    async def get_cached_integration_config(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return await self.integration_client.get_cached_integration_config(tenant_alias)

    async def load_integration_config(self, tenant_alias: str) -> Optional[Dict[str, Any]]:
        return await self.integration_client.load_integration_config(tenant_alias)

    def clear_integration_cache(self, tenant_alias: str) -> None:
        self.integration_client.clear_integration_cache(tenant_alias)

    async def update_integration_config(
        self, tenant_alias: str, integration_config: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self.integration_client.update_integration_config(tenant_alias, integration_config)

    async def graphql(
        self,
        tenant_alias: str,
        query: str,
        operation_name: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> GraphQLResponse:
        return await self.integration_client.graphql(tenant_alias, query, operation_name, variables)
