"""
JWKS key cache for the platform's signing keys.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx
from jose import jwk
from jose.exceptions import JOSEError, JWKError

from integration_shared.errors import KeyNotFound, UpstreamUnavailable
from integration_shared.logging import get_logger
from integration_shared.metrics import MetricsCollector
from ..caching import AsyncLoadingCache
from ..io_bundle import IOBundle

JWKS_PATH = "/.well-known/jwks.json"
DEFAULT_RSA_ALGORITHM = "RS256"


@dataclass(frozen=True)
class SigningKey:
    """A public key from the platform's key set."""

    kid: str
    key_type: str
    algorithm: str
    data: Mapping[str, Any] = field(repr=False)

    @classmethod
    def from_jwk(cls, data: Mapping[str, Any]) -> "SigningKey":
        """Build a key from a JWK mapping, raising JOSEError if it is unusable."""
        algorithm = data.get("alg") or DEFAULT_RSA_ALGORITHM
        try:
            jwk.construct(dict(data), algorithm)
        except (TypeError, ValueError) as exc:
            # Missing key members surface as plain Python errors.
            raise JWKError(f"Invalid JWK [{data.get('kid')}]: {exc}") from exc
        return cls(
            kid=data["kid"],
            key_type=data.get("kty", ""),
            algorithm=algorithm,
            data=dict(data),
        )


class JWKSKeyCache:
    """Loads the platform JWKS and caches the keys by kid."""

    def __init__(
        self,
        io_bundle: IOBundle,
        app_domain: str,
        https: bool = True,
        *,
        refresh_after: float = 24 * 60 * 60,
        maximum_size: int = 8,
        connect_timeout: float = 2.5,
        read_timeout: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.io_bundle = io_bundle
        self.jwks_url = f"{'https' if https else 'http'}://{app_domain}{JWKS_PATH}"
        self.timeout = httpx.Timeout(read_timeout, connect=connect_timeout, pool=connect_timeout)
        self.metrics = metrics or MetricsCollector()
        self.logger = get_logger("integration.jwks")

        self._cache: AsyncLoadingCache[str, SigningKey] = AsyncLoadingCache(
            self._load_key,
            name="jwks",
            maximum_size=maximum_size,
            refresh_after_write=refresh_after,
            metrics=self.metrics,
        )

    async def get(self, kid: Optional[str]) -> SigningKey:
        """Return the signing key for ``kid``.

        Raises KeyNotFound when the key set has no such key and
        UpstreamUnavailable when the key set cannot be fetched.
        """
        if not kid:
            raise KeyNotFound(kid)
        return await self._cache.get(kid)

    async def load_key_set(self) -> Dict[str, SigningKey]:
        """Fetch the full key set, indexed by kid."""
        start = time.perf_counter()
        try:
            response = await self.io_bundle.http_async_client.get(self.jwks_url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            self.metrics.record_upstream_request("jwks", "error", time.perf_counter() - start)
            self.logger.error("Failed to fetch JWKS", url=self.jwks_url, error=str(exc))
            raise UpstreamUnavailable(
                f"Failed to fetch JWKS from [{self.jwks_url}]",
                details={"url": self.jwks_url, "error": str(exc)},
            ) from exc

        self.metrics.record_upstream_request("jwks", response.status_code, time.perf_counter() - start)
        if response.status_code >= 300:
            raise UpstreamUnavailable(
                f"status[{response.status_code}] received from [{self.jwks_url}]",
                details={"url": self.jwks_url, "status": response.status_code, "body": response.text},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(
                "JWKS response is not valid JSON", details={"url": self.jwks_url}
            ) from exc
        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            raise UpstreamUnavailable("JWKS response missing 'keys' array", details={"url": self.jwks_url})

        key_set: Dict[str, SigningKey] = {}
        for key_data in keys:
            if not isinstance(key_data, dict) or not isinstance(key_data.get("kid"), str):
                continue
            if key_data.get("kty") != "RSA":
                self.logger.debug("Skipping non-RSA key", kid=key_data["kid"], kty=key_data.get("kty"))
                continue
            try:
                key_set[key_data["kid"]] = SigningKey.from_jwk(key_data)
            except JOSEError as exc:
                self.logger.warning("Skipping unusable JWK", kid=key_data["kid"], error=str(exc))

        self.logger.info("JWKS refreshed successfully", keys_count=len(key_set))
        return key_set

    async def _load_key(self, kid: str) -> SigningKey:
        key_set = await self.load_key_set()
        key = key_set.get(kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid)
            raise KeyNotFound(kid)
        return key

    def clear_cache(self) -> None:
        """Clear all cached keys."""
        self._cache.invalidate_all()
        self.logger.info("JWKS cache cleared")
