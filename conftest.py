"""
Shared fixtures: platform RSA keys, a token factory and mocked IO bundles.
"""

import json
import time
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from integration_auth.app.io_bundle import IOBundle
from integration_auth.app.jwks.client import SigningKey
from integration_shared.errors import KeyNotFound

CLIENT_SECRET = "s3cr3t-s3cr3t-s3cr3t-s3cr3t-s3cr3t!"
APP_DOMAIN = "app.example.com"


def make_response(status_code: int, method: str = "GET", url: str = "https://app.example.com/", **kwargs) -> httpx.Response:
    """Build a real httpx response bound to a request."""
    return httpx.Response(status_code=status_code, request=httpx.Request(method, url), **kwargs)


class PlatformKeys:
    """RSA key pairs standing in for the platform's signing keys."""

    def __init__(self, *kids: str):
        self.private_keys = {
            kid: rsa.generate_private_key(public_exponent=65537, key_size=2048) for kid in kids
        }

    def public_jwk(self, kid: str) -> Dict[str, Any]:
        data = json.loads(RSAAlgorithm.to_jwk(self.private_keys[kid].public_key()))
        data.update({"kid": kid, "alg": "RS256", "use": "sig"})
        return data

    def jwks(self) -> Dict[str, Any]:
        return {"keys": [self.public_jwk(kid) for kid in self.private_keys]}

    def signing_key(self, kid: str) -> SigningKey:
        return SigningKey.from_jwk(self.public_jwk(kid))

    def key_lookup(self):
        """Async kid -> SigningKey lookup over these keys."""
        async def lookup(kid: Optional[str]) -> SigningKey:
            if kid not in self.private_keys:
                raise KeyNotFound(kid)
            return self.signing_key(kid)
        return lookup

    def tenant_token(
        self,
        kid: str = "k1",
        integration: Any = "shopify",
        sub: Any = "acme@tenants",
        exp: Any = "default",
        **claims,
    ) -> str:
        payload: Dict[str, Any] = {"integration": integration, "sub": sub}
        if exp == "default":
            payload["exp"] = int(time.time()) + 3600
        elif exp is not None:
            payload["exp"] = exp
        payload.update(claims)
        return self.sign(json.dumps(payload).encode("utf-8"), kid)

    def sign(self, payload: bytes, kid: str = "k1", header_kid: Any = "same") -> str:
        """Compact RS256 JWS over raw ``payload`` bytes."""
        headers = {"kid": kid if header_kid == "same" else header_kid}
        if headers["kid"] is None:
            headers = {}
        return jwt.PyJWS().encode(payload, self.private_keys[kid], algorithm="RS256", headers=headers)

    def webhook_signature(self, body: bytes, kid: str = "k1") -> str:
        """Detached signature header: ``<header>..<signature>``."""
        token = self.sign(body, kid)
        header, _, signature = token.split(".")
        return f"{header}..{signature}"


@pytest.fixture(scope="session")
def platform_keys():
    return PlatformKeys("k1", "k2")


@pytest.fixture
def io_bundle():
    """IO bundle whose clients are mocks; tests set the methods they expect."""
    http_client = MagicMock(spec=httpx.Client)
    http_async_client = MagicMock(spec=httpx.AsyncClient)
    http_async_client.get = AsyncMock()
    http_async_client.post = AsyncMock()
    http_async_client.request = AsyncMock()
    return IOBundle(http_client=http_client, http_async_client=http_async_client)
