"""
JWKS client package.

Contains logic for retrieving and caching the platform's JSON Web Key Set,
used to verify tenant-scoped tokens and webhook signatures.

Key points:
- Fetches use short connect/response timeouts and are never retried here.
- Keys are indexed by kid with a small bounded cache refreshed daily.
- A failed fetch propagates to the caller; it is never cached as empty.
"""

from .client import JWKSKeyCache, SigningKey

__all__ = ["JWKSKeyCache", "SigningKey"]
