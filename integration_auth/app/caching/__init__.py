"""
Caching package.

``AsyncLoadingCache`` backs the signing-key, access-token and integration
caches. Loads are coalesced per key; no external lock is exposed.
"""

from .loading_cache import AsyncLoadingCache

__all__ = ["AsyncLoadingCache"]
