"""
Machine-to-machine access token package.

Holds the single bearer token obtained through the client-credentials
exchange and keeps it fresh with refresh-ahead reloads.
"""

from .access_token_cache import AccessTokenCache

__all__ = ["AccessTokenCache"]
