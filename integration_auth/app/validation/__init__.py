"""
Token protocol package.

Verification of platform-issued tenant-scoped tokens and webhook signatures,
minting and verification of the access keys exchanged with the integration.
"""

from .token_protocol import (
    Accepted,
    Rejected,
    Verdict,
    get_access_key,
    verify_access_key,
    verify_tenant_scoped_token,
    verify_webhook_signature,
)

__all__ = [
    "Accepted",
    "Rejected",
    "Verdict",
    "get_access_key",
    "verify_access_key",
    "verify_tenant_scoped_token",
    "verify_webhook_signature",
]
