"""
Token protocol between the platform, the gateway and the integration.

Two trust channels are kept apart:

- Tenant-scoped tokens and webhook signatures are RSA-signed by the platform
  and verified against its published key set.
- Access keys are HMAC-signed with the integration's client secret and pass
  back and forth between the gateway and the integration.

Verification failures are returned as data (``Rejected`` or an error string),
never raised. Only a misconfigured client secret (``ConfigurationError``) or an
unreachable key set (``UpstreamUnavailable``) escapes as an exception.
"""

import base64
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Dict, Iterator, Optional, Union

from jose import jwk, jws, jwt
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from integration_shared.errors import ConfigurationError, KeyNotFound
from ..jwks.client import SigningKey

KeyLookup = Callable[[Optional[str]], Awaitable[SigningKey]]

RSA_ALGORITHMS = [ALGORITHMS.RS256, ALGORITHMS.RS384, ALGORITHMS.RS512]
HMAC_ALGORITHMS = [ALGORITHMS.HS256, ALGORITHMS.HS384, ALGORITHMS.HS512]

# HS256 needs a key at least as long as its 256-bit output.
MIN_SECRET_BYTES = 32

TENANT_SUFFIX = "@tenants"

INVALID_JWT = "Invalid JWT"
JWK_NOT_FOUND = "jwk not found for kid"
INVALID_SIGNATURE = "Invalid JWT signature"
INVALID_INTEGRATION = "Invalid integration"
BLANK_TENANT_ALIAS = "Blank tenantAlias"
JWT_EXPIRED = "JWT expired"
SIGNATURE_MISSING = "signature missing"


@dataclass(frozen=True)
class Accepted:
    """Successful outcome; ``value`` is a tenant alias or a signed token."""

    value: str
    ok: ClassVar[bool] = True

    def __iter__(self) -> Iterator[Any]:
        return iter((True, self.value))


@dataclass(frozen=True)
class Rejected:
    """Failed verification with a human-readable reason."""

    reason: str
    ok: ClassVar[bool] = False

    @property
    def value(self) -> str:
        return self.reason

    def __iter__(self) -> Iterator[Any]:
        return iter((False, self.reason))


Verdict = Union[Accepted, Rejected]


def _parse_header(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the protected header of a compact JWS, or None if malformed."""
    if not isinstance(token, str) or token.count(".") != 2:
        return None
    try:
        header = jws.get_unverified_header(token)
    except JOSEError:
        return None
    if not isinstance(header.get("alg"), str) or header["alg"].lower() == "none":
        return None
    return header


def _check_secret(client_secret: Optional[str]) -> bytes:
    secret = (client_secret or "").encode("utf-8")
    if len(secret) < MIN_SECRET_BYTES:
        raise ConfigurationError(
            f"client secret must be at least {MIN_SECRET_BYTES * 8} bits for HMAC signing",
            details={"secret_bits": len(secret) * 8},
        )
    return secret


async def _verify_platform_signature(key_lookup: KeyLookup, token: str) -> Union[bytes, Rejected]:
    header = _parse_header(token)
    if header is None:
        return Rejected(INVALID_JWT)
    try:
        key = await key_lookup(header.get("kid"))
    except KeyNotFound:
        return Rejected(JWK_NOT_FOUND)
    try:
        return jws.verify(token, dict(key.data), algorithms=RSA_ALGORITHMS)
    except JOSEError:
        return Rejected(INVALID_SIGNATURE)


def _tenant_alias(subject: Any) -> str:
    if not isinstance(subject, str) or not subject.endswith(TENANT_SUFFIX):
        return ""
    return subject[: -len(TENANT_SUFFIX)]


def _is_expired(exp: Any, now: float) -> bool:
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return False
    if isinstance(exp, float) and not math.isfinite(exp):
        return False
    return int(exp) < now


async def verify_tenant_scoped_token(
    key_lookup: KeyLookup,
    integration_name: Optional[str],
    tenant_scoped_token: Optional[str],
    *,
    clock: Callable[[], float] = time.time,
) -> Verdict:
    """Verify a token the platform issued for one tenant of ``integration_name``.

    Returns ``Accepted(tenant_alias)`` or ``Rejected(reason)``; checks run in
    order and stop at the first failure. Tokens without a numeric ``exp``
    claim are accepted.
    """
    verified = await _verify_platform_signature(key_lookup, tenant_scoped_token)
    if isinstance(verified, Rejected):
        return verified

    try:
        claims = json.loads(verified)
    except ValueError:
        return Rejected(INVALID_JWT)
    if not isinstance(claims, dict):
        return Rejected(INVALID_JWT)

    integration = claims.get("integration")
    if not isinstance(integration, str) or integration.lower() != (integration_name or "").lower():
        return Rejected(INVALID_INTEGRATION)

    tenant_alias = _tenant_alias(claims.get("sub"))
    if not tenant_alias.strip():
        return Rejected(BLANK_TENANT_ALIAS)

    if _is_expired(claims.get("exp"), clock()):
        return Rejected(JWT_EXPIRED)

    return Accepted(tenant_alias)


async def get_access_key(
    key_lookup: KeyLookup,
    integration_name: Optional[str],
    client_secret: str,
    issuer: Optional[str],
    tenant_scoped_token: Optional[str],
    *,
    clock: Callable[[], float] = time.time,
) -> Verdict:
    """Exchange a tenant-scoped token for an access key handed to the integration.

    The tenant-scoped token is verified first and its rejection is returned
    unchanged. The access key is an HS256 token signed with ``client_secret``
    carrying ``iss`` and ``sub="<tenantAlias>@tenants"``.
    """
    verdict = await verify_tenant_scoped_token(
        key_lookup, integration_name, tenant_scoped_token, clock=clock
    )
    if not verdict.ok:
        return verdict

    secret = _check_secret(client_secret)
    claims: Dict[str, Any] = {}
    if issuer is not None:
        claims["iss"] = issuer
    claims["sub"] = verdict.value + TENANT_SUFFIX
    access_key = jwt.encode(
        claims, jwk.construct(secret, ALGORITHMS.HS256), algorithm=ALGORITHMS.HS256, headers={"typ": "JWT"}
    )
    return Accepted(access_key)


def verify_access_key(client_secret: str, access_key: Optional[str]) -> Optional[str]:
    """Verify an access key coming back from the integration.

    Returns an error message, or None when the key is valid.
    """
    header = _parse_header(access_key)
    if header is None:
        return INVALID_JWT
    secret = _check_secret(client_secret)
    if header["alg"] not in HMAC_ALGORITHMS:
        return INVALID_SIGNATURE
    try:
        key = jwk.construct(secret, header["alg"])
        jws.verify(access_key, key, algorithms=[header["alg"]])
    except JOSEError:
        return INVALID_SIGNATURE
    return None


def attach_detached_payload(signature_header: str, body: bytes) -> str:
    """Rebuild a compact JWS from a detached-payload header (``<header>..<sig>``)."""
    encoded = base64.urlsafe_b64encode(body).rstrip(b"=").decode("ascii")
    return signature_header.replace("..", f".{encoded}.", 1)


async def verify_webhook_signature(
    key_lookup: KeyLookup,
    signature_header: Optional[str],
    body: bytes,
) -> Optional[str]:
    """Validate a platform webhook signed with a detached JWS over the raw body.

    Returns an error message, or None when the signature covers ``body``.
    The header must carry an empty payload segment; a compact JWS with its own
    payload is rejected as ``Invalid JWT``.
    """
    if not signature_header or not signature_header.strip():
        return SIGNATURE_MISSING
    segments = signature_header.split(".")
    if len(segments) != 3 or segments[1]:
        return INVALID_JWT
    verified = await _verify_platform_signature(
        key_lookup, attach_detached_payload(signature_header, body)
    )
    if isinstance(verified, Rejected):
        return verified.reason
    return None
