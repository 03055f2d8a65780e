"""
HTTP helpers shared by the platform clients and the FastAPI surface.
"""

import base64
import binascii
from typing import Collection, Optional, Tuple

import httpx

from integration_shared.logging import get_logger

logger = get_logger("integration.http")

DEFAULT_ACCEPT_ENCODING = "gzip,deflate"

# Encodings httpx decodes for us; anything else, including the legacy
# "x-gzip" alias, is passed through still encoded and logged.
RECOGNIZED_CONTENT_ENCODINGS = frozenset({"identity", "gzip", "deflate"})


def unrecognized_content_encodings(response: httpx.Response) -> Tuple[str, ...]:
    """Return the Content-Encoding values of ``response`` that will not be decoded.

    ``x-gzip`` is among them: httpx only decodes the ``gzip`` token.
    """
    values = response.headers.get_list("content-encoding", split_commas=True)
    return tuple(
        value.strip()
        for value in values
        if value.strip() and value.strip().lower() not in RECOGNIZED_CONTENT_ENCODINGS
    )


def log_unrecognized_encoding(response: httpx.Response) -> None:
    """Response hook for ``httpx.Client``."""
    for encoding in unrecognized_content_encodings(response):
        logger.warning(
            "Unrecognized Content-Encoding",
            content_encoding=encoding,
            url=str(response.request.url),
        )


async def alog_unrecognized_encoding(response: httpx.Response) -> None:
    """Response hook for ``httpx.AsyncClient``."""
    log_unrecognized_encoding(response)


def bearer(token: str) -> str:
    return f"Bearer {token}"


def get_basic_auth(authorization_header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a ``Basic`` Authorization header into ``(username, password)``.

    Returns None for a missing header, another scheme, invalid base64 or a
    decoded value without a colon.
    """
    if not authorization_header or not authorization_header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(authorization_header[len("Basic "):], validate=True)
    except (binascii.Error, ValueError):
        return None
    credentials = decoded.decode("utf-8", errors="replace")
    if ":" not in credentials:
        return None
    username, password = credentials.split(":", 1)
    return username, password


def get_global_headers(frame_src: Collection[str] = ()) -> httpx.Headers:
    """Security headers every page served to the platform should carry."""
    csp = ["default-src https:"]
    if frame_src:
        csp.append("frame-src " + " ".join(frame_src))
    return httpx.Headers({
        "Content-Security-Policy": "; ".join(csp),
        "X-Frame-Options": "SAMEORIGIN",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "no-referrer-when-downgrade",
        "Feature-Policy": "none",
    })
