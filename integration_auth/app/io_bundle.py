"""
Blocking and non-blocking HTTP clients shared by every gateway component.
"""

from typing import Optional

import httpx

from integration_shared.logging import get_logger
from .http_util import alog_unrecognized_encoding, log_unrecognized_encoding

# Generous defaults that only guard against hanging connections; each
# platform call passes its own tighter timeout.
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=30.0)
DEFAULT_LIMITS = httpx.Limits(max_connections=200, max_keepalive_connections=100)


def new_blocking_client() -> httpx.Client:
    return httpx.Client(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        event_hooks={"response": [log_unrecognized_encoding]},
    )


def new_async_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        event_hooks={"response": [alog_unrecognized_encoding]},
    )


class IOBundle:
    """Owns the HTTP clients and their lifecycle.

    The asyncio event loop the bundle is used from acts as the task executor
    for every cache loader and client call. Components only read the clients;
    they never reconfigure or close them.
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        http_async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.http_client = http_client if http_client is not None else new_blocking_client()
        self.http_async_client = (
            http_async_client if http_async_client is not None else new_async_client()
        )
        self.logger = get_logger("integration.io")

    def close(self) -> None:
        """Close the blocking client. The async client needs ``aclose``."""
        try:
            self.http_client.close()
        except Exception as exc:
            self.logger.warning("Exception encountered in close()", error=str(exc))

    async def aclose(self) -> None:
        """Close both clients."""
        self.close()
        try:
            await self.http_async_client.aclose()
        except Exception as exc:
            self.logger.warning("Exception encountered in aclose()", error=str(exc))

    async def __aenter__(self) -> "IOBundle":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
