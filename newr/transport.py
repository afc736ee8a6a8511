"""
HTTP transport used by delivery sessions. One aiohttp session per flush round.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

from .constants import LOG_TAG

logger = logging.getLogger(LOG_TAG)


@dataclass(frozen=True)
class TransportResponse:
    status: int
    reason: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class AiohttpTransport:
    """
    Posts request bodies with aiohttp. Use as an async context manager around a flush round:

        async with transport:
            response = await transport.post(url, body, headers)

    Network errors and timeouts are raised as aiohttp.ClientError / asyncio.TimeoutError;
    the delivery session treats them as transient failures.
    """

    def __init__(self, total_timeout_seconds: float = 30.0, connect_timeout_seconds: float = 10.0):
        # Use timeout to prevent hanging on unreachable servers
        self._timeout = aiohttp.ClientTimeout(total=total_timeout_seconds, connect=connect_timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AiohttpTransport":
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def post(self, url: str, body: bytes, headers: Dict[str, str]) -> TransportResponse:
        if self._session is None or self._session.closed:
            raise RuntimeError("AiohttpTransport.post() called outside 'async with transport'")
        async with self._session.post(url, data=body, headers=headers) as response:
            # Read the body so the connection can be reused
            await response.read()
            return TransportResponse(
                status=response.status,
                reason=response.reason,
                headers={key.lower(): value for key, value in response.headers.items()},
            )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug(f"AiohttpTransport: session closed")
        self._session = None
