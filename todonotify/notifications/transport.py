"""
Server-push transports for the stream client.

A transport's ``open`` is an async context manager: entering it means the
connection is open, and it yields an async iterator of raw message payloads.
The iterator ending means the server closed the stream; any exception is a
transport failure.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, Optional

import httpx
from httpx_sse import EventSource, aconnect_sse

logger = logging.getLogger(__name__)


class StreamTransport(ABC):
    @abstractmethod
    def open(
        self, url: str, params: Dict[str, str]
    ) -> AsyncContextManager[AsyncIterator[str]]:
        """Open a push connection to *url* with *params* in the query string."""


class SSETransport(StreamTransport):
    """Server-Sent Events over httpx.

    Only default ``message`` events are delivered, matching browser
    ``EventSource.onmessage`` semantics.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    @asynccontextmanager
    async def open(self, url: str, params: Dict[str, str]):
        # No read timeout: the server may stay quiet between heartbeats.
        timeout = httpx.Timeout(self.timeout, read=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            async with aconnect_sse(client, "GET", url, params=params) as event_source:
                event_source.response.raise_for_status()
                logger.debug(f"SSE stream open: {event_source.response.url}")
                yield self._iter_messages(event_source)

    async def _iter_messages(self, event_source: EventSource) -> AsyncIterator[str]:
        async for sse in event_source.aiter_sse():
            if sse.event != "message" or not sse.data:
                continue
            yield sse.data
