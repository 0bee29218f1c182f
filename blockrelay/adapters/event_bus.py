"""Async bus bridging webview inbound messages to the agent-facing service.

The webview bridge calls its message handler synchronously from the
delivery path. The InboundBus queues those messages for an async
consumer loop so a slow consumer never stalls delivery.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from blockrelay.adapters.events import message_type

logger = logging.getLogger(__name__)


class InboundBus:
    """Async queue of messages received from webviews."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def _handler(self, message: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.error(
                "InboundBus queue full, dropping: %s (queue size: %d)",
                message_type(message),
                self._queue.qsize(),
            )

    def make_handler(self) -> Callable[[dict[str, Any]], None]:
        """Return the sync callback for WebViewService.set_message_handler."""
        return self._handler

    def qsize(self) -> int:
        return self._queue.qsize()

    async def consume(self) -> AsyncIterator[dict[str, Any]]:
        """Yield messages as they arrive. Stops on close()."""
        while not self._closed:
            try:
                message = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield message
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover messages and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False
