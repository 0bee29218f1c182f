"""Render target protocols and the SSE-backed implementations.

A *webview* is anything that accepts posted payloads and calls back with
inbound messages. Sidebar *views* and editor *panels* wrap a webview and
report their own disposal; panels can additionally be revealed.

The SSE implementations keep a bounded asyncio queue per webview that the
HTTP stream handler drains. Posting never awaits: a closed webview or a
full queue raises DeliveryError right away.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from blockrelay.errors import DeliveryError, StaleTargetError

logger = logging.getLogger(__name__)

MessageListener = Callable[[Any], None]
DisposeListener = Callable[[], None]


class Webview(Protocol):
    id: str
    html: str

    def post_message(self, payload: dict[str, Any]) -> None: ...

    def on_did_receive_message(self, listener: MessageListener) -> None: ...


class WebviewView(Protocol):
    webview: Webview

    def on_did_dispose(self, listener: DisposeListener) -> None: ...


class EditorPanel(Protocol):
    webview: Webview

    def reveal(self) -> None: ...

    def on_did_dispose(self, listener: DisposeListener) -> None: ...


class PanelHost(Protocol):
    def create_panel(self, key: str, title: str) -> EditorPanel: ...


class SseWebview:
    """Webview whose outbound side is an SSE event queue."""

    def __init__(self, target_id: str | None = None, *, queue_size: int = 1000) -> None:
        self.id = target_id or uuid.uuid4().hex[:12]
        self.html = ""
        self.queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._listeners: list[MessageListener] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def post_message(self, payload: dict[str, Any]) -> None:
        self._put("message", payload)

    def on_did_receive_message(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def receive(self, message: Any) -> None:
        """Feed an inbound message from the page to every listener."""
        for listener in list(self._listeners):
            listener(message)

    def send_control(self, event: str, data: Any) -> None:
        self._put(event, data)

    def close(self) -> None:
        self._closed = True

    def _put(self, event: str, data: Any) -> None:
        if self._closed:
            raise DeliveryError(self.id, "webview is closed")
        try:
            self.queue.put_nowait((event, data))
        except asyncio.QueueFull:
            raise DeliveryError(self.id, "outbound queue full") from None

    def __repr__(self) -> str:
        return f"SseWebview(id={self.id!r}, closed={self._closed})"


class _Disposable:
    def __init__(self) -> None:
        self._dispose_listeners: list[DisposeListener] = []
        self.disposed = False

    def on_did_dispose(self, listener: DisposeListener) -> None:
        self._dispose_listeners.append(listener)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        for listener in list(self._dispose_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Dispose listener failed")


class SseWebviewView(_Disposable):
    """Sidebar view: one per connected SSE client."""

    def __init__(self, webview: SseWebview) -> None:
        super().__init__()
        self.webview = webview

    def dispose(self) -> None:
        self.webview.close()
        super().dispose()


class SsePanel(_Disposable):
    """Editor panel whose page attaches to the webview's stream by key."""

    def __init__(self, key: str, title: str, webview: SseWebview) -> None:
        super().__init__()
        self.key = key
        self.title = title
        self.webview = webview

    def reveal(self) -> None:
        if self.disposed or self.webview.closed:
            raise StaleTargetError(self.key)
        self.webview.send_control("reveal", {"key": self.key, "title": self.title})

    def dispose(self) -> None:
        self.webview.close()
        super().dispose()


class SsePanelHost:
    """Creates editor panels backed by SSE webviews and remembers them by key."""

    def __init__(self, *, queue_size: int = 1000) -> None:
        self._queue_size = queue_size
        self.panels: dict[str, SsePanel] = {}

    def create_panel(self, key: str, title: str) -> SsePanel:
        webview = SseWebview(f"panel-{key}", queue_size=self._queue_size)
        panel = SsePanel(key, title, webview)
        self.panels[key] = panel
        panel.on_did_dispose(lambda: self._forget(key, panel))
        return panel

    def get(self, key: str) -> SsePanel | None:
        return self.panels.get(key)

    def _forget(self, key: str, panel: SsePanel) -> None:
        if self.panels.get(key) is panel:
            del self.panels[key]
