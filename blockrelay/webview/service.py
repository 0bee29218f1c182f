"""Webview delivery bridge.

Tracks every registered webview, learns which ones are ready, and posts
outbound messages to the sidebar chat view. While no chat view is ready,
messages wait in a bounded buffer (oldest dropped first) and are replayed
as soon as one becomes ready.

A webview counts as ready once it has sent its first inbound message.
Delivery is best-effort: ``post_message`` never raises, and a webview
that fails a delivery is treated as disposed.
"""
from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from blockrelay.adapters.events import (
    is_auto_include_selection,
    message_type,
    wrap_for_webview,
)
from blockrelay.config import MAX_PENDING_MESSAGES
from blockrelay.shared.services.selection_state import SelectionState
from blockrelay.webview.registry import (
    CHAT_PAGE,
    EDITOR,
    SIDEBAR,
    BootstrapConfig,
    TargetRegistry,
    TargetState,
)
from blockrelay.webview.targets import EditorPanel, PanelHost, Webview, WebviewView

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], None]
PageBuilder = Callable[[Webview, BootstrapConfig], str]


def _is_chat_target(config: BootstrapConfig) -> bool:
    return config.is_chat_view()


class WebViewService:
    """Registry of live webviews plus the pending-message buffer."""

    def __init__(
        self,
        selection_state: SelectionState,
        *,
        panel_host: PanelHost | None = None,
        page_builder: PageBuilder | None = None,
        max_pending_messages: int = MAX_PENDING_MESSAGES,
    ) -> None:
        self._selection_state = selection_state
        self._panel_host = panel_host
        self._page_builder = page_builder
        self._registry = TargetRegistry()
        self._pending: deque[dict[str, Any]] = deque(maxlen=max_pending_messages)
        self._message_handler: MessageHandler | None = None
        self._editor_panels: dict[str, EditorPanel] = {}

    # ── Introspection ──

    @property
    def registry(self) -> TargetRegistry:
        return self._registry

    @property
    def pending_messages(self) -> list[dict[str, Any]]:
        return list(self._pending)

    def state_of(self, webview: Webview) -> TargetState | None:
        return self._registry.state_of(webview)

    def get_webview(self) -> Webview | None:
        """Any registered webview, or None."""
        for webview in self._registry.targets():
            return webview
        return None

    def get_editor_panel(self, key: str) -> EditorPanel | None:
        return self._editor_panels.get(key)

    # ── Registration ──

    def resolve_webview_view(self, view: WebviewView) -> None:
        """Register a sidebar chat view and forget it when it goes away."""
        logger.info("Resolving sidebar webview %s", view.webview.id)
        self.register_webview(view.webview, BootstrapConfig(host=SIDEBAR, page=CHAT_PAGE))

        def _on_dispose() -> None:
            self.dispose_webview(view.webview)
            logger.info("Sidebar webview %s disposed", view.webview.id)

        view.on_did_dispose(_on_dispose)

    def register_webview(self, webview: Webview, bootstrap: BootstrapConfig) -> None:
        """Track a webview as not-ready, wire its inbound channel and set its page."""
        self._registry.add(webview, bootstrap)
        webview.on_did_receive_message(
            lambda message: self._on_webview_message(webview, message)
        )
        if self._page_builder is not None:
            webview.html = self._page_builder(webview, bootstrap)
        logger.debug(
            "Registered webview %s bootstrap=%s total=%d",
            webview.id, bootstrap.to_dict(), len(self._registry),
        )

    def dispose_webview(self, webview: Webview) -> None:
        if self._registry.remove(webview):
            logger.debug("Webview %s removed, %d remaining", webview.id, len(self._registry))

    def set_message_handler(self, handler: MessageHandler | None) -> None:
        self._message_handler = handler

    # ── Outbound ──

    def post_message(self, message: Any) -> None:
        """Deliver to every ready chat view, or buffer until one is ready."""
        if len(self._registry) == 0:
            logger.warning("No webview registered; buffering %s", message_type(message))
            self._enqueue(message)
            return

        payload = wrap_for_webview(message)
        failed: list[Webview] = []
        delivered = False
        for webview in self._registry.ready_matching(_is_chat_target):
            if self._deliver(webview, payload):
                delivered = True
            else:
                failed.append(webview)

        for webview in failed:
            self.dispose_webview(webview)

        if not delivered:
            logger.info("No ready chat webview; buffering %s", message_type(message))
            self._enqueue(message)

    def _deliver(self, webview: Webview, payload: dict[str, Any]) -> bool:
        try:
            webview.post_message(payload)
        except Exception:
            logger.warning(
                "Posting to webview %s failed; dropping it", webview.id, exc_info=True,
            )
            return False
        if is_auto_include_selection(payload):
            self._selection_state.clear_auto_include()
        return True

    def _enqueue(self, message: Any) -> None:
        if len(self._pending) == self._pending.maxlen:
            logger.warning(
                "Pending buffer full (%d); evicting oldest message", self._pending.maxlen,
            )
        self._pending.append(wrap_for_webview(message))

    def _flush_pending(self) -> None:
        if not self._pending:
            return
        targets = self._registry.ready_matching(_is_chat_target)
        if not targets:
            return

        replay = list(self._pending)
        any_delivered = False
        for webview in targets:
            for payload in replay:
                if not self._deliver(webview, payload):
                    self.dispose_webview(webview)
                    break
                any_delivered = True

        if any_delivered:
            logger.info("Flushed %d pending message(s) to %d webview(s)", len(replay), len(targets))
            self._pending.clear()

    # ── Inbound ──

    def _on_webview_message(self, webview: Webview, message: Any) -> None:
        if self._registry.mark_ready(webview):
            logger.info("Webview %s is ready", webview.id)
            self._flush_pending()
        logger.info("Webview %s -> message %s", webview.id, message_type(message))
        if self._message_handler is None:
            return
        try:
            self._message_handler(message)
        except Exception:
            logger.exception("Message handler failed for %s", message_type(message))

    # ── Editor pages ──

    def open_editor_page(
        self, page: str, title: str, instance_id: str | None = None,
    ) -> EditorPanel | None:
        """Open or focus an editor page; one panel per ``instance_id or page``."""
        key = instance_id or page
        existing = self._editor_panels.get(key)
        if existing is not None:
            try:
                existing.reveal()
                logger.info("Revealed existing editor panel page=%s id=%s", page, key)
                return existing
            except Exception:
                logger.warning(
                    "Editor panel page=%s id=%s is stale; recreating", page, key,
                    exc_info=True,
                )
                self._editor_panels.pop(key, None)
                self.dispose_webview(existing.webview)

        if self._panel_host is None:
            logger.error("Cannot open editor page %s: no panel host configured", page)
            return None

        logger.info("Creating editor panel page=%s id=%s", page, key)
        panel = self._panel_host.create_panel(key, title)
        self.register_webview(panel.webview, BootstrapConfig(host=EDITOR, page=page, id=key))

        def _on_dispose() -> None:
            self.dispose_webview(panel.webview)
            if self._editor_panels.get(key) is panel:
                del self._editor_panels[key]
            logger.info("Editor panel page=%s id=%s disposed", page, key)

        panel.on_did_dispose(_on_dispose)
        self._editor_panels[key] = panel
        return panel
