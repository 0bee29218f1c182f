"""Latest editor selection shared between selection sync and the webview bridge.

Keeps the selection around so a webview that connects late can still pick
it up, and tracks a one-shot "auto-include" request that must reach the
chat view exactly once.
"""
from __future__ import annotations

import logging

from blockrelay.shared.models.selection import SelectionRange

logger = logging.getLogger(__name__)


class SelectionState:
    """Owned selection store. Every value in or out is a copy."""

    def __init__(self) -> None:
        self._last_selection: SelectionRange | None = None
        self._last_signature: str | None = None
        self._pending_auto_include = False
        self._pending_signature: str | None = None

    def set(self, selection: SelectionRange | None, *, auto_include: bool = False) -> None:
        if selection is not None:
            self._last_selection = selection.copy(auto_include=None)
            self._last_signature = selection.signature()
        else:
            self._last_selection = None
            self._last_signature = None

        if selection is not None and auto_include:
            self._pending_auto_include = True
            self._pending_signature = self._last_signature
            logger.debug("Auto-include pending for %s", selection.file_path)
            return

        # An identical selection must not cancel a pending auto-include.
        if selection is None or self._pending_signature != self._last_signature:
            self._pending_auto_include = False
            self._pending_signature = None

    def get_snapshot(self) -> SelectionRange | None:
        return self._last_selection.copy() if self._last_selection else None

    def consume(self) -> SelectionRange | None:
        """Return the selection, stamping and clearing a pending auto-include."""
        if self._last_selection is None:
            return None
        snapshot = self._last_selection.copy()
        if self._pending_auto_include:
            snapshot.auto_include = True
            self._pending_auto_include = False
            self._pending_signature = None
        return snapshot

    def has_pending_auto_include(self) -> bool:
        return self._pending_auto_include

    def clear_auto_include(self) -> None:
        self._pending_auto_include = False
        self._pending_signature = None
