"""Editor selection -> chat webview synchronization.

Turns editor selection events into ``selection_changed`` requests posted
through the WebViewService, skipping repeats of the selection that was
sent last. Explicit "add selection to chat" requests are marked
auto-include so the chat view attaches them to the next message.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from blockrelay.adapters.events import selection_changed_message
from blockrelay.errors import SelectionUnavailableError
from blockrelay.shared.models.selection import SelectionRange
from blockrelay.shared.services.selection_state import SelectionState
from blockrelay.webview.service import WebViewService

logger = logging.getLogger(__name__)

_NO_SELECTION = "::no_selection::"


@dataclass
class EditorSnapshot:
    """What the editor reports for its active document. Positions are 0-based."""

    uri_scheme: str
    fs_path: str
    start_line: int = 0
    start_character: int = 0
    end_line: int = 0
    end_character: int = 0
    text: str = ""

    @property
    def is_file(self) -> bool:
        return self.uri_scheme == "file"

    @property
    def is_empty(self) -> bool:
        return (
            self.start_line == self.end_line
            and self.start_character == self.end_character
        )


def build_selection_range(editor: EditorSnapshot | None) -> SelectionRange | None:
    """Selection for a file-backed editor with a non-empty selection, else None."""
    if editor is None or not editor.is_file or editor.is_empty:
        return None
    return SelectionRange(
        file_path=editor.fs_path,
        start_line=editor.start_line + 1,
        end_line=editor.end_line + 1,
        start_column=editor.start_character,
        end_column=editor.end_character,
        selected_text=editor.text,
    )


class SelectionSync:
    """Pushes editor selection changes to the chat webview."""

    def __init__(
        self,
        webviews: WebViewService,
        selection_state: SelectionState,
        *,
        focus_chat: Callable[[], None] | None = None,
    ) -> None:
        self._webviews = webviews
        self._state = selection_state
        self._focus_chat = focus_chat
        self._last_signature: str | None = None

    def sync(self, editor: EditorSnapshot | None, *, auto_include: bool = False) -> None:
        selection = build_selection_range(editor)
        if selection is None:
            selectable = editor is not None and editor.is_file
            if not selectable and self._state.has_pending_auto_include():
                # Focus moving into the chat view must not wipe a selection
                # that is still waiting to be auto-included.
                logger.debug("Keeping pending auto-include selection")
                return
            self._state.set(None)
            self._send(None)
            return

        self._state.set(selection, auto_include=auto_include)
        payload = selection.copy(auto_include=True) if auto_include else selection
        self._send(payload, force=auto_include)

    def add_selection_to_chat(self, editor: EditorSnapshot | None) -> SelectionRange:
        """Send the current selection for auto-inclusion and focus the chat view."""
        selection = build_selection_range(editor)
        if selection is None:
            raise SelectionUnavailableError(
                "Select a code snippet in a file before adding it to the chat"
            )
        self.sync(editor, auto_include=True)
        if self._focus_chat is not None:
            self._focus_chat()
        return selection

    def _send(self, selection: SelectionRange | None, *, force: bool = False) -> None:
        signature = selection.signature() if selection else _NO_SELECTION
        if not force and signature == self._last_signature:
            return
        self._last_signature = signature
        logger.debug(
            "Posting selection_changed %s",
            selection.file_path if selection else "<none>",
        )
        self._webviews.post_message(selection_changed_message(selection))
