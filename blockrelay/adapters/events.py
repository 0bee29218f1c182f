"""Message envelopes exchanged with webviews.

Outbound payloads are wrapped as ``{"type": "from-extension", "message": ...}``.
Requests initiated on this side (selection updates) travel inside that
envelope as ``{"type": "request", "requestId": ..., "request": {...}}``.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from blockrelay.shared.models.selection import SelectionRange

FROM_EXTENSION = "from-extension"
SELECTION_CHANGED = "selection_changed"


def new_request_id(prefix: str) -> str:
    """Build a request id like ``selection-1712345678901-k3j9x2``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass
class SelectionChangedRequest:
    selection: SelectionRange | None = None
    type: str = field(default=SELECTION_CHANGED, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "selection": self.selection.to_dict() if self.selection else None,
        }


@dataclass
class RequestMessage:
    request: dict[str, Any]
    request_id: str = field(default_factory=lambda: new_request_id("request"))
    type: str = field(default="request", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "requestId": self.request_id, "request": self.request}


def selection_changed_message(selection: SelectionRange | None) -> dict[str, Any]:
    """Request envelope announcing a new (or cleared) editor selection."""
    return RequestMessage(
        request=SelectionChangedRequest(selection=selection).to_dict(),
        request_id=new_request_id("selection"),
    ).to_dict()


def wrap_for_webview(message: Any) -> dict[str, Any]:
    return {"type": FROM_EXTENSION, "message": message}


def is_auto_include_selection(payload: Any) -> bool:
    """True when an outbound envelope carries an auto-include selection update."""
    if not isinstance(payload, dict):
        return False
    message = payload.get("message")
    request = message.get("request") if isinstance(message, dict) else None
    if not isinstance(request, dict) or request.get("type") != SELECTION_CHANGED:
        return False
    selection = request.get("selection")
    return isinstance(selection, dict) and bool(selection.get("autoInclude"))


def message_type(message: Any) -> str:
    """Best-effort ``type`` of an inbound webview message, for logging."""
    if isinstance(message, dict):
        return str(message.get("type", "<untyped>"))
    return type(message).__name__
