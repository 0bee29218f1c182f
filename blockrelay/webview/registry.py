"""Render target registry with an explicit per-target lifecycle.

    REGISTERED --first inbound message--> READY
    REGISTERED | READY --dispose / failed delivery--> DISPOSED

DISPOSED is terminal: the target is dropped from every map at once and
never comes back, even if a late inbound message arrives for it.
"""
from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

SIDEBAR = "sidebar"
EDITOR = "editor"
CHAT_PAGE = "chat"


class TargetState(Enum):
    REGISTERED = "registered"
    READY = "ready"
    DISPOSED = "disposed"


@dataclass
class BootstrapConfig:
    """What a webview needs to know about itself when its page boots."""

    host: str  # "sidebar" or "editor"
    page: str | None = None
    id: str | None = None

    def is_chat_view(self) -> bool:
        """Outbound agent traffic only goes to the sidebar chat view."""
        return self.host == SIDEBAR and (not self.page or self.page == CHAT_PAGE)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"host": self.host}
        if self.page is not None:
            d["page"] = self.page
        if self.id is not None:
            d["id"] = self.id
        return d


class TargetRegistry:
    """Owns target states and bootstrap configs; nothing else mutates them."""

    def __init__(self) -> None:
        self._states: dict[Hashable, TargetState] = {}
        self._configs: dict[Hashable, BootstrapConfig] = {}
        self._disposed: weakref.WeakSet[Any] = weakref.WeakSet()

    def add(self, target: Hashable, config: BootstrapConfig) -> None:
        if target in self._disposed:
            logger.warning("Refusing to re-register disposed target %r", target)
            return
        self._states[target] = TargetState.REGISTERED
        self._configs[target] = config

    def mark_ready(self, target: Hashable) -> bool:
        """Move REGISTERED -> READY. Returns True only on an actual transition."""
        if self._states.get(target) is not TargetState.REGISTERED:
            return False
        self._states[target] = TargetState.READY
        return True

    def remove(self, target: Hashable) -> bool:
        """Dispose a target. Returns False if it was not tracked."""
        if target not in self._states:
            return False
        del self._states[target]
        self._configs.pop(target, None)
        self._disposed.add(target)
        return True

    def state_of(self, target: Hashable) -> TargetState | None:
        if target in self._states:
            return self._states[target]
        if target in self._disposed:
            return TargetState.DISPOSED
        return None

    def config_of(self, target: Hashable) -> BootstrapConfig | None:
        return self._configs.get(target)

    def targets(self) -> list[Hashable]:
        return list(self._states)

    def ready_matching(
        self, predicate: Callable[[BootstrapConfig], bool],
    ) -> list[Hashable]:
        """Snapshot of READY targets whose config satisfies ``predicate``."""
        return [
            target
            for target, state in self._states.items()
            if state is TargetState.READY and predicate(self._configs[target])
        ]

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, target: object) -> bool:
        return target in self._states
