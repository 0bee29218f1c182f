"""Adapters package - glue between the webview bridge and its collaborators.

Holds the inbound message bus, the webview message envelopes and the
editor selection sync.
"""
from __future__ import annotations

__all__ = [
    "InboundBus",
    "selection_changed_message",
    "wrap_for_webview",
]

from blockrelay.adapters.event_bus import InboundBus
from blockrelay.adapters.events import selection_changed_message, wrap_for_webview
