"""Webview package - render target registry, delivery bridge and HTTP host."""
from __future__ import annotations

__all__ = [
    "BootstrapConfig",
    "TargetRegistry",
    "TargetState",
    "WebViewService",
]

from blockrelay.webview.registry import BootstrapConfig, TargetRegistry, TargetState
from blockrelay.webview.service import WebViewService
