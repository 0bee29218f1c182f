"""Tests for the HTML shell and SSE-backed render targets."""
from __future__ import annotations

import pytest

from blockrelay.errors import DeliveryError, StaleTargetError
from blockrelay.webview.html import build_dev_html, build_html, dev_origins
from blockrelay.webview.registry import BootstrapConfig, TargetRegistry, TargetState
from blockrelay.webview.targets import SsePanelHost, SseWebview, SseWebviewView


def test_bootstrap_chat_view_detection():
    assert BootstrapConfig(host="sidebar").is_chat_view()
    assert BootstrapConfig(host="sidebar", page="chat").is_chat_view()
    assert not BootstrapConfig(host="sidebar", page="history").is_chat_view()
    assert not BootstrapConfig(host="editor", page="chat").is_chat_view()


def test_build_html_embeds_bootstrap_and_nonce():
    html = build_html(
        BootstrapConfig(host="editor", page="settings", id="s1"),
        csp_source="http://127.0.0.1:9000",
        asset_base="http://127.0.0.1:9000/dist/",
        nonce="abc123",
    )
    assert '{"host": "editor", "page": "settings", "id": "s1"}' in html
    assert "'nonce-abc123'" in html
    assert 'src="http://127.0.0.1:9000/dist/media/main.js"' in html
    assert 'href="http://127.0.0.1:9000/dist/media/style.css"' in html


def test_bootstrap_cannot_close_script_tag():
    html = build_html(
        BootstrapConfig(host="editor", page="</script><script>alert(1)"),
        csp_source="x",
        asset_base="x",
    )
    assert "</script><script>alert(1)" not in html


def test_dev_html_points_at_dev_server():
    html = build_dev_html(
        BootstrapConfig(host="sidebar"),
        csp_source="http://127.0.0.1:9000",
        dev_server_url="https://devbox:5174/",
        nonce="n",
    )
    assert 'src="https://devbox:5174/@vite/client"' in html
    assert "wss://devbox:5174" in html


def test_dev_origins_defaults():
    assert dev_origins("http://localhost:5173") == ("http://localhost:5173", "ws://localhost:5173")


def test_registry_lifecycle():
    registry = TargetRegistry()
    webview = SseWebview("w1")
    registry.add(webview, BootstrapConfig(host="sidebar"))
    assert registry.state_of(webview) is TargetState.REGISTERED
    assert registry.mark_ready(webview) is True
    assert registry.mark_ready(webview) is False

    registry.remove(webview)
    assert registry.state_of(webview) is TargetState.DISPOSED
    registry.add(webview, BootstrapConfig(host="sidebar"))
    assert registry.state_of(webview) is TargetState.DISPOSED
    assert webview not in registry


def test_sse_webview_refuses_when_closed_or_full():
    webview = SseWebview("w", queue_size=1)
    webview.post_message({"n": 1})
    with pytest.raises(DeliveryError):
        webview.post_message({"n": 2})

    webview.close()
    with pytest.raises(DeliveryError):
        webview.post_message({"n": 3})


def test_view_dispose_closes_webview_once():
    webview = SseWebview("w")
    view = SseWebviewView(webview)
    calls = []
    view.on_did_dispose(lambda: calls.append("disposed"))
    view.dispose()
    view.dispose()
    assert webview.closed
    assert calls == ["disposed"]


def test_panel_host_reveal_and_stale_panel():
    host = SsePanelHost(queue_size=10)
    panel = host.create_panel("settings", "Settings")
    assert host.get("settings") is panel
    assert panel.webview.id == "panel-settings"

    panel.reveal()
    assert panel.webview.queue.get_nowait() == ("reveal", {"key": "settings", "title": "Settings"})

    panel.dispose()
    assert host.get("settings") is None
    with pytest.raises(StaleTargetError):
        panel.reveal()
