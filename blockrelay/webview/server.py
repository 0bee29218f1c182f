"""HTTP + SSE host for the webview bridge.

Every SSE client on ``/events`` is a webview: it is registered with the
WebViewService when the stream opens and disposed when the stream closes.
Pages send inbound messages back with ``POST /targets/{id}/messages``;
the first one marks the webview ready and flushes buffered traffic.

Usage:
    blockrelay serve [--port PORT]
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from aiohttp import web

from blockrelay.adapters.event_bus import InboundBus
from blockrelay.adapters.events import message_type
from blockrelay.adapters.selection_sync import EditorSnapshot, SelectionSync
from blockrelay.config import RelayConfig
from blockrelay.errors import SelectionUnavailableError
from blockrelay.shared.content_parser import attach_tool_results, parse_message_content
from blockrelay.shared.models.blocks import block_to_dict
from blockrelay.shared.services.selection_state import SelectionState
from blockrelay.webview.html import build_dev_html, build_html
from blockrelay.webview.registry import SIDEBAR, BootstrapConfig, TargetState
from blockrelay.webview.service import WebViewService
from blockrelay.webview.targets import SsePanelHost, SseWebview, SseWebviewView, Webview

logger = logging.getLogger(__name__)

InboundCallback = Callable[[dict[str, Any]], Awaitable[None]]


class RelayServer:
    """Thin aiohttp adapter around WebViewService.

    All delivery state lives in the service; this class only maps HTTP
    streams to webviews and requests to service calls.
    """

    def __init__(
        self,
        config: RelayConfig | None = None,
        *,
        on_inbound: InboundCallback | None = None,
    ) -> None:
        self._config = config or RelayConfig.from_env()
        self._host = self._config.host
        self._port = self._config.port
        self._started_at = time.time()
        self._on_inbound = on_inbound

        self.selection_state = SelectionState()
        self._panel_host = SsePanelHost(queue_size=self._config.sse_queue_size)
        self.webviews = WebViewService(
            self.selection_state,
            panel_host=self._panel_host,
            page_builder=self._build_page,
            max_pending_messages=self._config.max_pending_messages,
        )
        self.inbound = InboundBus()
        self.webviews.set_message_handler(self.inbound.make_handler())
        self.selection_sync = SelectionSync(self.webviews, self.selection_state)

        self._views: dict[str, SseWebviewView] = {}
        self._inbound_task: asyncio.Task | None = None
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._setup_routes()
        logger.info(
            "RelayServer init host=%s port=%s dev_mode=%s max_pending=%d pid=%s",
            self._host, self._port, self._config.dev_mode,
            self._config.max_pending_messages, os.getpid(),
        )

    @property
    def app(self) -> web.Application:
        return self._app

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = request.headers.get("x-blockrelay-request-id", str(uuid.uuid4())[:8])
        request["req_id"] = req_id
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path_qs, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/health", self._handle_health)
        r.add_get("/events", self._handle_events)
        r.add_get("/view", self._handle_view)
        r.add_post("/targets/{target_id}/messages", self._handle_inbound_message)
        r.add_post("/post", self._handle_post)
        r.add_get("/pending", self._handle_pending)
        r.add_post("/classify", self._handle_classify)
        r.add_post("/pages/{page}", self._handle_open_page)
        r.add_get("/pages/{key}/events", self._handle_page_events)
        r.add_post("/selection", self._handle_selection)
        r.add_get("/selection", self._handle_get_selection)
        r.add_post("/selection/consume", self._handle_consume_selection)

        dist = Path(self._config.extension_path) / "dist"
        if dist.is_dir():
            r.add_static("/dist", dist)

    # ── Lifecycle ──

    async def start(self) -> None:
        """Start the server, print the port to stdout and serve until cancelled."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()

        actual_port = self._resolve_port(site, runner)
        if actual_port is None:
            raise RuntimeError("Relay server started but no listening socket was reported.")
        self._port = actual_port

        sys.stdout.write(json.dumps({"port": actual_port}) + "\n")
        sys.stdout.flush()
        logger.info("Relay server listening on %s:%d", self._host, actual_port)

        self._inbound_task = asyncio.create_task(self._consume_inbound())
        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Server shutting down")
        finally:
            self.inbound.close()
            if self._inbound_task:
                self._inbound_task.cancel()
            for view in list(self._views.values()):
                view.dispose()
            await runner.cleanup()

    @staticmethod
    def _resolve_port(site, runner) -> int | None:
        sockets = getattr(getattr(site, "_server", None), "sockets", None) or ()
        if sockets:
            return sockets[0].getsockname()[1]
        addresses = getattr(runner, "addresses", None) or ()
        if addresses:
            first = addresses[0]
            if isinstance(first, tuple) and len(first) >= 2:
                return int(first[1])
        return None

    async def _consume_inbound(self) -> None:
        async for message in self.inbound.consume():
            if self._on_inbound is None:
                logger.debug("Inbound message %s (no consumer)", message_type(message))
                continue
            try:
                await self._on_inbound(message)
            except Exception:
                logger.exception("Inbound consumer failed")

    # ── Page generation ──

    def _origin(self) -> str:
        return f"http://{self._host}:{self._port}"

    def _build_page(self, webview: Webview, bootstrap: BootstrapConfig) -> str:
        origin = self._origin()
        if self._config.dev_mode:
            return build_dev_html(
                bootstrap, csp_source=origin, dev_server_url=self._config.dev_server_url,
            )
        return build_html(bootstrap, csp_source=origin, asset_base=f"{origin}/dist")

    # ── SSE streams ──

    async def _stream(
        self,
        request: web.Request,
        webview: SseWebview,
        on_close: Callable[[], None],
    ) -> web.StreamResponse:
        response = web.StreamResponse(
            status=200,
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
            },
        )
        await response.prepare(request)
        logger.info(
            "Webview stream opened id=%s req=%s active=%d",
            webview.id, request.get("req_id", "unknown"), len(self._views),
        )
        try:
            connected = {"target_id": webview.id, "state": _state_name(self.webviews, webview)}
            await response.write(f"event: connected\ndata: {json.dumps(connected)}\n\n".encode())
            while not webview.closed and not self._dropped(webview):
                try:
                    event, data = await asyncio.wait_for(
                        webview.queue.get(), timeout=self._config.keepalive_seconds,
                    )
                    await response.write(f"event: {event}\ndata: {json.dumps(data)}\n\n".encode())
                except asyncio.TimeoutError:
                    await response.write(b": keepalive\n\n")
                except ConnectionResetError:
                    break
        except asyncio.CancelledError:
            pass
        finally:
            on_close()
            logger.info(
                "Webview stream closed id=%s req=%s active=%d",
                webview.id, request.get("req_id", "unknown"), len(self._views),
            )
        return response

    async def _handle_events(self, request: web.Request) -> web.StreamResponse:
        host = request.query.get("host", SIDEBAR)
        page = request.query.get("page") or None
        instance_id = request.query.get("id") or None

        webview = SseWebview(queue_size=self._config.sse_queue_size)
        view = SseWebviewView(webview)
        bootstrap = BootstrapConfig(host=host, page=page, id=instance_id)
        if bootstrap.is_chat_view():
            self.webviews.resolve_webview_view(view)
        else:
            self.webviews.register_webview(webview, bootstrap)
            view.on_did_dispose(lambda: self.webviews.dispose_webview(webview))
        self._views[webview.id] = view

        def _close() -> None:
            self._views.pop(webview.id, None)
            view.dispose()

        return await self._stream(request, webview, _close)

    async def _handle_page_events(self, request: web.Request) -> web.StreamResponse:
        key = request.match_info["key"]
        panel = self._panel_host.get(key)
        if panel is None or panel.disposed:
            return web.json_response({"error": f"No editor page open for {key}"}, status=404)
        return await self._stream(request, panel.webview, panel.dispose)

    # ── Handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "pid": os.getpid(),
            "uptime_seconds": round(max(0.0, time.time() - self._started_at), 3),
            "webviews": len(self.webviews.registry),
            "pending_messages": len(self.webviews.pending_messages),
        })

    async def _handle_view(self, request: web.Request) -> web.Response:
        bootstrap = BootstrapConfig(
            host=request.query.get("host", SIDEBAR),
            page=request.query.get("page") or None,
            id=request.query.get("id") or None,
        )
        return web.Response(text=self._build_page(None, bootstrap), content_type="text/html")

    async def _handle_inbound_message(self, request: web.Request) -> web.Response:
        target_id = request.match_info["target_id"]
        webview = self._find_webview(target_id)
        if webview is None:
            return web.json_response({"error": f"Unknown target {target_id}"}, status=404)
        body, err = await _read_json(request)
        if err:
            return err
        if not isinstance(body, dict) or "type" not in body:
            return web.json_response({"error": "message must be an object with a 'type'"}, status=400)
        webview.receive(body)
        return web.json_response({"status": "ok", "state": _state_name(self.webviews, webview)})

    async def _handle_post(self, request: web.Request) -> web.Response:
        body, err = await _read_json(request)
        if err:
            return err
        if not isinstance(body, dict) or "message" not in body:
            return web.json_response({"error": "body must contain 'message'"}, status=400)
        self.webviews.post_message(body["message"])
        return web.json_response({
            "status": "accepted",
            "pending": len(self.webviews.pending_messages),
        })

    async def _handle_pending(self, request: web.Request) -> web.Response:
        return web.json_response({"pending": len(self.webviews.pending_messages)})

    async def _handle_classify(self, request: web.Request) -> web.Response:
        body, err = await _read_json(request)
        if err:
            return err
        content = body.get("content") if isinstance(body, dict) else body
        if not isinstance(content, list):
            return web.json_response({"error": "'content' must be a list"}, status=400)
        blocks = parse_message_content(content)
        if isinstance(body, dict) and body.get("pair_tools"):
            blocks = attach_tool_results(blocks)
        return web.json_response({"blocks": [block_to_dict(b) for b in blocks]})

    async def _handle_open_page(self, request: web.Request) -> web.Response:
        page = request.match_info["page"]
        body: Any = {}
        if request.can_read_body:
            body, err = await _read_json(request)
            if err:
                return err
        if not isinstance(body, dict):
            return web.json_response({"error": "body must be an object"}, status=400)
        title = str(body.get("title") or page)
        raw_id = body.get("instance_id")
        if raw_id is not None and (isinstance(raw_id, bool) or not isinstance(raw_id, (str, int))):
            return web.json_response({"error": "instance_id must be a string"}, status=400)
        instance_id = str(raw_id) if raw_id not in (None, "") else None
        panel = self.webviews.open_editor_page(page, title, instance_id)
        if panel is None:
            return web.json_response({"error": "Editor pages are unavailable"}, status=503)
        return web.json_response({
            "key": instance_id or page,
            "target_id": panel.webview.id,
        })

    async def _handle_selection(self, request: web.Request) -> web.Response:
        body, err = await _read_json(request)
        if err:
            return err
        if not isinstance(body, dict):
            return web.json_response({"error": "body must be an object"}, status=400)
        try:
            editor = _editor_from_json(body.get("editor"))
        except ValueError as exc:
            return web.json_response({"error": f"invalid editor snapshot: {exc}"}, status=400)
        if body.get("auto_include"):
            try:
                selection = self.selection_sync.add_selection_to_chat(editor)
            except SelectionUnavailableError as exc:
                return web.json_response({"error": str(exc)}, status=400)
            return web.json_response({"selection": selection.to_dict()})
        self.selection_sync.sync(editor)
        snapshot = self.selection_state.get_snapshot()
        return web.json_response({"selection": snapshot.to_dict() if snapshot else None})

    async def _handle_get_selection(self, request: web.Request) -> web.Response:
        snapshot = self.selection_state.get_snapshot()
        return web.json_response({"selection": snapshot.to_dict() if snapshot else None})

    async def _handle_consume_selection(self, request: web.Request) -> web.Response:
        selection = self.selection_state.consume()
        return web.json_response({"selection": selection.to_dict() if selection else None})

    def _dropped(self, webview: SseWebview) -> bool:
        return self.webviews.state_of(webview) is TargetState.DISPOSED

    def _find_webview(self, target_id: str) -> SseWebview | None:
        view = self._views.get(target_id)
        if view is not None:
            return view.webview
        for panel in self._panel_host.panels.values():
            if panel.webview.id == target_id:
                return panel.webview
        return None


def _state_name(service: WebViewService, webview: Webview) -> str | None:
    state = service.state_of(webview)
    return state.value if state else None


async def _read_json(request: web.Request) -> tuple[Any, web.Response | None]:
    try:
        return await request.json(), None
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError both land here.
        return None, web.json_response({"error": "invalid JSON body"}, status=400)


def _position(data: Any, name: str) -> tuple[int, int]:
    """(line, character) of a ``{"line", "character"}`` object; ValueError if malformed."""
    pos = data.get(name)
    if pos is None:
        return 0, 0
    if not isinstance(pos, dict):
        raise ValueError(f"'{name}' must be an object")
    try:
        return int(pos.get("line") or 0), int(pos.get("character") or 0)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' line and character must be integers") from None


def _editor_from_json(data: Any) -> EditorSnapshot | None:
    if not isinstance(data, dict):
        return None
    start_line, start_character = _position(data, "start")
    end_line, end_character = _position(data, "end")
    return EditorSnapshot(
        uri_scheme=str(data.get("scheme") or "file"),
        fs_path=str(data.get("path") or ""),
        start_line=start_line,
        start_character=start_character,
        end_line=end_line,
        end_character=end_character,
        text=str(data.get("text") or ""),
    )
