"""blockrelay command-line entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from blockrelay.config import LOG_DIR, RelayConfig, load_yaml_config
from blockrelay.errors import ConfigError
from blockrelay.shared.content_parser import attach_tool_results, parse_message_content
from blockrelay.shared.models.blocks import Block, block_to_dict, blocks_to_json

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 80


def _configure_logging(config: RelayConfig, *, log_file: Path | None) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)


def _load_fragments(source: str | None) -> list[Any]:
    """Read a fragment list from a file (or stdin); accepts ``{"content": [...]}`` too."""
    if source is None or source == "-":
        raw = sys.stdin.read()
    else:
        raw = Path(source).read_text(encoding="utf-8")
    data = json.loads(raw)
    if isinstance(data, dict):
        data = data.get("content", [])
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of content fragments")
    return data


def _preview(block: Block) -> str:
    d = block_to_dict(block)
    d.pop("type", None)
    text = json.dumps(d, ensure_ascii=False)
    if len(text) > _PREVIEW_CHARS:
        return text[: _PREVIEW_CHARS - 1] + "…"
    return text


def render_blocks_table(blocks: list[Block]) -> Table:
    table = Table(title=f"{len(blocks)} block(s)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("type", style="cyan")
    table.add_column("content")
    for index, block in enumerate(blocks, start=1):
        table.add_row(str(index), block.type, _preview(block))
    return table


def _run_classify(args) -> int:
    try:
        fragments = _load_fragments(args.file)
    except (OSError, ValueError) as exc:
        print(f"Error: cannot read fragments: {exc}", file=sys.stderr)
        return 2

    blocks = parse_message_content(fragments)
    if args.pair_tools:
        blocks = attach_tool_results(blocks)

    if args.json:
        sys.stdout.write(blocks_to_json(blocks, indent=2) + "\n")
    else:
        Console().print(render_blocks_table(blocks))
    return 0


def _run_serve(args) -> int:
    from blockrelay.webview.server import RelayServer

    try:
        config = load_yaml_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.dev:
        config.dev_mode = True

    log_file = LOG_DIR / "blockrelay-server.log"
    _configure_logging(config, log_file=log_file)
    logger.info(
        "Starting relay server cwd=%s host=%s port=%s config=%s log=%s",
        Path.cwd(), config.host, config.port, args.config or "<none>", log_file,
    )

    server = RelayServer(config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="blockrelay",
        description="Classify agent output into content blocks and relay it to webviews",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    classify = sub.add_parser("classify", help="Classify a JSON list of content fragments")
    classify.add_argument(
        "file", nargs="?", default=None,
        help="JSON file with the fragments (default: stdin)",
    )
    classify.add_argument("--json", action="store_true", help="Print blocks as JSON")
    classify.add_argument(
        "--pair-tools", action="store_true",
        help="Attach tool_result blocks to their tool_use blocks",
    )
    classify.set_defaults(func=_run_classify)

    serve = sub.add_parser("serve", help="Run the HTTP + SSE webview host")
    serve.add_argument("--host", default=None, help="Interface to bind")
    serve.add_argument("--port", type=int, default=None, help="Port (0 picks a free one)")
    serve.add_argument("--config", default=None, help="YAML config file")
    serve.add_argument("--dev", action="store_true", help="Serve pages from the Vite dev server")
    serve.set_defaults(func=_run_serve)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
