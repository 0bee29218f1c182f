"""Configuration loaded from environment variables and optional YAML.

All settings have sensible defaults. Override via BLOCKRELAY_* env vars
or a YAML file with a ``relay:`` section:

    relay:
      host: 127.0.0.1
      port: 8765
      log_level: DEBUG
      max_pending_messages: 50
      dev_mode: true
      dev_server_url: http://localhost:5173
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from blockrelay.errors import ConfigError

logger = logging.getLogger(__name__)

# Capacity of the pending-message buffer used while no target is ready.
MAX_PENDING_MESSAGES = 50

LOG_DIR = Path.home() / ".blockrelay" / "logs"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class RelayConfig:
    """Relay server and bridge configuration."""

    host: str = "127.0.0.1"
    # 0 lets the OS pick a free port.
    port: int = 0
    log_level: str = "INFO"

    # Bridge
    max_pending_messages: int = MAX_PENDING_MESSAGES
    # Per-SSE-client queue; a full queue counts as a delivery failure.
    sse_queue_size: int = 1000
    keepalive_seconds: float = 30.0

    # Page generation
    dev_mode: bool = False
    dev_server_url: str = "http://localhost:5173"
    extension_path: str = "."

    @classmethod
    def from_env(cls) -> RelayConfig:
        """Build a config from BLOCKRELAY_* environment variables."""
        defaults = cls()
        dev_server_url = (
            os.getenv("BLOCKRELAY_DEV_SERVER_URL")
            or os.getenv("VITE_DEV_SERVER_URL")
            or f"http://localhost:{os.getenv('VITE_DEV_PORT', '5173')}"
        )
        return cls(
            host=os.getenv("BLOCKRELAY_HOST", defaults.host),
            port=_env_int("BLOCKRELAY_PORT", defaults.port),
            log_level=os.getenv("BLOCKRELAY_LOG_LEVEL", defaults.log_level).upper(),
            max_pending_messages=_env_int(
                "BLOCKRELAY_MAX_PENDING_MESSAGES", defaults.max_pending_messages,
            ),
            sse_queue_size=_env_int("BLOCKRELAY_SSE_QUEUE_SIZE", defaults.sse_queue_size),
            keepalive_seconds=_env_float(
                "BLOCKRELAY_KEEPALIVE_SECONDS", defaults.keepalive_seconds,
            ),
            dev_mode=_env_bool("BLOCKRELAY_DEV_MODE", defaults.dev_mode),
            dev_server_url=dev_server_url,
            extension_path=os.getenv("BLOCKRELAY_EXTENSION_PATH", defaults.extension_path),
        )

    def validate(self) -> None:
        """Clamp values into allowed ranges."""
        if self.max_pending_messages < 1:
            self.max_pending_messages = MAX_PENDING_MESSAGES
        if self.sse_queue_size < 1:
            self.sse_queue_size = 1000
        if self.keepalive_seconds <= 0:
            self.keepalive_seconds = 30.0
        if self.port < 0:
            self.port = 0
        self.log_level = str(self.log_level).upper()


def _coerce(path: Path, key: str, value: Any, current: Any) -> Any:
    """Convert a YAML value to the type of the field's current value."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    try:
        return type(current)(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(str(path), f"{key}: {exc}") from exc


def load_yaml_config(path: str | Path | None) -> RelayConfig:
    """Load a YAML config file, overlaying its ``relay:`` section on env defaults.

    Unknown keys are logged and skipped. A missing ``path`` returns the
    env-derived config unchanged.
    """
    config = RelayConfig.from_env()
    if path is None:
        config.validate()
        return config

    target = Path(path)
    try:
        raw = yaml.safe_load(target.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(str(target), f"cannot read: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(str(target), f"invalid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(str(target), "top level must be a mapping")

    section: Any = raw.get("relay", {})
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigError(str(target), "'relay' must be a mapping")

    known = {f.name for f in fields(RelayConfig)}
    for key, value in section.items():
        if key not in known:
            logger.warning("Unknown relay config key %r in %s; ignoring", key, target)
            continue
        setattr(config, key, _coerce(target, key, value, getattr(config, key)))

    config.validate()
    logger.debug("Loaded relay config from %s", target)
    return config
