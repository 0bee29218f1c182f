"""Tests for relay configuration from env vars and YAML."""
from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from blockrelay.config import MAX_PENDING_MESSAGES, RelayConfig, load_yaml_config
from blockrelay.errors import ConfigError

_CLEAN_ENV = {
    k: v for k, v in os.environ.items()
    if not k.startswith(("BLOCKRELAY_", "VITE_"))
}


def test_defaults():
    with patch.dict(os.environ, _CLEAN_ENV, clear=True):
        config = RelayConfig.from_env()
    assert config.max_pending_messages == MAX_PENDING_MESSAGES == 50
    assert config.port == 0
    assert config.dev_mode is False
    assert config.dev_server_url == "http://localhost:5173"


def test_env_overrides():
    env = dict(
        _CLEAN_ENV,
        BLOCKRELAY_PORT="8765",
        BLOCKRELAY_LOG_LEVEL="debug",
        BLOCKRELAY_MAX_PENDING_MESSAGES="10",
        BLOCKRELAY_DEV_MODE="yes",
        VITE_DEV_PORT="6000",
    )
    with patch.dict(os.environ, env, clear=True):
        config = RelayConfig.from_env()
    assert config.port == 8765
    assert config.log_level == "DEBUG"
    assert config.max_pending_messages == 10
    assert config.dev_mode is True
    assert config.dev_server_url == "http://localhost:6000"


def test_bad_env_value_falls_back_to_default():
    env = dict(_CLEAN_ENV, BLOCKRELAY_PORT="not-a-port")
    with patch.dict(os.environ, env, clear=True):
        config = RelayConfig.from_env()
    assert config.port == 0


def test_validate_clamps_out_of_range_values():
    config = RelayConfig(max_pending_messages=0, keepalive_seconds=-1, port=-5)
    config.validate()
    assert config.max_pending_messages == MAX_PENDING_MESSAGES
    assert config.keepalive_seconds == 30.0
    assert config.port == 0


def test_yaml_overlay(tmp_path):
    path = tmp_path / "relay.yaml"
    path.write_text(
        "relay:\n"
        "  port: '9000'\n"
        "  max_pending_messages: 5\n"
        "  dev_mode: 'true'\n"
        "  log_level: warning\n",
        encoding="utf-8",
    )
    with patch.dict(os.environ, _CLEAN_ENV, clear=True):
        config = load_yaml_config(path)
    assert config.port == 9000
    assert config.max_pending_messages == 5
    assert config.dev_mode is True
    assert config.log_level == "WARNING"


def test_yaml_unknown_key_is_ignored(tmp_path, caplog):
    path = tmp_path / "relay.yaml"
    path.write_text("relay:\n  colour: blue\n", encoding="utf-8")
    with patch.dict(os.environ, _CLEAN_ENV, clear=True), caplog.at_level(logging.WARNING):
        config = load_yaml_config(path)
    assert not hasattr(config, "colour")
    assert "colour" in caplog.text


def test_no_path_uses_env():
    with patch.dict(os.environ, dict(_CLEAN_ENV, BLOCKRELAY_HOST="0.0.0.0"), clear=True):
        config = load_yaml_config(None)
    assert config.host == "0.0.0.0"


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "relay: [1, 2]\n",
        "relay:\n  port: eighty\n",
        "relay: {port: [unclosed\n",
    ],
)
def test_invalid_yaml_raises_config_error(tmp_path, content):
    path = tmp_path / "relay.yaml"
    path.write_text(content, encoding="utf-8")
    with patch.dict(os.environ, _CLEAN_ENV, clear=True):
        with pytest.raises(ConfigError) as exc_info:
            load_yaml_config(path)
    assert exc_info.value.path == str(path)


def test_missing_file_raises_config_error(tmp_path):
    with pytest.raises(ConfigError):
        load_yaml_config(tmp_path / "absent.yaml")
