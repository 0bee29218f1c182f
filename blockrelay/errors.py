"""Exception hierarchy for the relay.

The classifier and the delivery bridge catch these locally; only
configuration loading and explicit user commands let them escape.
"""
from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay errors."""


class DeliveryError(RelayError):
    """A render target refused or failed to accept a posted payload."""
    def __init__(self, target_id: str, reason: str):
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Cannot deliver to target {target_id}: {reason}")


class StaleTargetError(RelayError):
    """An editor panel handle outlived the surface it pointed to."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Editor panel {key} is no longer valid")


class ConfigError(RelayError):
    """Configuration file could not be read or has the wrong shape."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid config {path}: {reason}")


class SelectionUnavailableError(RelayError):
    """The active editor has no file-backed, non-empty selection."""
