"""blockrelay: typed content blocks and webview delivery for agent output."""

__version__ = "0.1.0"
