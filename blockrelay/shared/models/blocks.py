"""Content block models.

Each block is one typed, renderable unit of classified agent output.
The ``type`` tag and the wire names in ``block_to_dict`` are what the
rendering side consumes; renaming either is a breaking change.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Union


def _wire(name: str) -> dict[str, str]:
    return {"wire": name}


@dataclass
class TextBlock:
    type: str = field(default="text", init=False)
    text: str = ""
    is_slash_command: bool | None = field(default=None, metadata=_wire("isSlashCommand"))


@dataclass
class ThinkingBlock:
    type: str = field(default="thinking", init=False)
    thinking: str = ""


@dataclass
class ImageBlock:
    type: str = field(default="image", init=False)
    # {"type": "base64", "media_type": ..., "data": ...}
    source: dict[str, Any] | None = None


@dataclass
class DocumentBlock:
    type: str = field(default="document", init=False)
    title: str | None = None
    source: dict[str, Any] | None = None


@dataclass
class InterruptBlock:
    type: str = field(default="interrupt", init=False)
    message: str = ""
    friendly_message: str = field(default="", metadata=_wire("friendlyMessage"))


@dataclass
class SelectionBlock:
    type: str = field(default="selection", init=False)
    file_path: str = field(default="", metadata=_wire("filePath"))
    label: str = ""
    start_line: int | None = field(default=None, metadata=_wire("startLine"))
    end_line: int | None = field(default=None, metadata=_wire("endLine"))
    selected_text: str | None = field(default=None, metadata=_wire("selectedText"))


@dataclass
class OpenedFileBlock:
    type: str = field(default="opened_file", init=False)
    file_path: str = field(default="", metadata=_wire("filePath"))
    label: str = ""


@dataclass
class DiagnosticsEntry:
    file_path: str = field(default="", metadata=_wire("filePath"))
    line: int = 0
    column: int = 0
    message: str = ""
    code: str | None = None
    severity: str | None = None


@dataclass
class DiagnosticsBlock:
    type: str = field(default="diagnostics", init=False)
    diagnostics: list[DiagnosticsEntry] = field(default_factory=list)


@dataclass
class SlashCommandResultBlock:
    type: str = field(default="slash_command_result", init=False)
    result: str = ""
    is_error: bool = field(default=False, metadata=_wire("isError"))


@dataclass
class ToolResultBlock:
    type: str = field(default="tool_result", init=False)
    tool_use_id: str = ""
    content: Any = None
    is_error: bool | None = None


@dataclass
class ToolUseBlock:
    type: str = field(default="tool_use", init=False)
    id: str = ""
    name: str = ""
    input: Any = None
    # Attached by the consuming layer once a matching tool_result shows up.
    tool_result: ToolResultBlock | None = field(default=None, metadata=_wire("toolResult"))


Block = Union[
    TextBlock,
    ThinkingBlock,
    ImageBlock,
    DocumentBlock,
    InterruptBlock,
    SelectionBlock,
    OpenedFileBlock,
    DiagnosticsBlock,
    SlashCommandResultBlock,
    ToolUseBlock,
    ToolResultBlock,
]

BLOCK_TYPES: dict[str, type] = {
    "text": TextBlock,
    "thinking": ThinkingBlock,
    "image": ImageBlock,
    "document": DocumentBlock,
    "interrupt": InterruptBlock,
    "selection": SelectionBlock,
    "opened_file": OpenedFileBlock,
    "diagnostics": DiagnosticsBlock,
    "slash_command_result": SlashCommandResultBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
}


def _to_wire(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return block_to_dict(value)
    if isinstance(value, list):
        return [_to_wire(item) for item in value]
    return value


def block_to_dict(block: Any) -> dict[str, Any]:
    """Convert a block (or nested entry) to its wire dict, omitting unset optionals."""
    d: dict[str, Any] = {}
    for f in fields(block):
        val = getattr(block, f.name)
        if val is None:
            continue
        d[f.metadata.get("wire", f.name)] = _to_wire(val)
    return d


def blocks_to_json(blocks: list[Block], *, indent: int | None = None) -> str:
    """Serialize a block sequence for the rendering side."""
    return json.dumps([block_to_dict(b) for b in blocks], ensure_ascii=False, indent=indent)
