"""Classify raw agent content fragments into typed content blocks.

The agent transport encodes several distinct events (editor selections,
opened files, IDE diagnostics, slash-command echoes) as plain text with
embedded pseudo-tags. ``parse_message_content`` recovers that structure
where the tags are well-formed and falls back to plain text otherwise.

Every text rule returns a block or ``None``; ``None`` means "try the next
rule". Nothing here raises on malformed input.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from blockrelay.shared.models.blocks import (
    Block,
    DiagnosticsBlock,
    DiagnosticsEntry,
    DocumentBlock,
    ImageBlock,
    InterruptBlock,
    OpenedFileBlock,
    SelectionBlock,
    SlashCommandResultBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

INTERRUPT_MESSAGES: dict[str, str] = {
    "[Request interrupted by user]": "Interrupted",
    "[Request interrupted by user for tool use]": "Tool interrupted",
}

TOOL_REJECTION_MARKER = (
    "The user doesn't want to proceed with this tool use. The tool use was rejected "
    "(eg. if it was a file edit, the new_string was NOT written to the file). "
    "STOP what you are doing and wait for the user to tell you how to proceed."
)

TOOL_REJECTION_PREFIX = (
    "The user doesn't want to proceed with this tool use. The tool use was rejected "
    "(eg. if it was a file edit, the new_string was NOT written to the file). "
    "The user provided the following reason for the rejection: "
)

_SELECTION_TAG = "<ide_selection>"
_OPENED_FILE_TAG = "<ide_opened_file>"
_STDERR_TAG = "<local-command-stderr>"
_STDOUT_TAG = "<local-command-stdout>"
_HOOK_TAG = "<post-tool-use-hook>"

_FILE_FROM_RE = re.compile(r"from ([^:]+):")
_LINES_RE = re.compile(r"lines (\d+) to (\d+)")
_LINE_RE = re.compile(r"line (\d+)")
_SNIPPET_RE = re.compile(
    r"from [^:]+:\s*(.*?)\n+\s*This may or may not be related", re.DOTALL,
)
# A "lines N to M" phrase sitting directly after the path colon is part of
# the header, not the selected code.
_LEADING_RANGE_RE = re.compile(r"\A(?:lines \d+ to \d+|line \d+)[ \t]*\n")
_OPENED_FILE_RE = re.compile(
    r"(?:opened the file|opened file) (.+?) in (?:the )?(?:IDE|editor)"
)
_STDERR_RE = re.compile(r"<local-command-stderr>(.*?)</local-command-stderr>", re.DOTALL)
_STDOUT_RE = re.compile(r"<local-command-stdout>(.*?)</local-command-stdout>", re.DOTALL)
_HOOK_RE = re.compile(r"<post-tool-use-hook>(.*?)</post-tool-use-hook>", re.DOTALL)
_DIAGNOSTICS_RE = re.compile(r"<ide_diagnostics>(.*?)</ide_diagnostics>", re.DOTALL)
_COMMAND_NAME_RE = re.compile(r"<command-name>(.*?)</command-name>", re.DOTALL)
_COMMAND_ARGS_RE = re.compile(r"<command-args>(.*?)</command-args>", re.DOTALL)


def parse_message_content(raw_content: Iterable[Any] | None) -> list[Block]:
    """Classify a sequence of raw fragments, preserving their order."""
    blocks: list[Block] = []
    for raw in raw_content or ():
        block = parse_block(raw)
        if block is not None:
            blocks.append(block)
    return blocks


def parse_block(raw: Any) -> Block | None:
    """Classify one fragment. ``None`` means the fragment is intentionally silent."""
    if not isinstance(raw, Mapping):
        if raw is None:
            return TextBlock(text="")
        if isinstance(raw, bool):
            return TextBlock(text="true" if raw else "false")
        return TextBlock(text=str(raw))

    block_type = raw.get("type")
    if block_type == "text":
        return parse_text(_text_of(raw))
    if block_type == "thinking":
        thinking = raw.get("thinking")
        return ThinkingBlock(thinking="" if thinking is None else str(thinking))
    if block_type == "redacted_thinking":
        # Kept in history so the agent accepts it back; never shown.
        return None
    if block_type == "image":
        return ImageBlock(source=raw.get("source"))
    if block_type == "document":
        return DocumentBlock(title=raw.get("title"), source=raw.get("source"))
    if block_type == "tool_use":
        return ToolUseBlock(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            input=raw.get("input"),
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(raw.get("tool_use_id") or ""),
            content=raw.get("content"),
            is_error=raw.get("is_error"),
        )
    return TextBlock(text=_dump(raw))


def parse_text(text: str) -> Block | None:
    """Run the text heuristics; ``None`` means the text is a silent marker."""
    friendly = INTERRUPT_MESSAGES.get(text)
    if friendly is not None:
        return InterruptBlock(message=text, friendly_message=friendly)

    for rule in _TEXT_RULES:
        block = rule(text)
        if block is not None:
            return block

    if text == TOOL_REJECTION_MARKER or text.startswith(TOOL_REJECTION_PREFIX):
        return None

    return TextBlock(text=text)


def parse_selection(text: str) -> SelectionBlock | None:
    if _SELECTION_TAG not in text:
        return None
    file_match = _FILE_FROM_RE.search(text)
    if not file_match:
        return None

    file_path = file_match.group(1)
    file_name = _basename(file_path)

    start_line: int | None = None
    end_line: int | None = None
    lines_match = _LINES_RE.search(text)
    if lines_match:
        start_line = int(lines_match.group(1))
        end_line = int(lines_match.group(2))
    else:
        single_match = _LINE_RE.search(text)
        if single_match:
            start_line = int(single_match.group(1))

    if start_line and end_line:
        label = f"{file_name}#{start_line}-{end_line}"
    elif start_line:
        label = f"{file_name}#{start_line}"
    else:
        label = file_name

    selected_text: str | None = None
    snippet_match = _SNIPPET_RE.search(text)
    if snippet_match:
        snippet = _LEADING_RANGE_RE.sub("", snippet_match.group(1), count=1)
        selected_text = snippet.rstrip()

    return SelectionBlock(
        file_path=file_path,
        label=label,
        start_line=start_line,
        end_line=end_line,
        selected_text=selected_text,
    )


def parse_opened_file(text: str) -> OpenedFileBlock | None:
    if _OPENED_FILE_TAG not in text:
        return None
    match = _OPENED_FILE_RE.search(text)
    if not match:
        return None
    file_path = match.group(1)
    return OpenedFileBlock(file_path=file_path, label=_basename(file_path))


def parse_slash_command_result(text: str) -> SlashCommandResultBlock | None:
    if _STDERR_TAG not in text and _STDOUT_TAG not in text:
        return None
    stderr_match = _STDERR_RE.search(text)
    if stderr_match:
        return SlashCommandResultBlock(result=stderr_match.group(1).strip(), is_error=True)
    stdout_match = _STDOUT_RE.search(text)
    if stdout_match:
        return SlashCommandResultBlock(result=stdout_match.group(1).strip(), is_error=False)
    return None


def parse_diagnostics(text: str) -> DiagnosticsBlock | None:
    """Diagnostics from a post-tool-use hook, or None.

    Entries that are not JSON objects (numbers, strings, null) make the
    whole text fall through to plain text rather than becoming
    default-filled diagnostics.
    """
    if _HOOK_TAG not in text:
        return None
    hook_match = _HOOK_RE.search(text)
    if not hook_match:
        return None
    diagnostics_match = _DIAGNOSTICS_RE.search(hook_match.group(1))
    if not diagnostics_match:
        return None

    try:
        parsed = json.loads(diagnostics_match.group(1))
    except ValueError:
        return None
    if not isinstance(parsed, list):
        return None
    if not all(isinstance(entry, Mapping) for entry in parsed):
        return None

    return DiagnosticsBlock(
        diagnostics=[
            DiagnosticsEntry(
                file_path=entry.get("filePath") or "",
                line=entry.get("line") or 0,
                column=entry.get("column") or 0,
                message=entry.get("message") or "",
                code=entry.get("code") or "",
                severity=entry.get("severity") or "",
            )
            for entry in parsed
        ]
    )


def parse_slash_command_text(text: str) -> TextBlock | None:
    name_match = _COMMAND_NAME_RE.search(text)
    if not name_match:
        return None
    args_match = _COMMAND_ARGS_RE.search(text)
    command = name_match.group(1).strip()
    args = args_match.group(1).strip() if args_match else ""
    return TextBlock(text=f"{command} {args}".strip(), is_slash_command=True)


_TEXT_RULES: tuple[Callable[[str], Block | None], ...] = (
    parse_selection,
    parse_opened_file,
    parse_slash_command_result,
    parse_diagnostics,
    parse_slash_command_text,
)


def attach_tool_results(blocks: Iterable[Block]) -> list[Block]:
    """Fold tool results into the tool_use blocks they answer.

    A ``ToolResultBlock`` whose ``tool_use_id`` matches an earlier
    ``ToolUseBlock`` is attached to it and dropped from the sequence.
    Unmatched results stay where they are. Input blocks are not mutated.
    """
    out: list[Block] = []
    tool_uses: dict[str, int] = {}
    for block in blocks:
        if isinstance(block, ToolUseBlock):
            tool_uses[block.id] = len(out)
            out.append(replace(block))
            continue
        if isinstance(block, ToolResultBlock) and block.tool_use_id in tool_uses:
            index = tool_uses[block.tool_use_id]
            out[index] = replace(out[index], tool_result=block)
            continue
        out.append(block)
    return out


def _text_of(raw: Mapping[str, Any]) -> str:
    value = raw.get("text")
    if value is None:
        value = raw.get("value")
    return "" if value is None else str(value)


def _basename(path: str) -> str:
    return path.split("/")[-1] or path


def _dump(raw: Mapping[str, Any]) -> str:
    try:
        return json.dumps(raw, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(raw)
