"""Tests for content fragment classification."""
from __future__ import annotations

import json

import pytest

from blockrelay.shared.content_parser import (
    TOOL_REJECTION_MARKER,
    TOOL_REJECTION_PREFIX,
    attach_tool_results,
    parse_message_content,
)
from blockrelay.shared.models.blocks import (
    BLOCK_TYPES,
    DiagnosticsBlock,
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
    block_to_dict,
)


def _text(value: str) -> dict:
    return {"type": "text", "text": value}


def test_empty_and_none_input() -> None:
    assert parse_message_content([]) == []
    assert parse_message_content(None) == []


@pytest.mark.parametrize(
    "text",
    [
        "hello world",
        "",
        "from the start: nothing special here",
        "multi\nline\ntext with <b>html</b>",
    ],
)
def test_plain_text_is_returned_unchanged(text: str) -> None:
    blocks = parse_message_content([_text(text)])
    assert blocks == [TextBlock(text=text)]


def test_text_falls_back_to_value_key() -> None:
    blocks = parse_message_content([{"type": "text", "value": "legacy"}])
    assert blocks == [TextBlock(text="legacy")]


def test_unknown_tag_becomes_structural_dump() -> None:
    raw = {"type": "server_tool_use", "id": "x1", "nested": {"a": [1, 2]}}
    blocks = parse_message_content([raw])
    assert len(blocks) == 1
    assert isinstance(blocks[0], TextBlock)
    assert json.loads(blocks[0].text) == raw


@pytest.mark.parametrize("raw,expected", [(None, ""), (42, "42"), ("bare", "bare"), (True, "true"), (False, "false")])
def test_non_object_fragment_becomes_text(raw, expected) -> None:
    assert parse_message_content([raw]) == [TextBlock(text=expected)]


def test_passthrough_variants() -> None:
    source = {"type": "base64", "media_type": "image/png", "data": "AAAA"}
    blocks = parse_message_content([
        {"type": "thinking", "thinking": "hmm"},
        {"type": "image", "source": source},
        {"type": "document", "title": "report.pdf", "source": source},
        {"type": "tool_use", "id": "tu_1", "name": "Read", "input": {"file_path": "a.py"}},
        {"type": "tool_result", "tool_use_id": "tu_1", "content": "ok", "is_error": False},
    ])
    assert blocks == [
        ThinkingBlock(thinking="hmm"),
        ImageBlock(source=source),
        DocumentBlock(title="report.pdf", source=source),
        ToolUseBlock(id="tu_1", name="Read", input={"file_path": "a.py"}),
        ToolResultBlock(tool_use_id="tu_1", content="ok", is_error=False),
    ]
    assert blocks[3].tool_result is None


def test_redacted_thinking_is_silent() -> None:
    blocks = parse_message_content([
        {"type": "redacted_thinking", "data": "xyz"},
        _text("after"),
    ])
    assert blocks == [TextBlock(text="after")]


def test_order_is_preserved() -> None:
    blocks = parse_message_content([
        _text("one"),
        {"type": "thinking", "thinking": "two"},
        _text("three"),
    ])
    assert [b.type for b in blocks] == ["text", "thinking", "text"]
    assert blocks[0].text == "one"
    assert blocks[2].text == "three"


@pytest.mark.parametrize(
    "marker,friendly",
    [
        ("[Request interrupted by user]", "Interrupted"),
        ("[Request interrupted by user for tool use]", "Tool interrupted"),
    ],
)
def test_interrupt_markers(marker: str, friendly: str) -> None:
    blocks = parse_message_content([_text(marker)])
    assert blocks == [InterruptBlock(message=marker, friendly_message=friendly)]


def test_interrupt_marker_must_match_exactly() -> None:
    text = "[Request interrupted by user] and more"
    assert parse_message_content([_text(text)]) == [TextBlock(text=text)]


def test_selection_with_line_range() -> None:
    text = (
        "<ide_selection>The user selected text from src/a.ts: lines 3 to 7\n"
        "foo\nbar\n   This may or may not be related to the current task."
        "</ide_selection>"
    )
    blocks = parse_message_content([_text(text)])
    assert blocks == [
        SelectionBlock(
            file_path="src/a.ts",
            label="a.ts#3-7",
            start_line=3,
            end_line=7,
            selected_text="foo\nbar",
        )
    ]


def test_selection_in_agent_wording() -> None:
    text = (
        "<ide_selection>The user selected the lines 10 to 12 from /repo/pkg/mod.py:\n"
        "def f():\n    return 1\n\n"
        "This may or may not be related to the current task.</ide_selection>"
    )
    (block,) = parse_message_content([_text(text)])
    assert isinstance(block, SelectionBlock)
    assert block.file_path == "/repo/pkg/mod.py"
    assert block.label == "mod.py#10-12"
    assert block.selected_text == "def f():\n    return 1"


def test_selection_single_line_label() -> None:
    text = "<ide_selection>The user selected line 4 from lib/x.py:\nprint(1)\nThis may or may not be related</ide_selection>"
    (block,) = parse_message_content([_text(text)])
    assert isinstance(block, SelectionBlock)
    assert block.start_line == 4
    assert block.end_line is None
    assert block.label == "x.py#4"


def test_selection_without_line_info_uses_basename() -> None:
    text = "<ide_selection>Selected from docs/readme.md: some words</ide_selection>"
    (block,) = parse_message_content([_text(text)])
    assert isinstance(block, SelectionBlock)
    assert block.label == "readme.md"
    assert block.start_line is None
    assert block.selected_text is None


def test_selection_without_path_falls_through() -> None:
    text = "<ide_selection>nothing useful here</ide_selection>"
    assert parse_message_content([_text(text)]) == [TextBlock(text=text)]


@pytest.mark.parametrize(
    "text",
    [
        "<ide_opened_file>The user opened the file /w/src/main.py in the IDE.</ide_opened_file>",
        "<ide_opened_file>User opened file /w/src/main.py in editor</ide_opened_file>",
    ],
)
def test_opened_file(text: str) -> None:
    blocks = parse_message_content([_text(text)])
    assert blocks == [OpenedFileBlock(file_path="/w/src/main.py", label="main.py")]


def test_opened_file_without_pattern_falls_through() -> None:
    text = "<ide_opened_file>garbled</ide_opened_file>"
    assert parse_message_content([_text(text)]) == [TextBlock(text=text)]


def test_slash_command_stderr() -> None:
    blocks = parse_message_content([_text("<local-command-stderr>boom</local-command-stderr>")])
    assert blocks == [SlashCommandResultBlock(result="boom", is_error=True)]


def test_slash_command_stdout_is_trimmed() -> None:
    text = "<local-command-stdout>\n  compacted  \n</local-command-stdout>"
    blocks = parse_message_content([_text(text)])
    assert blocks == [SlashCommandResultBlock(result="compacted", is_error=False)]


def test_stderr_wins_over_stdout() -> None:
    text = (
        "<local-command-stdout>fine</local-command-stdout>"
        "<local-command-stderr>bad</local-command-stderr>"
    )
    (block,) = parse_message_content([_text(text)])
    assert block == SlashCommandResultBlock(result="bad", is_error=True)


def test_diagnostics_block() -> None:
    payload = [
        {"filePath": "a.py", "line": 3, "column": 5, "message": "undefined name", "code": "F821", "severity": "Error"},
        {"filePath": "b.py", "message": "unused"},
    ]
    text = (
        "<post-tool-use-hook><ide_diagnostics>"
        + json.dumps(payload)
        + "</ide_diagnostics></post-tool-use-hook>"
    )
    (block,) = parse_message_content([_text(text)])
    assert isinstance(block, DiagnosticsBlock)
    assert len(block.diagnostics) == 2
    first, second = block.diagnostics
    assert (first.file_path, first.line, first.column, first.code) == ("a.py", 3, 5, "F821")
    assert (second.line, second.column, second.code, second.severity) == (0, 0, "", "")
    assert block_to_dict(block)["diagnostics"][0]["filePath"] == "a.py"


@pytest.mark.parametrize(
    "body",
    [
        "not json at all",
        '{"filePath": "a.py"}',
        "[1, 2, 3]",
    ],
)
def test_malformed_diagnostics_fall_through_to_text(body: str) -> None:
    text = f"<post-tool-use-hook><ide_diagnostics>{body}</ide_diagnostics></post-tool-use-hook>"
    assert parse_message_content([_text(text)]) == [TextBlock(text=text)]


def test_hook_without_diagnostics_tag_falls_through() -> None:
    text = "<post-tool-use-hook>nothing</post-tool-use-hook>"
    assert parse_message_content([_text(text)]) == [TextBlock(text=text)]


def test_slash_command_echo() -> None:
    text = (
        "<command-message>review is running</command-message>\n"
        "<command-name>/review</command-name>\n"
        "<command-args>  src/  </command-args>"
    )
    assert parse_message_content([_text(text)]) == [
        TextBlock(text="/review src/", is_slash_command=True)
    ]


def test_slash_command_echo_without_args() -> None:
    text = "<command-name> /clear </command-name>"
    (block,) = parse_message_content([_text(text)])
    assert block.text == "/clear"
    assert block.is_slash_command is True


def test_tool_rejection_markers_are_silent() -> None:
    blocks = parse_message_content([
        _text(TOOL_REJECTION_MARKER),
        _text(TOOL_REJECTION_PREFIX + "wrong file"),
    ])
    assert blocks == []


def test_wire_names() -> None:
    blocks = parse_message_content([
        _text("[Request interrupted by user]"),
        _text("<command-name>/help</command-name>"),
    ])
    assert block_to_dict(blocks[0]) == {
        "type": "interrupt",
        "message": "[Request interrupted by user]",
        "friendlyMessage": "Interrupted",
    }
    assert block_to_dict(blocks[1]) == {
        "type": "text",
        "text": "/help",
        "isSlashCommand": True,
    }


def test_attach_tool_results_pairs_by_id() -> None:
    blocks = parse_message_content([
        {"type": "tool_use", "id": "a", "name": "Bash", "input": {"command": "ls"}},
        _text("between"),
        {"type": "tool_result", "tool_use_id": "a", "content": "file.txt"},
        {"type": "tool_result", "tool_use_id": "orphan", "content": "?"},
    ])
    paired = attach_tool_results(blocks)

    assert [b.type for b in paired] == ["tool_use", "text", "tool_result"]
    assert paired[0].tool_result == ToolResultBlock(tool_use_id="a", content="file.txt")
    assert paired[2].tool_use_id == "orphan"
    # Original blocks untouched
    assert blocks[0].tool_result is None
    assert block_to_dict(paired[0])["toolResult"]["content"] == "file.txt"


def test_block_type_tags_match_registry() -> None:
    for tag, cls in BLOCK_TYPES.items():
        assert cls().type == tag
