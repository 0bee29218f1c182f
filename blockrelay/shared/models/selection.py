"""Editor selection model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass
class SelectionRange:
    """A captured editor selection. Lines are 1-based, columns 0-based."""

    file_path: str
    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0
    selected_text: str = ""
    auto_include: bool | None = None

    def signature(self) -> str:
        """Value hash used to tell two selections apart (ignores auto_include)."""
        return (
            f"{self.file_path}:{self.start_line}:{self.end_line}:"
            f"{self.start_column or 0}:{self.end_column or 0}:{self.selected_text}"
        )

    def copy(self, **changes: Any) -> SelectionRange:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "filePath": self.file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startColumn": self.start_column,
            "endColumn": self.end_column,
            "selectedText": self.selected_text,
        }
        if self.auto_include is not None:
            d["autoInclude"] = self.auto_include
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SelectionRange:
        auto_include = data.get("autoInclude")
        return cls(
            file_path=str(data.get("filePath") or ""),
            start_line=int(data.get("startLine") or 0),
            end_line=int(data.get("endLine") or 0),
            start_column=int(data.get("startColumn") or 0),
            end_column=int(data.get("endColumn") or 0),
            selected_text=str(data.get("selectedText") or ""),
            auto_include=bool(auto_include) if auto_include is not None else None,
        )
