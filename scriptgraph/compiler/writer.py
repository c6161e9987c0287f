"""
scriptgraph Compiler — Code Writer
===================================
An indented statement accumulator for the generated JavaScript.

A CodeWriter holds an ordered list of statements, each one of:

    Line   literal text at an indent level
    Slot   a named insertion point (auth / error / rateLimit / dedup)

Templates write Lines and drop Slots where a cross-cutting snippet may go.
The injector later fills slots by kind; filling replaces the Slot with Lines
at the slot's indent, so a filled slot can never be filled twice.  Unfilled
slots render to nothing, or to their marker comment when rendered with
markers=True (the text form the string-level injector understands).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Union

INDENT = "  "


def js_literal(value: Any) -> str:
    """Embed a config value as a JavaScript literal (JSON is a JS subset)."""
    return json.dumps(value, default=str)


def comment_text(text: Any) -> str:
    """Flatten text for use inside a /** */ or // comment."""
    return " ".join(str(text).split()).replace("*/", "* /")


class SlotKind(str, Enum):
    AUTH = "auth"
    ERROR = "error"
    RATE_LIMIT = "rateLimit"
    DEDUP = "dedup"

    @property
    def marker(self) -> str:
        return _MARKERS[self]


_MARKERS = {
    SlotKind.AUTH:       "// {{AUTH_CODE}}",
    SlotKind.ERROR:      "// {{ERROR_HANDLING}}",
    SlotKind.RATE_LIMIT: "// {{RATE_LIMITING}}",
    SlotKind.DEDUP:      "// {{DEDUPLICATION}}",
}


@dataclass(frozen=True)
class Line:
    text: str
    indent: int = 0


@dataclass(frozen=True)
class Slot:
    kind: SlotKind
    indent: int = 0


Statement = Union[Line, Slot]


class CodeWriter:
    """Indented statement accumulator with named injection slots."""

    def __init__(self, indent: int = 0):
        self._statements: List[Statement] = []
        self._indent = indent

    # ── Writing ───────────────────────────────────────────────────────────

    def writeln(self, line: str = "") -> "CodeWriter":
        self._statements.append(Line(line, self._indent if line else 0))
        return self

    def blank(self) -> "CodeWriter":
        return self.writeln()

    def comment(self, text: str) -> "CodeWriter":
        return self.writeln(f"// {text}")

    def push(self) -> "CodeWriter":
        self._indent += 1
        return self

    def pop(self) -> "CodeWriter":
        self._indent = max(0, self._indent - 1)
        return self

    def extend(self, lines: Iterable[str]) -> "CodeWriter":
        for line in lines:
            self.writeln(line)
        return self

    def block(self, text: str) -> "CodeWriter":
        """Write a multi-line snippet; its own leading spaces are kept on top of the current indent."""
        return self.extend(text.splitlines())

    def slot(self, kind: SlotKind) -> "CodeWriter":
        self._statements.append(Slot(kind, self._indent))
        return self

    def include(self, other: "CodeWriter") -> "CodeWriter":
        """Append another writer's statements, shifted to this writer's indent."""
        for stmt in other.statements():
            if isinstance(stmt, Slot):
                self._statements.append(Slot(stmt.kind, stmt.indent + self._indent))
            elif stmt.text:
                self._statements.append(Line(stmt.text, stmt.indent + self._indent))
            else:
                self._statements.append(stmt)
        return self

    # ── Slots ─────────────────────────────────────────────────────────────

    def has_slot(self, kind: SlotKind) -> bool:
        return any(isinstance(s, Slot) and s.kind == kind for s in self._statements)

    def slot_kinds(self) -> List[SlotKind]:
        return [s.kind for s in self._statements if isinstance(s, Slot)]

    def fill(self, kind: SlotKind, lines: Iterable[str]) -> bool:
        """Replace every slot of `kind` with `lines`.  Returns False when no such slot exists."""
        snippet = list(lines)
        filled = False
        out: List[Statement] = []
        for stmt in self._statements:
            if isinstance(stmt, Slot) and stmt.kind == kind:
                filled = True
                out.extend(Line(text, stmt.indent if text else 0) for text in snippet)
            else:
                out.append(stmt)
        self._statements = out
        return filled

    # ── Output ────────────────────────────────────────────────────────────

    def statements(self) -> List[Statement]:
        return list(self._statements)

    def lines(self, markers: bool = False) -> List[str]:
        out: List[str] = []
        for stmt in self._statements:
            if isinstance(stmt, Slot):
                if markers:
                    out.append(INDENT * stmt.indent + stmt.kind.marker)
                continue
            out.append(INDENT * stmt.indent + stmt.text if stmt.text else "")
        return out

    def render(self, markers: bool = False) -> str:
        return "\n".join(self.lines(markers=markers))


__all__ = [
    "CodeWriter",
    "INDENT",
    "Line",
    "Slot",
    "SlotKind",
    "Statement",
    "comment_text",
    "js_literal",
]
