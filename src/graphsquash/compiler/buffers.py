"""
Ordered code buffers used by the squash context.

The body is kept as a list of (depth, text) lines rather than a flat string,
so that declarations can be moved in front of a loop after the fact and
still come out with the right indentation.
"""

from __future__ import annotations

import textwrap
from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CodeLine:
    """
    One line of generated code.

    Attributes:
        depth: Loop nesting depth the line belongs to (0 = function body)
        text: Line content without leading indentation
    """

    depth: int
    text: str

    def render(self, indent_size: int) -> str:
        if not self.text:
            return ""
        return " " * (self.depth * indent_size) + self.text


# Snippets handed to the buffer are written with 4-space indentation.
SNIPPET_INDENT = 4


def split_lines(text: str, depth: int) -> list[CodeLine]:
    """Split a snippet into CodeLines, keeping its relative indentation."""
    text = textwrap.dedent(text).strip("\n")
    lines = []
    for raw in text.split("\n"):
        stripped = raw.lstrip(" ")
        extra = (len(raw) - len(stripped)) // SNIPPET_INDENT
        lines.append(CodeLine(depth + extra, stripped.rstrip()))
    return lines


class CodeBuffer:
    """Body statement stream with bookmark-based insertion."""

    def __init__(self) -> None:
        self._lines: list[CodeLine] = []

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CodeLine]:
        return iter(self._lines)

    def append(self, text: str, depth: int) -> None:
        """Append a (possibly multi-line) snippet at ``depth``."""
        self._lines.extend(split_lines(text, depth))

    def extend(self, lines: Iterable[CodeLine]) -> None:
        self._lines.extend(lines)

    def bookmark(self) -> int:
        """Current insertion point."""
        return len(self._lines)

    def insert(self, at: int, lines: list[CodeLine]) -> None:
        """Insert ``lines`` so that the first one lands at index ``at``."""
        if not 0 <= at <= len(self._lines):
            raise IndexError(f"bookmark {at} outside buffer of {len(self._lines)} lines")
        self._lines[at:at] = lines

    def lines_after(self, at: int) -> list[CodeLine]:
        return self._lines[at:]

    def render(self, indent_size: int = 4) -> str:
        if not self._lines:
            return ""
        return "\n".join(line.render(indent_size) for line in self._lines) + "\n"
