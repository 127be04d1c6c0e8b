"""Rendered documents.

A RenderedDocument is the output of one render call: an ordered sequence of
lines, each tagged with the indentation it occupies. It is created once and
never mutated.
"""

from dataclasses import dataclass
from typing import Any

import yaml


@dataclass(frozen=True)
class RenderedLine:
    """Single output line.

    Attributes:
        indent: Number of leading spaces
        text: Line content after the leading spaces
    """

    indent: int
    text: str

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    def __str__(self) -> str:
        return " " * self.indent + self.text


@dataclass(frozen=True)
class RenderedDocument:
    """Output of rendering one template.

    Attributes:
        source: Name of the template that produced the document
        lines: Output lines in order
    """

    source: str
    lines: tuple[RenderedLine, ...]

    @classmethod
    def from_text(cls, text: str, source: str = "template") -> "RenderedDocument":
        """Split rendered text into indentation-tagged lines."""
        lines = []
        for raw in text.split("\n"):
            content = raw.lstrip(" ")
            lines.append(RenderedLine(len(raw) - len(content), content))
        return cls(source, tuple(lines))

    @property
    def text(self) -> str:
        """The rendered text, byte-identical to the evaluator output."""
        return "\n".join(str(line) for line in self.lines)

    @property
    def is_empty(self) -> bool:
        """True if the document holds only whitespace."""
        return all(line.is_blank for line in self.lines)

    def content_lines(self) -> list[RenderedLine]:
        """Lines that are not blank."""
        return [line for line in self.lines if not line.is_blank]

    def load(self) -> Any:
        """Parse the document as a single YAML document."""
        return yaml.safe_load(self.text)

    def load_all(self) -> list[Any]:
        """Parse the document as a YAML stream, dropping empty documents."""
        return [doc for doc in yaml.safe_load_all(self.text) if doc is not None]

    def __str__(self) -> str:
        return self.text
