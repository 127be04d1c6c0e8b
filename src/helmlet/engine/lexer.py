"""Template lexer.

Splits template text into text runs and actions (``{{ ... }}``). Action
bodies are tokenized here so the parser only deals with tokens.

Trim markers (``{{-`` and ``-}}``) are recorded on each action and applied
afterwards by apply_trim_markers(), a normalization pass over the text runs.
Keeping that pass separate means the evaluator never special-cases
whitespace.
"""

import ast
import re
from dataclasses import dataclass, replace

from helmlet.engine.errors import MalformedDirectiveError

LEFT_DELIM = "{{"
RIGHT_DELIM = "}}"

# Whitespace removed by trim markers
TRIM_CHARS = " \t\r\n"

_TOKEN_RE = re.compile(
    r"""
      (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<raw>`[^`]*`)
    | (?P<declare>:=)
    | (?P<assign>=)
    | (?P<pipe>\|)
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<comma>,)
    | (?P<variable>\$[A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    | (?P<field>(?:\.[A-Za-z_][A-Za-z0-9_]*)+)
    | (?P<dot>\.)
    | (?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
    | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_SPACE_RE = re.compile(r"[ \t\r\n]+")


@dataclass(frozen=True)
class Token:
    """Single token inside an action.

    Attributes:
        kind: Token kind (string, number, ident, field, variable, dot,
            declare, assign, pipe, lparen, rparen, comma)
        value: Decoded token value (string literals are unquoted)
    """

    kind: str
    value: str


@dataclass(frozen=True)
class TextItem:
    """Literal text between actions."""

    text: str
    line: int


@dataclass(frozen=True)
class ActionItem:
    """A ``{{ ... }}`` action.

    Attributes:
        tokens: Tokens of the action body
        line: Line on which the action starts
        trim_left: Action opened with ``{{-``
        trim_right: Action closed with ``-}}``
        comment: Action is a ``/* ... */`` comment
    """

    tokens: tuple[Token, ...]
    line: int
    trim_left: bool = False
    trim_right: bool = False
    comment: bool = False


Item = TextItem | ActionItem


def tokenize(text: str, name: str = "template") -> list[Item]:
    """Split template text into text runs and actions.

    Args:
        text: Template source
        name: Template name used in error messages

    Returns:
        Items in source order, trim markers not yet applied

    Raises:
        MalformedDirectiveError: On unclosed actions or comments, or an
            unexpected character inside an action
    """
    items: list[Item] = []
    pos = 0
    line = 1

    while pos < len(text):
        start = text.find(LEFT_DELIM, pos)
        if start < 0:
            items.append(TextItem(text[pos:], line))
            break

        if start > pos:
            items.append(TextItem(text[pos:start], line))
        line += text.count("\n", pos, start)

        action, pos = _lex_action(text, start, line, name)
        items.append(action)
        line += text.count("\n", start, pos)

    return items


def lex(text: str, name: str = "template") -> list[Item]:
    """Tokenize template text and apply trim markers."""
    return apply_trim_markers(tokenize(text, name))


def apply_trim_markers(items: list[Item]) -> list[Item]:
    """Remove whitespace next to actions carrying trim markers.

    ``{{-`` strips all trailing whitespace (newlines included) of the text
    run before the action; ``-}}`` strips all leading whitespace of the text
    run after it. Text runs left empty are dropped.

    Args:
        items: Items produced by tokenize()

    Returns:
        New item list; the input is not modified
    """
    result = list(items)

    for i, item in enumerate(result):
        if not isinstance(item, ActionItem):
            continue

        if item.trim_left and i > 0:
            before = result[i - 1]
            if isinstance(before, TextItem):
                result[i - 1] = replace(before, text=before.text.rstrip(TRIM_CHARS))

        if item.trim_right and i + 1 < len(result):
            after = result[i + 1]
            if isinstance(after, TextItem):
                stripped = after.text.lstrip(TRIM_CHARS)
                removed = after.text[: len(after.text) - len(stripped)]
                result[i + 1] = TextItem(stripped, after.line + removed.count("\n"))

    return [item for item in result if not (isinstance(item, TextItem) and not item.text)]


def _lex_action(text: str, start: int, line: int, name: str) -> tuple[ActionItem, int]:
    """Lex one action starting at ``start`` (the position of ``{{``).

    Returns:
        Tuple of (action item, position just after the closing delimiter)
    """
    pos = start + len(LEFT_DELIM)

    trim_left = text.startswith("-", pos) and pos + 1 < len(text) and text[pos + 1] in TRIM_CHARS
    if trim_left:
        pos += 1

    # Comments may contain anything, including delimiters
    body_start = _skip_space(text, pos)
    if text.startswith("/*", body_start):
        close = text.find("*/", body_start + 2)
        if close < 0:
            raise MalformedDirectiveError("unclosed comment", name, line)
        trim_right, end = _expect_close(text, close + 2, name, line)
        return ActionItem((), line, trim_left, trim_right, comment=True), end

    if text.find(RIGHT_DELIM, pos) < 0:
        raise MalformedDirectiveError("unclosed action", name, line)

    tokens: list[Token] = []
    while True:
        if pos >= len(text):
            raise MalformedDirectiveError("unclosed action", name, line)

        if text.startswith(RIGHT_DELIM, pos):
            return ActionItem(tuple(tokens), line, trim_left, False), pos + len(RIGHT_DELIM)

        space = _SPACE_RE.match(text, pos)
        if space:
            pos = space.end()
            if text.startswith("-" + RIGHT_DELIM, pos):
                return ActionItem(tuple(tokens), line, trim_left, True), pos + 1 + len(RIGHT_DELIM)
            continue

        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise MalformedDirectiveError(
                f"unexpected character {text[pos]!r} in action", name, line
            )

        kind = match.lastgroup or ""
        value = _decode(kind, match.group(), name, line)
        tokens.append(Token("string" if kind == "raw" else kind, value))
        pos = match.end()


def _expect_close(text: str, pos: int, name: str, line: int) -> tuple[bool, int]:
    """Consume optional whitespace, an optional trim marker and ``}}``."""
    after_space = _skip_space(text, pos)
    if after_space > pos and text.startswith("-" + RIGHT_DELIM, after_space):
        return True, after_space + 1 + len(RIGHT_DELIM)
    if text.startswith(RIGHT_DELIM, after_space):
        return False, after_space + len(RIGHT_DELIM)
    raise MalformedDirectiveError("comment ends before closing delimiter", name, line)


def _skip_space(text: str, pos: int) -> int:
    match = _SPACE_RE.match(text, pos)
    return match.end() if match else pos


def _decode(kind: str, raw: str, name: str, line: int) -> str:
    if kind == "raw":
        return raw[1:-1]
    if kind == "string":
        try:
            return ast.literal_eval(raw)
        except (SyntaxError, ValueError) as e:
            raise MalformedDirectiveError(f"invalid string literal {raw}", name, line) from e
    return raw
