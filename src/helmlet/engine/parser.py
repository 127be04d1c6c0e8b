"""Template parser.

Turns lexer items into an immutable node tree. Structural problems
(unterminated blocks, stray ``end``/``else``, unknown functions, undefined
variables) are reported here, before any value is looked at.

Grammar (subset of Go text/template as used by Helm charts):

    {{ pipeline }}                       output
    {{ $x := pipeline }}                 declaration (no output)
    {{ $x = pipeline }}                  assignment (no output)
    {{ if pipeline }} T {{ else if pipeline }} T {{ else }} T {{ end }}
    {{ with pipeline }} T {{ else with pipeline }} T {{ else }} T {{ end }}
    {{ range $k, $v := pipeline }} T {{ else }} T {{ end }}
    {{ define "name" }} T {{ end }}
    {{ template "name" pipeline }}
    {{ block "name" pipeline }} T {{ end }}
    {{/* comment */}}

    pipeline := command ( "|" command )*
    command  := operand+
    operand  := .Field.Chain | $var.Chain | . | literal | function | ( pipeline )
"""

import logging
import re
from collections.abc import Collection
from dataclasses import dataclass, field
from typing import Any

from helmlet.engine.errors import MalformedDirectiveError
from helmlet.engine.lexer import ActionItem, Item, TextItem, Token, lex

logger = logging.getLogger(__name__)

KEYWORDS = frozenset({"if", "else", "end", "range", "with", "define", "template", "block"})

_INT_RE = re.compile(r"-?\d+")


# =============================================================================
# Operand Nodes
# =============================================================================


@dataclass(frozen=True)
class FieldNode:
    """Field chain evaluated against the current context (``.a.b``)."""

    names: tuple[str, ...]

    @property
    def path(self) -> str:
        return "." + ".".join(self.names)


@dataclass(frozen=True)
class VariableNode:
    """Variable reference with an optional field chain (``$v.a``)."""

    name: str
    names: tuple[str, ...] = ()

    @property
    def path(self) -> str:
        return ".".join((self.name, *self.names))


@dataclass(frozen=True)
class DotNode:
    """The current context (``.``)."""


@dataclass(frozen=True)
class LiteralNode:
    """String, number, boolean or nil constant."""

    value: Any


@dataclass(frozen=True)
class IdentifierNode:
    """Function name."""

    name: str


@dataclass(frozen=True)
class CommandNode:
    """One pipeline stage: a function call or a single value."""

    args: tuple["Operand", ...]


@dataclass(frozen=True)
class PipelineNode:
    """Commands joined by ``|``, optionally declaring or assigning variables.

    Attributes:
        decls: Variable names being declared or assigned
        is_assign: True for ``=``, False for ``:=``
        commands: Pipeline stages
        line: Source line
    """

    decls: tuple[str, ...]
    is_assign: bool
    commands: tuple[CommandNode, ...]
    line: int


Operand = FieldNode | VariableNode | DotNode | LiteralNode | IdentifierNode | PipelineNode


# =============================================================================
# Statement Nodes
# =============================================================================


@dataclass(frozen=True)
class TextNode:
    """Literal text copied to the output."""

    text: str


@dataclass(frozen=True)
class ActionNode:
    """Pipeline whose value is written to the output."""

    pipeline: PipelineNode
    line: int


@dataclass(frozen=True)
class BranchNode:
    """Common shape of if/with/range blocks."""

    pipeline: PipelineNode
    body: tuple["Node", ...]
    else_body: tuple["Node", ...] | None
    line: int


@dataclass(frozen=True)
class IfNode(BranchNode):
    """``{{ if }}`` block."""


@dataclass(frozen=True)
class WithNode(BranchNode):
    """``{{ with }}`` block; rebinds the context inside the body."""


@dataclass(frozen=True)
class RangeNode(BranchNode):
    """``{{ range }}`` block; emits the body once per element."""


@dataclass(frozen=True)
class TemplateNode:
    """``{{ template "name" pipeline }}`` invocation."""

    name: str
    pipeline: PipelineNode | None
    line: int


Node = TextNode | ActionNode | IfNode | WithNode | RangeNode | TemplateNode

_BRANCHES: dict[str, type[BranchNode]] = {
    "if": IfNode,
    "with": WithNode,
    "range": RangeNode,
}


@dataclass(frozen=True)
class ParsedTemplate:
    """Result of parsing one template source.

    Attributes:
        name: Template name (usually the file path inside the chart)
        nodes: Top-level nodes
        defines: Named templates declared with define/block
    """

    name: str
    nodes: tuple[Node, ...]
    defines: dict[str, tuple[Node, ...]] = field(default_factory=dict)


# =============================================================================
# Parser
# =============================================================================


class Parser:
    """Recursive-descent parser over lexer items.

    Usage:
        parsed = Parser("deployment.yaml", items, functions).parse()
    """

    def __init__(self, name: str, items: list[Item], functions: Collection[str]) -> None:
        """Initialize the parser.

        Args:
            name: Template name for error messages
            items: Lexer items with trim markers applied
            functions: Names of functions callable from the template
        """
        self.name = name
        self.items = [i for i in items if not (isinstance(i, ActionItem) and i.comment)]
        self.functions = frozenset(functions)
        self.defines: dict[str, tuple[Node, ...]] = {}
        self._pos = 0
        self._depth = 0
        self._vars: list[list[str]] = [["$"]]

    def parse(self) -> ParsedTemplate:
        nodes, _ = self._parse_list((), None)
        logger.debug("Parsed %s: %d nodes, %d defines", self.name, len(nodes), len(self.defines))
        return ParsedTemplate(self.name, tuple(nodes), dict(self.defines))

    def _error(self, message: str, item: ActionItem) -> MalformedDirectiveError:
        return MalformedDirectiveError(message, self.name, item.line)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _parse_list(
        self,
        stop_words: tuple[str, ...],
        opener: tuple[str, ActionItem] | None,
    ) -> tuple[list[Node], ActionItem | None]:
        """Parse nodes until one of ``stop_words`` (or end of input).

        Returns:
            Tuple of (nodes, the action that stopped the list)
        """
        nodes: list[Node] = []

        while self._pos < len(self.items):
            item = self.items[self._pos]
            self._pos += 1

            if isinstance(item, TextItem):
                nodes.append(TextNode(item.text))
                continue

            keyword = _keyword(item)

            if keyword in ("end", "else"):
                if keyword in stop_words:
                    return nodes, item
                raise self._error(f"unexpected {{{{{keyword}}}}}", item)

            if keyword in _BRANCHES:
                nodes.append(self._parse_branch(keyword, item, item.tokens[1:]))
            elif keyword == "define":
                self._parse_define(item)
            elif keyword == "template":
                nodes.append(self._parse_template(item))
            elif keyword == "block":
                nodes.append(self._parse_block(item))
            else:
                if not item.tokens:
                    raise self._error("missing value for command", item)
                pipeline = self._parse_pipeline(item.tokens, item, allow_decl=True)
                nodes.append(ActionNode(pipeline, item.line))

        if opener is not None:
            kind, opened_at = opener
            raise MalformedDirectiveError(
                f"unterminated {{{{{kind}}}}} block (no matching {{{{end}}}})",
                self.name,
                opened_at.line,
            )
        return nodes, None

    def _parse_branch(
        self,
        keyword: str,
        item: ActionItem,
        tokens: tuple[Token, ...],
    ) -> BranchNode:
        if not tokens:
            raise self._error(f"missing value for {keyword}", item)

        self._depth += 1
        self._vars.append([])
        try:
            pipeline = self._parse_pipeline(
                tokens, item, allow_decl=True, max_decls=2 if keyword == "range" else 1
            )
            body, stop = self._parse_list(("else", "end"), (keyword, item))

            else_body: tuple[Node, ...] | None = None
            if stop is not None and _keyword(stop) == "else":
                rest = stop.tokens[1:]
                if rest:
                    chained = rest[0].value if rest[0].kind == "ident" else ""
                    if chained not in ("if", "with"):
                        raise self._error("expected if or with after else", stop)
                    # The chained branch consumes the closing end
                    else_body = (self._parse_branch(chained, stop, rest[1:]),)
                else:
                    nodes, _ = self._parse_list(("end",), (keyword, item))
                    else_body = tuple(nodes)
        finally:
            self._vars.pop()
            self._depth -= 1

        return _BRANCHES[keyword](pipeline, tuple(body), else_body, item.line)

    def _template_name(self, item: ActionItem, keyword: str) -> str:
        tokens = item.tokens
        if len(tokens) < 2 or tokens[1].kind != "string":
            raise self._error(f"{keyword} requires a quoted template name", item)
        return tokens[1].value

    def _parse_named_body(self, item: ActionItem, keyword: str) -> tuple[Node, ...]:
        saved_vars = self._vars
        self._vars = [["$"]]
        try:
            body, _ = self._parse_list(("end",), (keyword, item))
        finally:
            self._vars = saved_vars
        return tuple(body)

    def _parse_define(self, item: ActionItem) -> None:
        if self._depth:
            raise self._error("define is only allowed at the top level", item)
        name = self._template_name(item, "define")
        if len(item.tokens) != 2:
            raise self._error("unexpected arguments after define name", item)
        self.defines[name] = self._parse_named_body(item, "define")

    def _parse_template(self, item: ActionItem) -> TemplateNode:
        name = self._template_name(item, "template")
        pipeline = None
        if len(item.tokens) > 2:
            pipeline = self._parse_pipeline(item.tokens[2:], item, allow_decl=False)
        return TemplateNode(name, pipeline, item.line)

    def _parse_block(self, item: ActionItem) -> TemplateNode:
        node = self._parse_template(item)
        if node.name not in self.defines:
            self.defines[node.name] = self._parse_named_body(item, "block")
        else:
            self._parse_named_body(item, "block")
        return node

    # -------------------------------------------------------------------------
    # Pipelines
    # -------------------------------------------------------------------------

    def _parse_pipeline(
        self,
        tokens: tuple[Token, ...],
        item: ActionItem,
        allow_decl: bool,
        max_decls: int = 1,
    ) -> PipelineNode:
        names: list[str] = []
        pos = 0
        while pos < len(tokens) and tokens[pos].kind == "variable":
            names.append(tokens[pos].value)
            pos += 1
            if pos < len(tokens) and tokens[pos].kind == "comma":
                pos += 1
                continue
            break

        decls: tuple[str, ...] = ()
        is_assign = False
        if names and pos < len(tokens) and tokens[pos].kind in ("declare", "assign"):
            is_assign = tokens[pos].kind == "assign"
            if not allow_decl:
                raise self._error("variable declaration not allowed here", item)
            if len(names) > max_decls:
                raise self._error("too many variables in declaration", item)
            for name in names:
                if name == "$" or "." in name:
                    raise self._error(f"illegal variable in declaration: {name}", item)
                if is_assign:
                    self._check_variable(name, item)
            decls = tuple(names)
            pos += 1
        else:
            pos = 0

        commands, end = self._parse_commands(tokens, pos, item, in_paren=False)
        if end != len(tokens):
            raise self._error("unexpected tokens after pipeline", item)

        if decls and not is_assign:
            self._vars[-1].extend(decls)
        return PipelineNode(decls, is_assign, tuple(commands), item.line)

    def _parse_commands(
        self,
        tokens: tuple[Token, ...],
        pos: int,
        item: ActionItem,
        in_paren: bool,
    ) -> tuple[list[CommandNode], int]:
        commands: list[CommandNode] = []
        operands: list[Operand] = []

        while pos < len(tokens):
            token = tokens[pos]
            if token.kind == "rparen":
                if not in_paren:
                    raise self._error("unexpected )", item)
                break
            if token.kind == "pipe":
                commands.append(self._command(operands, item, stage=len(commands)))
                operands = []
                pos += 1
                continue
            if token.kind == "lparen":
                inner, pos = self._parse_commands(tokens, pos + 1, item, in_paren=True)
                if pos >= len(tokens) or tokens[pos].kind != "rparen":
                    raise self._error("unclosed (", item)
                operands.append(PipelineNode((), False, tuple(inner), item.line))
                pos += 1
                continue
            operands.append(self._operand(token, item))
            pos += 1

        commands.append(self._command(operands, item, stage=len(commands)))
        return commands, pos

    def _command(self, operands: list[Operand], item: ActionItem, stage: int) -> CommandNode:
        if not operands:
            raise self._error("missing command in pipeline", item)
        head = operands[0]
        if not isinstance(head, IdentifierNode):
            if len(operands) > 1:
                raise self._error("can't give argument to non-function", item)
            if stage > 0:
                raise self._error("non-function in pipeline stage", item)
        return CommandNode(tuple(operands))

    def _operand(self, token: Token, item: ActionItem) -> Operand:
        kind, value = token.kind, token.value

        if kind == "string":
            return LiteralNode(value)
        if kind == "number":
            return LiteralNode(int(value) if _INT_RE.fullmatch(value) else float(value))
        if kind == "field":
            return FieldNode(tuple(value.split(".")[1:]))
        if kind == "dot":
            return DotNode()
        if kind == "variable":
            name, *names = value.split(".")
            self._check_variable(name, item)
            return VariableNode(name, tuple(names))
        if kind == "ident":
            if value == "true":
                return LiteralNode(True)
            if value == "false":
                return LiteralNode(False)
            if value == "nil":
                return LiteralNode(None)
            if value in KEYWORDS:
                raise self._error(f"unexpected keyword {value} in pipeline", item)
            if value not in self.functions:
                raise self._error(f'function "{value}" not defined', item)
            return IdentifierNode(value)

        raise self._error(f"unexpected {value!r} in pipeline", item)

    def _check_variable(self, name: str, item: ActionItem) -> None:
        if not any(name in frame for frame in self._vars):
            raise self._error(f"undefined variable: {name}", item)


def _keyword(item: ActionItem) -> str | None:
    if item.tokens and item.tokens[0].kind == "ident" and item.tokens[0].value in KEYWORDS:
        return item.tokens[0].value
    return None


def parse(text: str, name: str, functions: Collection[str]) -> ParsedTemplate:
    """Lex and parse template text.

    Args:
        text: Template source
        name: Template name for error messages
        functions: Names of callable functions

    Returns:
        ParsedTemplate

    Raises:
        MalformedDirectiveError: On any structural problem
    """
    return Parser(name, lex(text, name), functions).parse()
