"""Template evaluator.

Walks a parsed node tree and writes output to a buffer. The context ("dot"
and variables) is carried by an explicit Scope chain passed into every
recursive call; ``with`` and ``range`` push a frame with a new dot, ``if``
pushes a frame with the same dot.

A render either returns the complete text or raises a TemplateError. The
output buffer is local to the call and never exposed on failure.
"""

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from helmlet.engine.errors import MalformedDirectiveError, TemplateError, UnresolvedReferenceError
from helmlet.engine.functions import FUNCTIONS, MISSING_TOLERANT, format_value, is_true
from helmlet.engine.parser import (
    ActionNode,
    CommandNode,
    DotNode,
    FieldNode,
    IdentifierNode,
    IfNode,
    LiteralNode,
    Node,
    Operand,
    PipelineNode,
    RangeNode,
    TemplateNode,
    TextNode,
    VariableNode,
    WithNode,
)
from helmlet.values import Missing, is_missing, ordered_items

if TYPE_CHECKING:
    from helmlet.engine.template_set import TemplateSet

logger = logging.getLogger(__name__)

# Nested include/template calls allowed before giving up
MAX_INCLUDE_DEPTH = 50

_UNSET = object()


class Scope:
    """One frame of the context stack.

    Attributes:
        dot: Current context value (``.``)
        parent: Enclosing frame, or None for the root
    """

    __slots__ = ("dot", "parent", "_variables")

    def __init__(self, dot: Any, parent: "Scope | None" = None) -> None:
        self.dot = dot
        self.parent = parent
        self._variables: dict[str, Any] = {}

    @classmethod
    def root(cls, data: Any) -> "Scope":
        """Create the frame a template starts in; ``$`` is bound to data."""
        scope = cls(data)
        scope.declare("$", data)
        return scope

    def child(self, dot: Any = _UNSET) -> "Scope":
        return Scope(self.dot if dot is _UNSET else dot, self)

    def declare(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def lookup(self, name: str) -> Any:
        scope: Scope | None = self
        while scope is not None:
            if name in scope._variables:
                return scope._variables[name]
            scope = scope.parent
        raise MalformedDirectiveError(f"undefined variable: {name}")

    def assign(self, name: str, value: Any) -> None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope._variables:
                scope._variables[name] = value
                return
            scope = scope.parent
        raise MalformedDirectiveError(f"undefined variable: {name}")


def resolve_fields(receiver: Any, names: tuple[str, ...], path: str) -> Any:
    """Follow a field chain through nested mappings.

    Any absent step (including a missing ancestor) yields Missing(path).
    """
    value = receiver
    for name in names:
        if not isinstance(value, Mapping) or name not in value:
            return Missing(path)
        value = value[name]
    return value


_SIGNATURES = {name: inspect.signature(function) for name, function in FUNCTIONS.items()}


class Evaluator:
    """Executes templates from a TemplateSet.

    One evaluator serves one render call.
    """

    def __init__(self, templates: "TemplateSet") -> None:
        self._templates = templates
        self._depth = 0
        self._tpl_count = 0
        self._functions: dict[str, Callable[..., Any]] = {
            **FUNCTIONS,
            "include": self._include,
            "tpl": self._tpl,
        }

    def execute(self, name: str, data: Any) -> str:
        """Render the template ``name`` with ``data`` as dot and ``$``.

        Raises:
            UnresolvedReferenceError: If a value or template is not found
            MalformedDirectiveError: On structural errors at render time
        """
        source, nodes = self._templates.lookup(name)
        out: list[str] = []
        try:
            self._walk(source, nodes, Scope.root(data), out)
        except RecursionError as e:
            raise MalformedDirectiveError("template nesting too deep", source) from e
        return "".join(out)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _walk(self, template: str, nodes: tuple[Node, ...], scope: Scope, out: list[str]) -> None:
        for node in nodes:
            if isinstance(node, TextNode):
                out.append(node.text)
                continue
            try:
                self._execute_node(template, node, scope, out)
            except TemplateError as e:
                raise e.locate(template, node.line)

    def _execute_node(self, template: str, node: Node, scope: Scope, out: list[str]) -> None:
        if isinstance(node, ActionNode):
            value = self._pipeline(template, node.pipeline, scope)
            if not node.pipeline.decls:
                out.append(self._print(value))
        elif isinstance(node, IfNode):
            self._if(template, node, scope, out)
        elif isinstance(node, WithNode):
            self._with(template, node, scope, out)
        elif isinstance(node, RangeNode):
            self._range(template, node, scope, out)
        elif isinstance(node, TemplateNode):
            data = self._pipeline(template, node.pipeline, scope) if node.pipeline else None
            out.append(self._execute_nested(node.name, data))
        else:
            raise MalformedDirectiveError(f"unknown node {type(node).__name__}")

    def _print(self, value: Any) -> str:
        if is_missing(value):
            raise UnresolvedReferenceError(value.path)
        return format_value(value)

    def _if(self, template: str, node: IfNode, scope: Scope, out: list[str]) -> None:
        frame = scope.child()
        if is_true(self._pipeline(template, node.pipeline, frame)):
            self._walk(template, node.body, frame, out)
        elif node.else_body is not None:
            self._walk(template, node.else_body, frame, out)

    def _with(self, template: str, node: WithNode, scope: Scope, out: list[str]) -> None:
        frame = scope.child()
        value = self._pipeline(template, node.pipeline, frame)
        if is_true(value):
            self._walk(template, node.body, frame.child(value), out)
        elif node.else_body is not None:
            self._walk(template, node.else_body, frame, out)

    def _range(self, template: str, node: RangeNode, scope: Scope, out: list[str]) -> None:
        frame = scope.child()
        value = self._pipeline(template, node.pipeline, frame, bind=False)
        entries = _range_entries(value)

        if not entries:
            if node.else_body is not None:
                self._walk(template, node.else_body, frame, out)
            return

        decls = node.pipeline.decls
        for key, element in entries:
            iteration = frame.child(element)
            bindings = (element,) if len(decls) == 1 else (key, element)
            for name, bound in zip(decls, bindings):
                if node.pipeline.is_assign:
                    iteration.assign(name, bound)
                else:
                    iteration.declare(name, bound)
            self._walk(template, node.body, iteration, out)

    # -------------------------------------------------------------------------
    # Pipelines
    # -------------------------------------------------------------------------

    def _pipeline(
        self,
        template: str,
        pipeline: PipelineNode,
        scope: Scope,
        bind: bool = True,
    ) -> Any:
        value: Any = _UNSET
        for command in pipeline.commands:
            value = self._command(template, command, scope, value)

        if bind:
            for name in pipeline.decls:
                if pipeline.is_assign:
                    scope.assign(name, value)
                else:
                    scope.declare(name, value)
        return value

    def _command(self, template: str, command: CommandNode, scope: Scope, piped: Any) -> Any:
        head = command.args[0]
        if isinstance(head, IdentifierNode):
            args = [self._operand(template, arg, scope) for arg in command.args[1:]]
            if piped is not _UNSET:
                args.append(piped)
            return self._call(head.name, args)
        return self._operand(template, head, scope)

    def _operand(self, template: str, operand: Operand, scope: Scope) -> Any:
        if isinstance(operand, FieldNode):
            return resolve_fields(scope.dot, operand.names, operand.path)
        if isinstance(operand, VariableNode):
            base = scope.lookup(operand.name)
            if not operand.names:
                return base
            return resolve_fields(base, operand.names, operand.path)
        if isinstance(operand, DotNode):
            return scope.dot
        if isinstance(operand, LiteralNode):
            return operand.value
        if isinstance(operand, PipelineNode):
            return self._pipeline(template, operand, scope)
        if isinstance(operand, IdentifierNode):
            return self._call(operand.name, [])
        raise MalformedDirectiveError(f"unknown operand {type(operand).__name__}")

    def _call(self, name: str, args: list[Any]) -> Any:
        function = self._functions[name]

        if name not in MISSING_TOLERANT:
            for arg in args:
                if is_missing(arg):
                    raise UnresolvedReferenceError(arg.path)

        try:
            signature = _SIGNATURES.get(name) or inspect.signature(function)
            signature.bind(*args)
        except TypeError as e:
            raise MalformedDirectiveError(f"wrong number of args for {name}: {e}") from e

        try:
            return function(*args)
        except TemplateError:
            raise
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            raise MalformedDirectiveError(f"error calling {name}: {e}") from e

    # -------------------------------------------------------------------------
    # Named templates
    # -------------------------------------------------------------------------

    def _execute_nested(self, name: str, data: Any) -> str:
        if self._depth >= MAX_INCLUDE_DEPTH:
            raise MalformedDirectiveError(
                f'template "{name}" exceeded max include depth ({MAX_INCLUDE_DEPTH})'
            )
        source, nodes = self._templates.lookup(name)

        self._depth += 1
        try:
            out: list[str] = []
            self._walk(source, nodes, Scope.root(data), out)
            return "".join(out)
        finally:
            self._depth -= 1

    def _include(self, name: str, data: Any = None) -> str:
        """Render a named template and return its text for piping."""
        if not isinstance(name, str):
            raise MalformedDirectiveError("include requires a template name")
        return self._execute_nested(name, data)

    def _tpl(self, text: str, data: Any) -> str:
        """Render a string as a template against ``data``."""
        if self._depth >= MAX_INCLUDE_DEPTH:
            raise MalformedDirectiveError(f"tpl exceeded max include depth ({MAX_INCLUDE_DEPTH})")
        self._tpl_count += 1
        parsed = self._templates.parse_inline(format_value(text), f"<tpl {self._tpl_count}>")

        self._depth += 1
        try:
            out: list[str] = []
            self._walk(parsed.name, parsed.nodes, Scope.root(data), out)
            return "".join(out)
        finally:
            self._depth -= 1


def _range_entries(value: Any) -> list[tuple[Any, Any]]:
    """Enumerate a range target as (key, element) pairs.

    Mappings iterate in insertion order; absent or null targets are empty.

    Raises:
        MalformedDirectiveError: If the target cannot be iterated
    """
    if is_missing(value) or value is None:
        return []
    if isinstance(value, Mapping):
        return ordered_items(value)
    if isinstance(value, (list, tuple)):
        return list(enumerate(value))
    raise MalformedDirectiveError(f"range can't iterate over {format_value(value)!r}")
