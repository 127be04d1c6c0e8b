"""Unit tests for the template parser."""

import pytest

from helmlet.engine.errors import MalformedDirectiveError
from helmlet.engine.functions import function_names
from helmlet.engine.parser import (
    ActionNode,
    FieldNode,
    IdentifierNode,
    IfNode,
    LiteralNode,
    ParsedTemplate,
    RangeNode,
    TemplateNode,
    TextNode,
    WithNode,
    parse,
)


def _parse(text: str) -> ParsedTemplate:
    return parse(text, "test.yaml", function_names())


class TestParsePipelines:
    """Tests for output actions and pipelines."""

    def test_field_action(self) -> None:
        """Test a field reference becomes a single-command pipeline."""
        parsed = _parse("replicas: {{ .Values.replicaCount }}")

        assert isinstance(parsed.nodes[0], TextNode)
        action = parsed.nodes[1]
        assert isinstance(action, ActionNode)
        command = action.pipeline.commands[0]
        assert command.args == (FieldNode(("Values", "replicaCount")),)
        assert command.args[0].path == ".Values.replicaCount"

    def test_piped_function(self) -> None:
        """Test pipe stages become separate commands."""
        action = _parse('{{ .Values.x | default "info" }}').nodes[0]

        assert len(action.pipeline.commands) == 2
        assert action.pipeline.commands[1].args == (IdentifierNode("default"), LiteralNode("info"))

    def test_literals(self) -> None:
        """Test number, boolean and nil literals."""
        action = _parse("{{ list 120 1.5 true false nil }}").nodes[0]

        args = action.pipeline.commands[0].args
        assert [a.value for a in args[1:]] == [120, 1.5, True, False, None]

    def test_parenthesized_pipeline(self) -> None:
        """Test parentheses nest a pipeline as an operand."""
        action = _parse('{{ default (include "x" .) .Values.name }}').nodes[0]

        nested = action.pipeline.commands[0].args[1]
        assert nested.commands[0].args[0] == IdentifierNode("include")

    def test_declaration(self) -> None:
        """Test variable declarations record the declared names."""
        action = _parse('{{ $name := include "x" . }}').nodes[0]

        assert action.pipeline.decls == ("$name",)
        assert action.pipeline.is_assign is False

    def test_unknown_function(self) -> None:
        """Test calling an undefined function is malformed."""
        with pytest.raises(MalformedDirectiveError, match='function "frobnicate" not defined'):
            _parse("{{ .Values.x | frobnicate }}")

    def test_undefined_variable(self) -> None:
        """Test using an undeclared variable is malformed."""
        with pytest.raises(MalformedDirectiveError, match="undefined variable: \\$missing"):
            _parse("{{ $missing }}")

    def test_argument_to_non_function(self) -> None:
        """Test a value cannot take arguments."""
        with pytest.raises(MalformedDirectiveError, match="can't give argument to non-function"):
            _parse("{{ .Values.x 3 }}")

    def test_value_in_later_pipeline_stage(self) -> None:
        """Test a plain value cannot follow a pipe."""
        with pytest.raises(MalformedDirectiveError, match="non-function in pipeline stage"):
            _parse("{{ .Values.x | .Values.y }}")

    def test_empty_action(self) -> None:
        """Test an empty action is malformed."""
        with pytest.raises(MalformedDirectiveError, match="missing value"):
            _parse("{{ }}")


class TestParseBlocks:
    """Tests for if/with/range/define blocks."""

    def test_if_else(self) -> None:
        """Test if with an else branch."""
        node = _parse("{{ if .a }}yes{{ else }}no{{ end }}").nodes[0]

        assert isinstance(node, IfNode)
        assert node.body == (TextNode("yes"),)
        assert node.else_body == (TextNode("no"),)

    def test_else_if_chain(self) -> None:
        """Test else if nests an IfNode in the else branch."""
        node = _parse("{{ if .a }}a{{ else if .b }}b{{ else }}c{{ end }}").nodes[0]

        chained = node.else_body[0]
        assert isinstance(chained, IfNode)
        assert chained.else_body == (TextNode("c"),)

    def test_with_and_range(self) -> None:
        """Test with and range produce their node types."""
        parsed = _parse("{{ with .a }}x{{ end }}{{ range $k, $v := .m }}{{ $k }}{{ end }}")

        assert isinstance(parsed.nodes[0], WithNode)
        assert isinstance(parsed.nodes[1], RangeNode)
        assert parsed.nodes[1].pipeline.decls == ("$k", "$v")

    def test_range_variables_scoped_to_block(self) -> None:
        """Test range variables are not visible after end."""
        with pytest.raises(MalformedDirectiveError, match="undefined variable: \\$k"):
            _parse("{{ range $k, $v := .m }}{{ end }}{{ $k }}")

    def test_define_registered(self) -> None:
        """Test define bodies are collected and produce no node."""
        parsed = _parse('{{ define "x.name" }}pleco{{ end }}rest')

        assert parsed.defines["x.name"] == (TextNode("pleco"),)
        assert parsed.nodes == (TextNode("rest"),)

    def test_template_call(self) -> None:
        """Test template invocation with a data pipeline."""
        node = _parse('{{ template "x.name" . }}').nodes[0]

        assert isinstance(node, TemplateNode)
        assert node.name == "x.name"

    def test_define_inside_block_rejected(self) -> None:
        """Test define is only allowed at the top level."""
        with pytest.raises(MalformedDirectiveError, match="top level"):
            _parse('{{ if .a }}{{ define "x" }}{{ end }}{{ end }}')

    def test_comments_ignored(self) -> None:
        """Test comments produce no nodes."""
        parsed = _parse("a{{/* note */}}b")

        assert parsed.nodes == (TextNode("a"), TextNode("b"))


class TestStructuralErrors:
    """Tests for structural errors and their locations."""

    def test_unterminated_if_reports_opener_line(self) -> None:
        """Test an if without end is reported at the if."""
        with pytest.raises(MalformedDirectiveError) as exc_info:
            _parse("a: 1\n{{ if .Values.x }}\nb: 2\n")

        assert "unterminated {{if}} block" in str(exc_info.value)
        assert exc_info.value.line == 2
        assert exc_info.value.template == "test.yaml"

    def test_unterminated_range(self) -> None:
        """Test a range without end is malformed."""
        with pytest.raises(MalformedDirectiveError, match="unterminated {{range}}"):
            _parse("{{ range .Values.env }}- x\n")

    def test_stray_end(self) -> None:
        """Test an end without an opener is malformed."""
        with pytest.raises(MalformedDirectiveError, match="unexpected {{end}}"):
            _parse("a\n{{ end }}")

    def test_stray_else(self) -> None:
        """Test an else outside a block is malformed."""
        with pytest.raises(MalformedDirectiveError, match="unexpected {{else}}"):
            _parse("{{ else }}")

    def test_if_without_condition(self) -> None:
        """Test if requires a pipeline."""
        with pytest.raises(MalformedDirectiveError, match="missing value for if"):
            _parse("{{ if }}x{{ end }}")
