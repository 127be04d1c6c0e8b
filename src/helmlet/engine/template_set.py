"""Named template collection.

A TemplateSet holds every parsed template of a chart plus the templates
they declare with ``define``. Template files and defines share one
namespace, so ``include`` can reach either.
"""

import logging
from typing import Any

from helmlet.engine.document import RenderedDocument
from helmlet.engine.errors import UnresolvedReferenceError
from helmlet.engine.evaluator import Evaluator
from helmlet.engine.functions import function_names
from helmlet.engine.parser import Node, ParsedTemplate, parse

logger = logging.getLogger(__name__)


class TemplateSet:
    """Parsed templates addressable by name.

    Parsed trees are immutable, so a TemplateSet can serve any number of
    independent renders.

    Usage:
        templates = TemplateSet()
        templates.add("_helpers.tpl", helpers_text)
        templates.add("deployment.yaml", deployment_text)
        document = templates.render("deployment.yaml", {"Values": {...}})
    """

    def __init__(self) -> None:
        self._templates: dict[str, tuple[str, tuple[Node, ...]]] = {}
        self._functions = function_names()

    def add(self, name: str, text: str) -> ParsedTemplate:
        """Parse ``text`` and register it (and its defines).

        A later define with the same name replaces the earlier one.

        Raises:
            MalformedDirectiveError: If the template is malformed
        """
        parsed = parse(text, name, self._functions)
        self._templates[name] = (name, parsed.nodes)
        for define_name, nodes in parsed.defines.items():
            self._templates[define_name] = (name, nodes)
        logger.debug("Registered template %s (%d defines)", name, len(parsed.defines))
        return parsed

    def parse_inline(self, text: str, name: str) -> ParsedTemplate:
        """Parse a template string under ``name`` without registering it (used by tpl)."""
        return parse(text, name, self._functions)

    def lookup(self, name: str) -> tuple[str, tuple[Node, ...]]:
        """Return (source template, nodes) for a template name.

        Raises:
            UnresolvedReferenceError: If no template has that name
        """
        try:
            return self._templates[name]
        except KeyError:
            raise UnresolvedReferenceError(
                f'template "{name}"', message=f'no template named "{name}"'
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def names(self) -> list[str]:
        return list(self._templates)

    def render_text(self, name: str, data: Any) -> str:
        """Render a template to text."""
        return Evaluator(self).execute(name, data)

    def render(self, name: str, data: Any) -> RenderedDocument:
        """Render a template to a RenderedDocument.

        Raises:
            UnresolvedReferenceError: If a required value has no binding
            MalformedDirectiveError: If a directive is malformed
        """
        return RenderedDocument.from_text(self.render_text(name, data), source=name)
