"""Helmlet template engine.

A small Go-template style engine for YAML manifests: value lookup with
defaults, if/with/range blocks, named templates, trim markers and
indentation-aware fragment embedding (``toYaml | nindent``).
"""

from helmlet.engine.document import RenderedDocument, RenderedLine
from helmlet.engine.errors import MalformedDirectiveError, TemplateError, UnresolvedReferenceError
from helmlet.engine.template_set import TemplateSet

__all__ = [
    "MalformedDirectiveError",
    "RenderedDocument",
    "RenderedLine",
    "TemplateError",
    "TemplateSet",
    "UnresolvedReferenceError",
]
