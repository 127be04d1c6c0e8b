"""Helmlet - Helm-style manifest renderer.

Renders Kubernetes manifests from chart templates written in Go template
syntax: value substitution with defaults, conditionals, iteration over
mappings in insertion order, named templates and indentation-aware
embedding of YAML fragments.

Core properties:
- Deterministic: same templates and values produce byte-identical output
- Fail fast: unresolved references and malformed directives abort the render
- No partial output is ever returned
"""

__version__ = "0.1.0"
__author__ = "Helmlet Contributors"
