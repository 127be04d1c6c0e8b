"""Chart rendering.

Renders chart templates against merged values. All output is deterministic:
the same chart, values and release always produce the same bytes.

Two entry points:
- render(): one template string against a ValueTree
- ChartRenderer: every manifest template of a loaded chart
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from helmlet.chart.loader import Chart, ChartError, ChartMetadata, ChartTemplate
from helmlet.engine import RenderedDocument, TemplateSet
from helmlet.values import ValueTree

logger = logging.getLogger(__name__)

DEFAULT_KUBE_VERSION = "v1.29.0"


@dataclass
class ReleaseInfo:
    """Release the manifests are rendered for (``.Release``).

    Attributes:
        name: Release name
        namespace: Target namespace
        revision: Release revision
        is_upgrade: Whether this render upgrades an existing release
        service: Name of the release tool
    """

    name: str = "release-name"
    namespace: str = "default"
    revision: int = 1
    is_upgrade: bool = False
    service: str = "Helm"

    def to_context(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Namespace": self.namespace,
            "Revision": self.revision,
            "IsInstall": not self.is_upgrade,
            "IsUpgrade": self.is_upgrade,
            "Service": self.service,
        }


def _capabilities(kube_version: str) -> dict[str, Any]:
    major, _, rest = kube_version.lstrip("v").partition(".")
    minor = rest.partition(".")[0]
    return {
        "KubeVersion": {
            "Version": kube_version,
            "GitVersion": kube_version,
            "Major": major,
            "Minor": minor,
        },
    }


def build_context(
    values: ValueTree,
    chart: ChartMetadata,
    release: ReleaseInfo,
    template_name: str,
    kube_version: str = DEFAULT_KUBE_VERSION,
) -> dict[str, Any]:
    """Build the top-level object templates render against.

    Args:
        values: Merged values (``.Values``)
        chart: Chart metadata (``.Chart``)
        release: Release info (``.Release``)
        template_name: Template being rendered (``.Template.Name``)
        kube_version: Target Kubernetes version (``.Capabilities``)

    Returns:
        Context dictionary; values are a fresh copy per call
    """
    base_path = template_name.rpartition("/")[0]
    return {
        "Values": values.to_dict(),
        "Chart": chart.to_context(),
        "Release": release.to_context(),
        "Capabilities": _capabilities(kube_version),
        "Template": {"Name": template_name, "BasePath": base_path},
    }


def render(
    template: str,
    values: ValueTree | Mapping[str, Any],
    *,
    helpers: Mapping[str, str] | None = None,
    chart: ChartMetadata | None = None,
    release: ReleaseInfo | None = None,
    name: str = "template",
) -> RenderedDocument:
    """Render a single template string.

    Args:
        template: Template source
        values: Values bound to ``.Values``
        helpers: Extra template sources (by name) whose defines are available
        chart: Chart metadata (defaults to a placeholder chart)
        release: Release info (defaults to ReleaseInfo())
        name: Template name used in error messages

    Returns:
        RenderedDocument

    Raises:
        UnresolvedReferenceError: If a required value has no binding
        MalformedDirectiveError: If a directive is malformed
    """
    templates = TemplateSet()
    for helper_name, helper_text in (helpers or {}).items():
        templates.add(helper_name, helper_text)
    templates.add(name, template)

    tree = values if isinstance(values, ValueTree) else ValueTree(values)
    context = build_context(
        tree,
        chart or ChartMetadata(name="chart", version="0.1.0"),
        release or ReleaseInfo(),
        template_name=name,
    )
    return templates.render(name, context)


class ChartRenderer:
    """Renders every manifest template of a chart.

    Templates are parsed once when the renderer is created, so malformed
    templates are reported before any values are involved.

    Usage:
        renderer = ChartRenderer(load_chart(path), ReleaseInfo(name="pleco"))
        values = renderer.resolve_values(overrides={"replicaCount": 3})
        manifest = renderer.render_manifest(values)
    """

    def __init__(
        self,
        chart: Chart,
        release: ReleaseInfo | None = None,
        kube_version: str = DEFAULT_KUBE_VERSION,
    ) -> None:
        """Initialize the chart renderer.

        Args:
            chart: Loaded chart
            release: Release info
            kube_version: Kubernetes version exposed as ``.Capabilities``

        Raises:
            MalformedDirectiveError: If any chart template is malformed
        """
        self.chart = chart
        self.release = release or ReleaseInfo()
        self.kube_version = kube_version

        self._templates = TemplateSet()
        for template in chart.templates:
            self._templates.add(template.name, template.text)

    def resolve_values(
        self,
        overrides: Mapping[str, Any] | None = None,
        value_files: Sequence[Path] = (),
        set_values: Sequence[str] = (),
        set_string_values: Sequence[str] = (),
    ) -> ValueTree:
        """Merge values in precedence order.

        chart values.yaml < value files (in order) < overrides < --set
        < --set-string

        Returns:
            Merged ValueTree
        """
        values = self.chart.values
        for value_file in value_files:
            values = values.merge(ValueTree.from_file(value_file))
        if overrides:
            values = values.merge(overrides)
        values = values.with_overrides(set_values)
        values = values.with_overrides(set_string_values, string_values=True)
        return values

    def _select(self, show_only: Sequence[str] | None) -> list[ChartTemplate]:
        templates = self.chart.manifest_templates
        if not show_only:
            return templates

        selected = []
        for wanted in show_only:
            matches = [
                t for t in templates
                if t.name == wanted or t.name.endswith("/" + wanted.lstrip("/"))
            ]
            if not matches:
                raise ChartError(self.chart.path or self.chart.name, f"could not find template {wanted}")
            selected.extend(m for m in matches if m not in selected)
        return selected

    def render(
        self,
        values: ValueTree | None = None,
        show_only: Sequence[str] | None = None,
    ) -> dict[str, RenderedDocument]:
        """Render the chart's manifest templates.

        Args:
            values: Merged values (defaults to the chart's own values)
            show_only: Restrict output to these templates (path suffixes)

        Returns:
            Rendered documents keyed by template name, in template order

        Raises:
            UnresolvedReferenceError: If a required value has no binding
            MalformedDirectiveError: If a directive is malformed
            ChartError: If a show_only template does not exist
        """
        if values is None:
            values = self.chart.values

        documents: dict[str, RenderedDocument] = {}
        for template in self._select(show_only):
            context = build_context(
                values,
                self.chart.metadata,
                self.release,
                template_name=template.name,
                kube_version=self.kube_version,
            )
            documents[template.name] = self._templates.render(template.name, context)

        logger.info(
            "Rendered %d template(s) for chart %s", len(documents), self.chart.name
        )
        return documents

    def render_manifest(
        self,
        values: ValueTree | None = None,
        show_only: Sequence[str] | None = None,
    ) -> str:
        """Render the chart as one multi-document YAML stream.

        Each non-empty document is preceded by ``---`` and a
        ``# Source: <template>`` comment.
        """
        documents = self.render(values, show_only)
        return join_documents(documents)

    def render_to_file(
        self,
        output_path: Path,
        values: ValueTree | None = None,
        show_only: Sequence[str] | None = None,
    ) -> Path:
        """Render the chart and write the manifest to a file.

        Nothing is written if rendering fails.

        Returns:
            Path to written file
        """
        content = self.render_manifest(values, show_only)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.info("Wrote manifest to %s", output_path)

        return output_path


def join_documents(documents: Mapping[str, RenderedDocument]) -> str:
    """Join rendered documents into a YAML stream, skipping empty ones."""
    parts = []
    for name, document in documents.items():
        if document.is_empty:
            logger.debug("Skipping empty document %s", name)
            continue
        parts.append(f"---\n# Source: {name}\n{document.text.strip(chr(10))}\n")
    return "".join(parts)
