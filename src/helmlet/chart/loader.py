"""Chart loading.

A chart is a directory laid out as:

    <chart>/
      Chart.yaml          metadata (name, version, appVersion, ...)
      values.yaml         default values (optional)
      templates/          templates; files starting with "_" only hold defines

Charts bundled with helmlet live under ``helmlet/bundled``.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from helmlet.values import ValueTree

logger = logging.getLogger(__name__)

BUNDLED_CHARTS_DIR = Path(__file__).resolve().parent.parent / "bundled"

DEFAULT_CHART = "pleco"

# Files under templates/ that are parsed
TEMPLATE_SUFFIXES = frozenset({".yaml", ".yml", ".tpl", ".txt", ".json"})

# Files that are parsed but never rendered as manifests
NON_MANIFEST_FILES = frozenset({"NOTES.txt"})


class ChartError(Exception):
    """Raised when a chart cannot be loaded."""

    def __init__(self, chart_path: Path | str, message: str) -> None:
        self.chart_path = chart_path
        self.message = message
        super().__init__(f"Invalid chart {chart_path}: {message}")


@dataclass
class ChartMetadata:
    """Contents of Chart.yaml.

    Attributes:
        name: Chart name
        version: Chart version (SemVer)
        app_version: Version of the packaged application
        description: One-line description
        api_version: Chart API version (v2)
        type: Chart type (application, library)
    """

    name: str
    version: str
    app_version: str | None = None
    description: str | None = None
    api_version: str = "v2"
    type: str = "application"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChartMetadata":
        app_version = data.get("appVersion")
        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            app_version=str(app_version) if app_version is not None else None,
            description=data.get("description"),
            api_version=str(data.get("apiVersion", "v2")),
            type=str(data.get("type", "application")),
        )

    def to_context(self) -> dict[str, Any]:
        """Build the ``.Chart`` object seen by templates.

        Unset optional fields are left out so templates see them as absent.
        """
        context: dict[str, Any] = {
            "Name": self.name,
            "Version": self.version,
            "ApiVersion": self.api_version,
            "Type": self.type,
        }
        if self.app_version is not None:
            context["AppVersion"] = self.app_version
        if self.description is not None:
            context["Description"] = self.description
        return context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "app_version": self.app_version,
            "description": self.description,
            "api_version": self.api_version,
            "type": self.type,
        }


@dataclass
class ChartTemplate:
    """Single template file.

    Attributes:
        name: Template name as seen by include/errors (``pleco/templates/x.yaml``)
        text: Template source
    """

    name: str
    text: str

    @property
    def filename(self) -> str:
        return PurePosixPath(self.name).name

    @property
    def is_partial(self) -> bool:
        """True for files that only contribute defines (``_helpers.tpl``)."""
        return self.filename.startswith("_")

    @property
    def is_manifest(self) -> bool:
        return not self.is_partial and self.filename not in NON_MANIFEST_FILES


@dataclass
class Chart:
    """A loaded chart.

    Attributes:
        metadata: Chart.yaml contents
        values: Default values from values.yaml
        templates: Template files sorted by name
        path: Chart directory (None for in-memory charts)
    """

    metadata: ChartMetadata
    values: ValueTree = field(default_factory=ValueTree)
    templates: list[ChartTemplate] = field(default_factory=list)
    path: Path | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def manifest_templates(self) -> list[ChartTemplate]:
        return [t for t in self.templates if t.is_manifest]


def _read_yaml(path: Path, chart_path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ChartError(chart_path, f"{path.name} is not valid YAML: {e}") from e


def load_chart(chart_path: Path) -> Chart:
    """Load a chart directory.

    Args:
        chart_path: Directory containing Chart.yaml

    Returns:
        Loaded Chart

    Raises:
        ChartError: If Chart.yaml is missing or invalid, or values.yaml is
            not a mapping
    """
    if not chart_path.is_dir():
        raise ChartError(chart_path, "not a directory")

    chart_file = chart_path / "Chart.yaml"
    if not chart_file.exists():
        raise ChartError(chart_path, "Chart.yaml not found")

    data = _read_yaml(chart_file, chart_path)
    if not isinstance(data, dict):
        raise ChartError(chart_path, "Chart.yaml must be a mapping")
    for required in ("name", "version"):
        if not data.get(required):
            raise ChartError(chart_path, f"Chart.yaml is missing '{required}'")
    metadata = ChartMetadata.from_dict(data)

    values = ValueTree(source=f"{metadata.name}/values.yaml")
    values_file = chart_path / "values.yaml"
    if values_file.exists():
        raw_values = _read_yaml(values_file, chart_path)
        if raw_values is not None and not isinstance(raw_values, dict):
            raise ChartError(chart_path, "values.yaml must be a mapping")
        values = ValueTree(raw_values or {}, source=str(values_file))

    templates: list[ChartTemplate] = []
    templates_dir = chart_path / "templates"
    if templates_dir.is_dir():
        for template_file in sorted(templates_dir.rglob("*")):
            if not template_file.is_file() or template_file.suffix not in TEMPLATE_SUFFIXES:
                continue
            relative = template_file.relative_to(chart_path).as_posix()
            templates.append(
                ChartTemplate(
                    name=f"{metadata.name}/{relative}",
                    text=template_file.read_text(encoding="utf-8"),
                )
            )

    logger.debug(
        "Loaded chart %s %s from %s (%d templates)",
        metadata.name,
        metadata.version,
        chart_path,
        len(templates),
    )
    return Chart(metadata=metadata, values=values, templates=templates, path=chart_path)


def list_bundled_charts() -> list[str]:
    """Names of the charts shipped with helmlet."""
    if not BUNDLED_CHARTS_DIR.is_dir():
        return []
    return sorted(p.name for p in BUNDLED_CHARTS_DIR.iterdir() if (p / "Chart.yaml").exists())


def resolve_chart_path(chart: str | Path | None = None) -> Path:
    """Resolve a chart reference to a directory.

    A reference is either a path to a chart directory or the name of a
    bundled chart. None selects the default bundled chart.

    Raises:
        ChartError: If the reference matches nothing
    """
    if chart is None:
        chart = DEFAULT_CHART

    candidate = Path(chart)
    if candidate.is_dir():
        return candidate

    bundled = BUNDLED_CHARTS_DIR / str(chart)
    if isinstance(chart, str) and (bundled / "Chart.yaml").exists():
        return bundled

    raise ChartError(chart, f"no chart directory or bundled chart named '{chart}'")
