"""Chart loading, rendering and validation."""

from helmlet.chart.loader import (
    Chart,
    ChartError,
    ChartMetadata,
    ChartTemplate,
    list_bundled_charts,
    load_chart,
    resolve_chart_path,
)
from helmlet.chart.renderer import ChartRenderer, ReleaseInfo, render
from helmlet.chart.validator import ManifestValidator, Severity, ValidationIssue, ValidationResult

__all__ = [
    "Chart",
    "ChartError",
    "ChartMetadata",
    "ChartRenderer",
    "ChartTemplate",
    "ManifestValidator",
    "ReleaseInfo",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "list_bundled_charts",
    "load_chart",
    "render",
    "resolve_chart_path",
]
