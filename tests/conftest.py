"""Shared pytest fixtures for helmlet tests.

Fixtures are organized by category:
- Path fixtures: fixture charts and value files
- Chart fixtures: loaded charts and renderers
- Values fixtures: value trees used across engine tests
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from helmlet.chart import Chart, ChartRenderer, ReleaseInfo, load_chart, resolve_chart_path
from helmlet.values import ValueTree
from tests.fixtures import CHARTS_DIR, DEMO_CHART_PATH, FIXTURES_DIR

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def charts_dir() -> Path:
    """Return the path to the fixture charts."""
    return CHARTS_DIR


@pytest.fixture
def demo_chart_path() -> Path:
    """Return the path to the demo fixture chart."""
    return DEMO_CHART_PATH


@pytest.fixture
def pleco_chart_path() -> Path:
    """Return the path to the bundled pleco chart."""
    return resolve_chart_path("pleco")


# =============================================================================
# Chart Fixtures
# =============================================================================


@pytest.fixture
def demo_chart(demo_chart_path: Path) -> Chart:
    """Load the demo fixture chart."""
    return load_chart(demo_chart_path)


@pytest.fixture
def pleco_chart(pleco_chart_path: Path) -> Chart:
    """Load the bundled pleco chart."""
    return load_chart(pleco_chart_path)


@pytest.fixture
def pleco_renderer(pleco_chart: Chart) -> ChartRenderer:
    """Renderer for the pleco chart with a fixed release."""
    return ChartRenderer(pleco_chart, ReleaseInfo(name="pleco", namespace="kube-system"))


@pytest.fixture
def render_pleco(pleco_renderer: ChartRenderer) -> Callable[..., dict[str, Any]]:
    """Render the pleco Deployment with value overrides and parse it.

    Returns:
        Function taking override mappings and returning the parsed Deployment
    """

    def _render(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        values = pleco_renderer.resolve_values(overrides=overrides)
        documents = pleco_renderer.render(values)
        return yaml.safe_load(documents["pleco/templates/deployment.yaml"].text)

    return _render


@pytest.fixture
def tmp_chart(tmp_path: Path) -> Callable[..., Path]:
    """Create a throwaway chart directory.

    Returns:
        Function taking template sources by filename (plus optional values
        and Chart.yaml text) and returning the chart path
    """

    def _create(
        templates: dict[str, str],
        values: str = "",
        chart_yaml: str = "apiVersion: v2\nname: scratch\nversion: 0.1.0\nappVersion: \"1.0\"\n",
    ) -> Path:
        chart_path = tmp_path / "scratch"
        templates_dir = chart_path / "templates"
        templates_dir.mkdir(parents=True, exist_ok=True)
        (chart_path / "Chart.yaml").write_text(chart_yaml)
        if values:
            (chart_path / "values.yaml").write_text(values)
        for filename, text in templates.items():
            (templates_dir / filename).write_text(text)
        return chart_path

    return _create


# =============================================================================
# Values Fixtures
# =============================================================================


@pytest.fixture
def pleco_values() -> dict[str, Any]:
    """Values shaped like the pleco chart's, with every optional field set."""
    return {
        "replicaCount": 3,
        "image": {"repository": "qoveryrd/pleco", "pullPolicy": "IfNotPresent", "plecoImageTag": "v1.2.3"},
        "environmentVariables": {
            "LOG_LEVEL": "debug",
            "CHECK_INTERVAL": "300",
            "AWS_ACCESS_KEY_ID": "AKIA",
        },
        "podAnnotations": {"prometheus.io/scrape": "true"},
        "resources": {"limits": {"cpu": "100m", "memory": "128Mi"}},
    }


@pytest.fixture
def value_tree(pleco_values: dict[str, Any]) -> ValueTree:
    """ValueTree built from pleco_values."""
    return ValueTree(pleco_values)
