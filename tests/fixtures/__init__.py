"""Test fixtures for helmlet.

Fixture charts:
- charts/demo: ConfigMap chart with helpers, NOTES.txt and a disabled template
- values/production.yaml: Overrides for the bundled pleco chart
"""

from pathlib import Path

# Path to fixtures directory
FIXTURES_DIR = Path(__file__).parent

# Path to fixture charts
CHARTS_DIR = FIXTURES_DIR / "charts"

# Specific fixture chart paths
DEMO_CHART_PATH = CHARTS_DIR / "demo"

# Value files
VALUES_DIR = FIXTURES_DIR / "values"
PRODUCTION_VALUES_PATH = VALUES_DIR / "production.yaml"


def get_fixture_chart(name: str) -> Path:
    """Get path to a fixture chart.

    Args:
        name: Name of the fixture chart

    Returns:
        Path to the chart directory

    Raises:
        ValueError: If the chart doesn't exist
    """
    chart_path = CHARTS_DIR / name
    if not chart_path.exists():
        raise ValueError(f"Fixture chart not found: {name}")
    return chart_path
