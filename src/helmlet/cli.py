"""Helmlet CLI interface.

Commands:
- render: Render a chart to a multi-document manifest
- lint: Render a chart and validate the resulting manifests
- values: Show the merged values a chart would be rendered with
- validate: Check a single template file for syntax errors
- init: Initialize helmlet configuration

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log output
- --version: Show version and exit
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from helmlet import __version__
from helmlet.chart import (
    ChartError,
    ChartRenderer,
    ManifestValidator,
    ReleaseInfo,
    load_chart,
    resolve_chart_path,
)
from helmlet.config import CONFIG_DIR, HelmletConfig, create_default_config, load_config
from helmlet.engine import TemplateError, TemplateSet
from helmlet.utils.logging import configure_from_cli, get_logger
from helmlet.values import ValueTree

app = typer.Typer(
    name="helmlet",
    help="Render Kubernetes manifests from Helm-style chart templates",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: HelmletConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"helmlet {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Helmlet - Helm-style manifest renderer.

    Renders chart templates (Go template syntax) against layered values
    into Kubernetes manifests. Output is deterministic.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except (ValueError, OSError) as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)

    if _config.ci.json_output and not ci:
        configure_from_cli(verbose=verbose, quiet=quiet, ci=True)


# =============================================================================
# Shared option types and helpers
# =============================================================================

ChartArgument = Annotated[
    str | None,
    typer.Argument(help="Chart directory or bundled chart name (default: pleco)"),
]
ValuesOption = Annotated[
    list[Path] | None,
    typer.Option(
        "--values",
        "-f",
        help="Values YAML file (repeatable, later files win)",
        exists=True,
        dir_okay=False,
    ),
]
SetOption = Annotated[
    list[str] | None,
    typer.Option("--set", help="Set a value: key.path=value (repeatable)"),
]
SetStringOption = Annotated[
    list[str] | None,
    typer.Option("--set-string", help="Set a string value: key.path=value (repeatable)"),
]
ReleaseNameOption = Annotated[
    str | None,
    typer.Option("--release-name", help="Release name (.Release.Name)"),
]
NamespaceOption = Annotated[
    str | None,
    typer.Option("--namespace", "-n", help="Release namespace (.Release.Namespace)"),
]


def _current_config() -> HelmletConfig:
    return _config if _config is not None else HelmletConfig()


def _build_renderer(
    chart: str | None,
    release_name: str | None,
    namespace: str | None,
) -> ChartRenderer:
    """Load a chart and parse its templates.

    Exits with code 1 if the chart cannot be loaded or a template is malformed.
    """
    config = _current_config()
    chart_ref = chart
    if chart_ref is None and config.chart is not None:
        # Config paths are relative to the config file; bundled names stay as-is
        configured = config.resolve_path(config.chart)
        chart_ref = str(configured) if configured.is_dir() else config.chart

    release = ReleaseInfo(
        name=release_name or config.release.name,
        namespace=namespace or config.release.namespace,
    )

    try:
        chart_path = resolve_chart_path(chart_ref)
        loaded = load_chart(chart_path)
        renderer = ChartRenderer(loaded, release, kube_version=config.release.kube_version)
    except ChartError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except TemplateError as e:
        _logger.error(f"Template error: {e}")
        raise typer.Exit(1)

    _logger.debug(f"Using chart {loaded.name} {loaded.metadata.version} from {chart_path}")
    return renderer


def _resolve_values(
    renderer: ChartRenderer,
    values_files: list[Path] | None,
    set_values: list[str] | None,
    set_string_values: list[str] | None,
) -> ValueTree:
    """Merge config and CLI values over the chart defaults.

    Exits with code 1 on unreadable files or malformed assignments.
    """
    config = _current_config()
    files = [config.resolve_path(f) for f in config.values.files] + list(values_files or [])

    try:
        return renderer.resolve_values(
            value_files=files,
            set_values=config.values.set + list(set_values or []),
            set_string_values=config.values.set_string + list(set_string_values or []),
        )
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except ValueError as e:
        _logger.error(f"Invalid values: {e}")
        raise typer.Exit(1)


# =============================================================================
# render command
# =============================================================================


@app.command()
def render(
    chart: ChartArgument = None,
    values_files: ValuesOption = None,
    set_values: SetOption = None,
    set_string_values: SetStringOption = None,
    release_name: ReleaseNameOption = None,
    namespace: NamespaceOption = None,
    show_only: Annotated[
        list[str] | None,
        typer.Option(
            "--show-only",
            "-s",
            help="Only render this template, e.g. templates/deployment.yaml (repeatable)",
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Write the manifest to a file instead of stdout",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Render a chart to Kubernetes manifests.

    Values are merged in order: chart values.yaml, config value files,
    --values files, config/--set assignments, then --set-string.
    """
    renderer = _build_renderer(chart, release_name, namespace)
    values = _resolve_values(renderer, values_files, set_values, set_string_values)

    config = _current_config()
    output_path = output or (config.resolve_path(config.output.path) if config.output.path else None)

    try:
        if output_path is not None:
            renderer.render_to_file(output_path, values, show_only)
            _logger.info(f"Manifest written to {output_path}")
        else:
            typer.echo(renderer.render_manifest(values, show_only), nl=False)
    except TemplateError as e:
        _logger.error(f"Render failed: {e}")
        raise typer.Exit(1)
    except ChartError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    _logger.structured(
        logging.DEBUG,
        "Render complete",
        chart=renderer.chart.name,
        release=renderer.release.name,
        namespace=renderer.release.namespace,
    )


# =============================================================================
# lint command
# =============================================================================


@app.command()
def lint(
    chart: ChartArgument = None,
    values_files: ValuesOption = None,
    set_values: SetOption = None,
    set_string_values: SetStringOption = None,
    release_name: ReleaseNameOption = None,
    namespace: NamespaceOption = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output results as JSON",
        ),
    ] = False,
) -> None:
    """Render a chart and validate the manifests.

    Exit codes: 0 clean, 1 errors, 2 warnings only.
    """
    renderer = _build_renderer(chart, release_name, namespace)
    values = _resolve_values(renderer, values_files, set_values, set_string_values)

    try:
        documents = renderer.render(values)
    except TemplateError as e:
        _logger.error(f"Render failed: {e}")
        if json_output:
            typer.echo(json.dumps({"valid": False, "render_error": str(e)}, indent=2))
        raise typer.Exit(1)

    result = ManifestValidator().validate_all(documents)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for issue in result.issues:
            typer.echo(str(issue))
        typer.echo(
            f"{renderer.chart.name}: {result.documents_checked} document(s), "
            f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)"
        )

    if result.errors:
        raise typer.Exit(1)
    if result.warnings:
        raise typer.Exit(1 if _current_config().ci.fail_on_warning else 2)
    raise typer.Exit(0)


# =============================================================================
# values command
# =============================================================================


@app.command()
def values(
    chart: ChartArgument = None,
    values_files: ValuesOption = None,
    set_values: SetOption = None,
    set_string_values: SetStringOption = None,
) -> None:
    """Print the merged values as YAML."""
    renderer = _build_renderer(chart, None, None)
    merged = _resolve_values(renderer, values_files, set_values, set_string_values)
    typer.echo(merged.to_yaml(), nl=False)


# =============================================================================
# validate command
# =============================================================================


@app.command()
def validate(
    template: Annotated[
        Path,
        typer.Argument(
            help="Path to template file to validate",
            exists=True,
            dir_okay=False,
        ),
    ],
) -> None:
    """Validate a template file.

    Checks directive syntax (unterminated blocks, unknown functions,
    undefined variables). Values are not needed.
    """
    _logger.info(f"Validating template: {template}")

    try:
        parsed = TemplateSet().add(template.name, template.read_text(encoding="utf-8"))
    except TemplateError as e:
        _logger.error(f"Template syntax error: {e.message}")
        typer.echo(f"Template syntax error: {e}")
        raise typer.Exit(1)

    if parsed.defines:
        _logger.debug(f"Defines: {', '.join(sorted(parsed.defines))}")
    typer.echo(f"Template is valid: {template}")
    raise typer.Exit(0)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing config",
        ),
    ] = False,
) -> None:
    """Initialize helmlet configuration.

    Creates .helmlet/config.yaml with commented defaults.
    """
    config_dir = Path(CONFIG_DIR)
    config_dir.mkdir(exist_ok=True)

    config_file = config_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_file.write_text(create_default_config())
    _logger.info(f"Created config: {config_file}")

    typer.echo("helmlet configuration initialized")
    typer.echo(f"   Config: {config_file}")
    raise typer.Exit(0)


if __name__ == "__main__":
    app()
