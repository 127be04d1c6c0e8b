"""Helmlet configuration system.

Configuration is YAML-based; CLI flags override it per run.
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.helmlet/config.yaml
3. ./helmlet.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR = ".helmlet"

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class ReleaseConfig:
    """Release settings exposed to templates as ``.Release``.

    Attributes:
        name: Release name
        namespace: Target namespace
        kube_version: Kubernetes version exposed as ``.Capabilities``
    """

    name: str = "release-name"
    namespace: str = "default"
    kube_version: str = "v1.29.0"

    def __post_init__(self) -> None:
        """Validate release configuration."""
        if not self.name:
            raise ValueError("Release name must not be empty")
        if len(self.name) > 53:
            raise ValueError(f"Release name must be at most 53 characters (got {len(self.name)})")


@dataclass
class ValuesConfig:
    """Values applied on top of the chart's values.yaml.

    Attributes:
        files: Value files merged in order
        set: --set style assignments applied after the files
        set_string: --set-string style assignments applied last
    """

    files: list[str] = field(default_factory=list)
    set: list[str] = field(default_factory=list)
    set_string: list[str] = field(default_factory=list)


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        path: Manifest output file (None writes to stdout)
    """

    path: str | None = None


@dataclass
class CIConfig:
    """CI/CD-specific configuration.

    Attributes:
        fail_on_warning: Treat lint warnings as failures (exit 1)
        json_output: Use JSON log output
    """

    fail_on_warning: bool = False
    json_output: bool = False


@dataclass
class HelmletConfig:
    """Top-level helmlet configuration.

    Attributes:
        chart: Chart directory or bundled chart name (None for the default)
        release: Release settings
        values: Value overrides
        output: Output settings
        ci: CI/CD settings
    """

    chart: str | None = None
    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    values: ValuesConfig = field(default_factory=ValuesConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    ci: CIConfig = field(default_factory=CIConfig)

    # Set when loaded from a file
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path

    def resolve_path(self, path: str) -> Path:
        """Resolve a path from the config file relative to its directory."""
        candidate = Path(path)
        if candidate.is_absolute() or self._config_path is None:
            return candidate
        base = self._config_path.parent
        if base.name == CONFIG_DIR:
            base = base.parent
        return base / candidate


# =============================================================================
# Environment Variable Substitution
# =============================================================================

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax. Example: ${RELEASE_NAME} -> value of RELEASE_NAME

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return _ENV_VAR_RE.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.helmlet/config.yaml
    2. ./helmlet.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / CONFIG_DIR / "config.yaml",
        start_path / "helmlet.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list of strings")
    return [str(v) for v in value]


def load_config_from_dict(data: dict[str, Any]) -> HelmletConfig:
    """Load configuration from a dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        HelmletConfig instance

    Raises:
        ValueError: On invalid settings or unset environment variables
    """
    data = substitute_env_vars(data)

    config = HelmletConfig()

    if data.get("chart") is not None:
        config.chart = str(data["chart"])

    if "release" in data:
        release_data = data["release"] or {}
        config.release = ReleaseConfig(
            name=str(release_data.get("name", config.release.name)),
            namespace=str(release_data.get("namespace", config.release.namespace)),
            kube_version=str(release_data.get("kube_version", config.release.kube_version)),
        )

    if "values" in data:
        values_data = data["values"] or {}
        config.values = ValuesConfig(
            files=_string_list(values_data, "files"),
            set=_string_list(values_data, "set"),
            set_string=_string_list(values_data, "set_string"),
        )

    if "output" in data:
        output_data = data["output"] or {}
        config.output = OutputConfig(path=output_data.get("path"))

    if "ci" in data:
        ci_data = data["ci"] or {}
        config.ci = CIConfig(
            fail_on_warning=ci_data.get("fail_on_warning", False),
            json_output=ci_data.get("json_output", False),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> HelmletConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        HelmletConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {found_path}")
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = HelmletConfig()

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# helmlet configuration

# Chart directory or bundled chart name (default: bundled "pleco")
# chart: "./charts/pleco"

# Release settings (.Release in templates)
release:
  name: "release-name"
  namespace: "default"
  kube_version: "v1.29.0"

# Values merged over the chart's values.yaml, in order
values:
  files: []
  # - "values-production.yaml"
  set: []
  # - "replicaCount=3"
  # - "environmentVariables.LOG_LEVEL=${LOG_LEVEL}"
  set_string: []

# Manifest output (omit path to write to stdout)
output:
  # path: "manifests/pleco.yaml"

# CI/CD settings
ci:
  fail_on_warning: false
  json_output: false
'''
