"""Integration tests for helmlet CLI commands.

These tests exercise the full CLI workflow against the bundled pleco chart
and the fixture charts. Log output goes to stderr, so most invocations pass
-q to keep stdout limited to command output.
"""

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from helmlet import __version__
from helmlet.cli import app
from tests.fixtures import DEMO_CHART_PATH, PRODUCTION_VALUES_PATH

pytestmark = pytest.mark.integration

runner = CliRunner()


def _deployment(path: Path) -> dict:
    documents = [d for d in yaml.safe_load_all(path.read_text()) if d is not None]
    assert len(documents) == 1
    return documents[0]


class TestHelmletRender:
    """Integration tests for `helmlet render`."""

    @pytest.fixture
    def output_path(self, tmp_path: Path) -> Path:
        """Create temporary output path."""
        return tmp_path / "manifests" / "pleco.yaml"

    def test_render_to_file(self, output_path: Path) -> None:
        """Test the default chart renders to a file."""
        result = runner.invoke(app, ["render", "--release-name", "pleco", "--output", str(output_path)])

        assert result.exit_code == 0, f"Command failed: {result.output}"
        assert output_path.exists(), "Manifest file was not created"

        content = output_path.read_text()
        assert content.startswith("---\n# Source: pleco/templates/deployment.yaml\n")
        deployment = _deployment(output_path)
        assert deployment["metadata"]["name"] == "pleco"
        assert deployment["spec"]["replicas"] == 1

    def test_render_to_stdout(self) -> None:
        """Test the manifest is printed without --output."""
        result = runner.invoke(app, ["-q", "render", "pleco"])

        assert result.exit_code == 0
        assert "# Source: pleco/templates/deployment.yaml" in result.output
        assert "name: release-name-pleco" in result.output

    def test_render_set_values(self, output_path: Path) -> None:
        """Test --set and --set-string overrides."""
        result = runner.invoke(
            app,
            [
                "render",
                "--set", "replicaCount=3",
                "--set", "environmentVariables.LOG_LEVEL=debug",
                "--set-string", "environmentVariables.CHECK_INTERVAL=300",
                "-o", str(output_path),
            ],
        )

        assert result.exit_code == 0, f"Command failed: {result.output}"
        deployment = _deployment(output_path)
        container = deployment["spec"]["template"]["spec"]["containers"][0]
        assert deployment["spec"]["replicas"] == 3
        assert container["args"] == ["--level", "debug", "--check-interval", "300"]
        assert [e["name"] for e in container["env"]] == ["LOG_LEVEL", "CHECK_INTERVAL"]

    def test_render_values_file(self, output_path: Path) -> None:
        """Test -f layers a values file over the chart defaults."""
        result = runner.invoke(app, ["render", "-f", str(PRODUCTION_VALUES_PATH), "-o", str(output_path)])

        assert result.exit_code == 0, f"Command failed: {result.output}"
        container = _deployment(output_path)["spec"]["template"]["spec"]["containers"][0]
        assert container["args"][-1] == "--dry-run"

    def test_render_show_only(self, output_path: Path) -> None:
        """Test --show-only selects a template by path."""
        result = runner.invoke(
            app,
            ["render", str(DEMO_CHART_PATH), "--set", "enabled=true", "-s", "templates/optional.yaml", "-o", str(output_path)],
        )

        assert result.exit_code == 0, f"Command failed: {result.output}"
        content = output_path.read_text()
        assert "# Source: demo/templates/optional.yaml" in content
        assert "configmap.yaml" not in content

    def test_render_show_only_unknown(self) -> None:
        """Test --show-only with an unknown template fails."""
        result = runner.invoke(app, ["-q", "render", "-s", "templates/service.yaml"])

        assert result.exit_code == 1

    def test_render_unknown_chart(self) -> None:
        """Test an unknown chart reference fails."""
        result = runner.invoke(app, ["-q", "render", "no-such-chart"])

        assert result.exit_code == 1

    def test_render_unresolved_value(self, output_path: Path) -> None:
        """Test a render error exits 1 and writes nothing."""
        result = runner.invoke(app, ["-q", "render", "--set", "replicaCount=null", "-o", str(output_path)])

        assert result.exit_code == 1
        assert not output_path.exists()

    def test_render_invalid_set(self) -> None:
        """Test a malformed assignment exits 1."""
        result = runner.invoke(app, ["-q", "render", "--set", "replicaCount"])

        assert result.exit_code == 1

    def test_render_with_config_file(self, tmp_path: Path) -> None:
        """Test release, values and output settings from a config file."""
        (tmp_path / "values-prod.yaml").write_text("replicaCount: 4\n")
        config_file = tmp_path / "helmlet.yaml"
        config_file.write_text(
            "release:\n"
            "  name: cleaner\n"
            "values:\n"
            "  files: [values-prod.yaml]\n"
            "  set: [environmentVariables.LOG_LEVEL=warn]\n"
            "output:\n"
            "  path: out/pleco.yaml\n"
        )

        result = runner.invoke(app, ["--config", str(config_file), "render"])

        assert result.exit_code == 0, f"Command failed: {result.output}"
        deployment = _deployment(tmp_path / "out" / "pleco.yaml")
        assert deployment["metadata"]["name"] == "cleaner-pleco"
        assert deployment["spec"]["replicas"] == 4
        assert deployment["spec"]["template"]["spec"]["containers"][0]["args"][1] == "warn"


class TestHelmletLint:
    """Integration tests for `helmlet lint`."""

    def test_lint_warnings_exit_code(self) -> None:
        """Test the pleco defaults only warn about resources."""
        result = runner.invoke(app, ["-q", "lint"])

        assert result.exit_code == 2
        assert "no resource requests or limits set" in result.output
        assert "pleco: 1 document(s), 0 error(s), 1 warning(s)" in result.output

    def test_lint_clean(self) -> None:
        """Test a fully configured release lints clean."""
        result = runner.invoke(app, ["-q", "lint", "--set", "resources.limits.cpu=100m"])

        assert result.exit_code == 0, f"Command failed: {result.output}"

    def test_lint_errors(self) -> None:
        """Test validation errors exit 1."""
        result = runner.invoke(app, ["-q", "lint", "--set", "image.plecoImageTag=latest,replicaCount=x"])

        assert result.exit_code == 1
        assert "replicas must be an integer" in result.output

    def test_lint_json(self) -> None:
        """Test lint --json outputs machine-readable results."""
        result = runner.invoke(app, ["-q", "lint", "--json"])

        assert result.exit_code == 2
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["documents_checked"] == 1
        assert data["warnings"] == 1
        assert data["issues"][0]["source"] == "pleco/templates/deployment.yaml"

    def test_lint_render_error(self) -> None:
        """Test a render failure is reported as a lint failure."""
        result = runner.invoke(app, ["-q", "lint", "--json", "--set", "replicaCount=null"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["valid"] is False

    def test_lint_fail_on_warning(self, tmp_path: Path) -> None:
        """Test ci.fail_on_warning turns warnings into failures."""
        config_file = tmp_path / "helmlet.yaml"
        config_file.write_text("ci:\n  fail_on_warning: true\n")

        result = runner.invoke(app, ["-q", "--config", str(config_file), "lint"])

        assert result.exit_code == 1


class TestHelmletValues:
    """Integration tests for `helmlet values`."""

    def test_values_merged(self) -> None:
        """Test the merged values are printed as YAML."""
        result = runner.invoke(app, ["-q", "values", "--set", "replicaCount=5"])

        assert result.exit_code == 0
        data = yaml.safe_load(result.stdout)
        assert data["replicaCount"] == 5
        assert data["image"]["repository"] == "qoveryrd/pleco"
        assert list(data)[0] == "replicaCount"


class TestHelmletValidate:
    """Integration tests for `helmlet validate`."""

    def test_validate_valid_template(self, tmp_path: Path) -> None:
        """Test validate accepts a well-formed template."""
        template = tmp_path / "deployment.yaml"
        template.write_text("replicas: {{ .Values.replicaCount | default 1 }}\n{{- if .Values.x }}\nx: 1\n{{- end }}\n")

        result = runner.invoke(app, ["-q", "validate", str(template)])

        assert result.exit_code == 0
        assert "Template is valid" in result.output

    def test_validate_invalid_template(self, tmp_path: Path) -> None:
        """Test validate rejects an unterminated block."""
        template = tmp_path / "broken.yaml"
        template.write_text("a: 1\n{{ range .Values.items }}\n- {{ . }}\n")

        result = runner.invoke(app, ["-q", "validate", str(template)])

        assert result.exit_code == 1
        assert "Template syntax error" in result.output

    def test_validate_bundled_template(self) -> None:
        """Test the bundled pleco template validates."""
        from helmlet.chart import resolve_chart_path

        template = resolve_chart_path("pleco") / "templates" / "deployment.yaml"

        result = runner.invoke(app, ["-q", "validate", str(template)])

        assert result.exit_code == 0


class TestHelmletInit:
    """Integration tests for `helmlet init`."""

    def test_init_creates_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test init creates .helmlet/config.yaml."""
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        config_file = tmp_path / ".helmlet" / "config.yaml"
        assert config_file.exists()
        assert "release:" in config_file.read_text()

    def test_init_refuses_overwrite(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test init does not overwrite without --force."""
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / ".helmlet" / "config.yaml"
        config_file.parent.mkdir()
        config_file.write_text("chart: pleco\n")

        result = runner.invoke(app, ["-q", "init"])
        assert result.exit_code == 1
        assert config_file.read_text() == "chart: pleco\n"

        result = runner.invoke(app, ["-q", "init", "--force"])
        assert result.exit_code == 0
        assert "release:" in config_file.read_text()


class TestHelmletVersion:
    """Tests for global options."""

    def test_version(self) -> None:
        """Test --version prints the package version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"helmlet {__version__}" in result.output
