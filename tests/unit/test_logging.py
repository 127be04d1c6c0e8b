"""Unit tests for logging setup."""

import io
import json
import logging
from collections.abc import Iterator

import pytest

from helmlet.utils.logging import (
    ROOT_LOGGER,
    HelmletLogger,
    HumanFormatter,
    LogMode,
    configure_from_cli,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_root_logger() -> Iterator[None]:
    """Leave the helmlet logger without handlers after each test."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


class TestSetupLogging:
    """Tests for setup_logging and configure_from_cli."""

    def test_human_mode(self) -> None:
        """Test human output is [LEVEL] message."""
        stream = io.StringIO()
        setup_logging(LogMode.HUMAN, stream=stream)

        get_logger("helmlet.chart").info("Rendered %d document(s)", 1)

        assert stream.getvalue() == "[INFO] Rendered 1 document(s)\n"

    def test_level_filters(self) -> None:
        """Test messages below the level are dropped."""
        stream = io.StringIO()
        setup_logging(LogMode.HUMAN, level=logging.WARNING, stream=stream)

        logger = get_logger()
        logger.info("hidden")
        logger.warning("shown")

        assert stream.getvalue() == "[WARNING] shown\n"

    def test_json_mode_with_fields(self) -> None:
        """Test JSON lines carry structured fields."""
        stream = io.StringIO()
        setup_logging(LogMode.JSON, stream=stream)

        logger = get_logger()
        assert isinstance(logger, HelmletLogger)
        logger.structured(logging.INFO, "Rendered chart", chart="pleco", documents=1)

        entry = json.loads(stream.getvalue())
        assert entry["level"] == "INFO"
        assert entry["logger"] == ROOT_LOGGER
        assert entry["msg"] == "Rendered chart"
        assert entry["chart"] == "pleco"
        assert entry["documents"] == 1
        assert "ts" in entry

    def test_verbose_mode_with_fields(self) -> None:
        """Test verbose lines include the logger name and fields."""
        stream = io.StringIO()
        setup_logging(LogMode.VERBOSE, level=logging.DEBUG, stream=stream)

        get_logger().structured(logging.DEBUG, "Merged values", files=2)

        line = stream.getvalue()
        assert line.startswith("[DEBUG][")
        assert "helmlet: Merged values files=2" in line

    def test_configure_from_cli(self) -> None:
        """Test CLI flags map to level and mode."""
        stream = io.StringIO()

        configure_from_cli(quiet=True, stream=stream)
        assert logging.getLogger(ROOT_LOGGER).level == logging.WARNING

        configure_from_cli(verbose=True, stream=stream)
        assert logging.getLogger(ROOT_LOGGER).level == logging.DEBUG

        configure_from_cli(ci=True, stream=stream)
        get_logger().info("ci")
        assert json.loads(stream.getvalue().splitlines()[-1])["msg"] == "ci"

    def test_does_not_propagate(self) -> None:
        """Test helmlet records stay off the root logger."""
        setup_logging(stream=io.StringIO())

        assert logging.getLogger(ROOT_LOGGER).propagate is False


class TestHumanFormatter:
    """Tests for HumanFormatter."""

    def test_colors(self) -> None:
        """Test colored level tags."""
        record = logging.LogRecord(ROOT_LOGGER, logging.ERROR, __file__, 1, "boom", None, None)

        assert HumanFormatter(use_colors=True).format(record) == "\033[31m[ERROR]\033[0m boom"
        assert HumanFormatter().format(record) == "[ERROR] boom"
