"""Tests for structured logging."""
import json
import logging

import pytest

from framestream.utils.logging import (
    JSONFormatter,
    LogConfig,
    TextFormatter,
    configure_logging,
    get_logger,
    set_level,
)


def make_record(message="Encoding chunk", **extra_fields):
    record = logging.LogRecord(
        name="framestream.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    if extra_fields:
        record.extra_fields = extra_fields
    return record


class TestLogConfig:
    """Tests for LogConfig validation."""

    def test_defaults(self):
        config = LogConfig()
        assert config.log_level == "INFO"
        assert config.log_format == "text"

    def test_invalid_level(self):
        with pytest.raises(ValueError, match="Invalid log_level"):
            LogConfig(log_level="LOUD")

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid log_format"):
            LogConfig(log_format="xml")

    def test_invalid_component_level(self):
        with pytest.raises(ValueError, match="reclaim"):
            LogConfig(component_levels={"reclaim": "CHATTY"})


class TestFormatters:
    """Tests for JSON and text formatters."""

    def test_json(self):
        data = json.loads(JSONFormatter().format(make_record(chunk=3)))

        assert data["level"] == "INFO"
        assert data["component"] == "orchestrator"
        assert data["message"] == "Encoding chunk"
        assert data["chunk"] == 3
        assert data["timestamp"].endswith("Z")

    def test_text_with_fields(self):
        text = TextFormatter(include_timestamp=False).format(make_record(chunk=3, first=300))
        assert text.startswith("INFO")
        assert text.endswith("Encoding chunk [chunk=3, first=300]")

    def test_text_without_fields(self):
        text = TextFormatter(include_timestamp=False).format(make_record())
        assert text.endswith("Encoding chunk")


class TestStreamLogger:
    """Tests for get_logger() and keyword fields."""

    def test_logger_name(self):
        assert get_logger("reclaim").logger.name == "framestream.reclaim"
        assert get_logger("framestream.muxer").logger.name == "framestream.muxer"

    def test_kwargs_become_fields(self, caplog):
        logger = get_logger("orchestrator")
        with caplog.at_level(logging.INFO, logger="framestream"):
            logger.info("Starting auto-encode", ledger_lines=500)

        record = caplog.records[-1]
        assert record.extra_fields == {"ledger_lines": 500}


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(LogConfig(log_level="DEBUG", log_format="json", log_file=str(log_file)))

        root = logging.getLogger("framestream")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert root.propagate is False

        get_logger("muxer").info("Merged", chunks=4)
        for handler in root.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["message"] == "Merged"
        assert entry["chunks"] == 4

        for handler in root.handlers:
            handler.close()

    def test_component_levels(self):
        configure_logging(LogConfig(component_levels={"reclaim": "WARNING"}))
        assert logging.getLogger("framestream.reclaim").level == logging.WARNING
        logging.getLogger("framestream.reclaim").setLevel(logging.NOTSET)

    def test_set_level(self):
        configure_logging(LogConfig())
        set_level("DEBUG")
        assert logging.getLogger("framestream").level == logging.DEBUG

        set_level("ERROR", component="tracker")
        assert logging.getLogger("framestream.tracker").level == logging.ERROR
        logging.getLogger("framestream.tracker").setLevel(logging.NOTSET)
