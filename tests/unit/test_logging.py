"""Tests for logging helpers."""

import json
import logging

from pollers.lib.logging import JSONFormatter, SourceLogger, get_source_logger, setup_logging


def make_record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("pollers.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        """Records carry timestamp, level, logger and message."""
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "pollers.test"
        assert data["message"] == "hello world"
        assert data["timestamp"].endswith("Z")
        assert "extra" not in data

    def test_extra_fields(self):
        """Extra attributes are included in the JSON."""
        data = json.loads(JSONFormatter().format(make_record(source_id="s1", kind="odata")))
        assert data["extra"] == {"source_id": "s1", "kind": "odata"}

    def test_exclude_fields(self):
        """Excluded fields are dropped from the output."""
        formatter = JSONFormatter(exclude_fields=["kind"])
        data = json.loads(formatter.format(make_record(source_id="s1", kind="odata")))
        assert data["extra"] == {"source_id": "s1"}


class TestSourceLogger:
    """Tests for SourceLogger."""

    def test_prefix_and_context(self, caplog):
        """Adapter messages get the source prefix and context."""
        log = get_source_logger("pollers.test", "crm.accounts", kind="odata")
        with caplog.at_level(logging.INFO, logger="pollers.test"):
            log.info("Fetched %d records", 3)
        record = caplog.records[-1]
        assert record.getMessage() == "[crm.accounts] Fetched 3 records"
        assert record.source_id == "crm.accounts"
        assert record.kind == "odata"

    def test_bind_leaves_original(self):
        """Binding returns a new adapter with merged context."""
        log = SourceLogger("pollers.test", source_id="a")
        bound = log.bind(page=2)
        assert bound.context == {"source_id": "a", "page": 2}
        assert log.context == {"source_id": "a"}


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_to_file(self, tmp_path):
        """JSON logging writes one object per line to the log file."""
        log_file = tmp_path / "poller.log"
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(verbose=True, json_format=True, log_file=str(log_file))
            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
            logging.getLogger("pollers.test").info("to file")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                if isinstance(handler, logging.FileHandler):
                    handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["message"] == "to file"
