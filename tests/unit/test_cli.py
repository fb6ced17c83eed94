"""Tests for the offsets CLI."""

import logging
import textwrap

import pytest

from pollers.__main__ import build_parser, main
from pollers.lib.state_store import FileOffsetStore


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sources.yaml"
    path.write_text(
        textwrap.dedent(
            """
            sources:
              - source_id: shop.orders
                base_url: https://api.example.com
                path: /v1/orders
                kind: offset_limit
                page_size: 50
            """
        ),
        encoding="utf-8",
    )
    return path


PARTITION = "https://api.example.com/v1/orders"


class TestParser:
    """Tests for argument parsing."""

    def test_offsets_show(self):
        """The show subcommand takes a partition and the global state directory."""
        args = build_parser().parse_args(["--state-dir", "/tmp/s", "offsets", "show", PARTITION])
        assert args.command == "offsets"
        assert args.offsets_command == "show"
        assert args.partition == PARTITION
        assert args.state_dir == "/tmp/s"

    def test_logging_flags(self):
        """The logging flags are global options ahead of the command."""
        args = build_parser().parse_args(["-v", "--json-log", "--log-file", "p.log", "offsets", "list"])
        assert args.verbose is True
        assert args.json_log is True
        assert args.log_file == "p.log"

    def test_command_required(self):
        """A missing command exits with a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for CLI commands."""

    def test_plan_from_initial_offset(self, config_file, tmp_path, capsys):
        """Plan prints the first request built from the configured initial offset."""
        assert main(["--state-dir", str(tmp_path / "s"), "plan", str(config_file)]) == 0
        out = capsys.readouterr().out
        assert "shop.orders (offset_limit)" in out
        assert "GET https://api.example.com/v1/orders?offset=0&limit=50" in out
        assert "60000 ms" in out

    def test_plan_resumes_stored_offset(self, config_file, tmp_path, capsys):
        """Plan picks up a committed offset from the state directory."""
        state_dir = tmp_path / "s"
        FileOffsetStore(state_dir).save(PARTITION, {"offset": "150"})
        assert main(["--state-dir", str(state_dir), "plan", str(config_file)]) == 0
        assert "offset=150&limit=50" in capsys.readouterr().out

    def test_list_and_show(self, tmp_path, capsys):
        """Stored offsets are listed and shown; an unknown partition fails."""
        state_dir = tmp_path / "s"
        assert main(["--state-dir", str(state_dir), "offsets", "list"]) == 0
        assert "No stored offsets" in capsys.readouterr().out

        FileOffsetStore(state_dir).save(PARTITION, {"offset": "150"})
        assert main(["--state-dir", str(state_dir), "offsets", "list"]) == 0
        assert f"{PARTITION}\t150" in capsys.readouterr().out

        assert main(["--state-dir", str(state_dir), "offsets", "show", PARTITION]) == 0
        assert '"offset": "150"' in capsys.readouterr().out

        assert main(["--state-dir", str(state_dir), "offsets", "show", "https://nowhere"]) == 1

    def test_reset(self, config_file, tmp_path, capsys):
        """Reset removes the stored offset for a source."""
        state_dir = tmp_path / "s"
        FileOffsetStore(state_dir).save(PARTITION, {"offset": "150"})
        assert main(["--state-dir", str(state_dir), "offsets", "reset", str(config_file), "shop.orders"]) == 0
        assert "Reset shop.orders" in capsys.readouterr().out
        assert FileOffsetStore(state_dir).load(PARTITION) is None

    def test_unknown_source_fails(self, config_file, tmp_path):
        """Resetting a source that is not configured returns 1."""
        assert main(["--state-dir", str(tmp_path / "s"), "offsets", "reset", str(config_file), "nope"]) == 1

    def test_missing_config_fails(self, tmp_path):
        """A missing config file returns 1."""
        assert main(["--state-dir", str(tmp_path / "s"), "plan", str(tmp_path / "missing.yaml")]) == 1
