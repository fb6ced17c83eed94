"""Tests for source configuration and YAML loading."""

import textwrap

import pytest

from pollers.lib.config import (
    SourceConfig,
    build_source_config,
    load_sources,
    parse_kind,
    parse_token_mode,
)
from pollers.lib.errors import ConfigurationError, ValidationError
from pollers.lib.state import PaginationKind, TokenMode


class TestParsing:
    """Tests for enum parsing."""

    def test_kind_aliases(self):
        """Kind names are case-insensitive and accept the known aliases."""
        assert parse_kind("odata") is PaginationKind.ODATA
        assert parse_kind("OData-Pagination") is PaginationKind.ODATA
        assert parse_kind("chaining") is PaginationKind.TIMESTAMP
        assert parse_kind("cursor_pagination") is PaginationKind.CURSOR
        assert parse_kind("snapshot_pagination") is PaginationKind.SNAPSHOT
        assert parse_kind(PaginationKind.LINK_HEADER) is PaginationKind.LINK_HEADER

    def test_unknown_kind(self):
        """An unknown kind names the field and lists the valid choices."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_kind("graphql")
        assert exc_info.value.field == "kind"
        assert "Use one of" in str(exc_info.value)

    def test_token_mode(self):
        """Token modes parse by name; anything else is rejected."""
        assert parse_token_mode("TOKEN_ONLY") is TokenMode.TOKEN_ONLY
        with pytest.raises(ConfigurationError):
            parse_token_mode("partial")


class TestSourceConfig:
    """Tests for SourceConfig defaults and validation."""

    def test_defaults(self):
        """A bare source gets simple incrementing pagination from page 0."""
        config = SourceConfig(source_id="s", base_url="https://api.x.com", path="/items")
        assert config.kind is PaginationKind.SIMPLE_INCREMENTING
        assert config.initial_offset == "0"
        assert config.offset_param == "page"
        assert config.request_interval_ms == 60_000
        assert config.method == "GET"
        assert config.source_partition == "https://api.x.com/items"

    def test_default_offset_params(self):
        """The offset parameter defaults depend on the kind."""
        assert SourceConfig("s", "https://a", kind="offset_limit").offset_param == "offset"
        assert SourceConfig("s", "https://a", kind="timestamp", offset_pointer="/t").offset_param == "since"
        assert SourceConfig("s", "https://a", kind="odata").offset_param is None

    def test_initial_offset_stringified(self):
        """Numeric initial offsets are stored as strings."""
        assert SourceConfig("s", "https://a", initial_offset=5).initial_offset == "5"

    def test_collects_all_issues(self):
        """Validation reports every problem at once."""
        with pytest.raises(ValidationError) as exc_info:
            SourceConfig(source_id="", base_url="", kind="cursor", method="DELETE", request_interval_ms=-1)
        issues = exc_info.value.issues
        assert len(issues) == 5
        assert any("source_id" in issue for issue in issues)
        assert any("next_page_pointer" in issue for issue in issues)

    def test_timestamp_requires_pointer(self):
        """Timestamp pagination needs an offset pointer."""
        with pytest.raises(ValidationError, match="offset_pointer"):
            SourceConfig("s", "https://a", kind="timestamp")

    def test_offset_limit_page_size(self):
        """Offset/limit pagination needs a positive page size."""
        with pytest.raises(ValidationError, match="page_size"):
            SourceConfig("s", "https://a", kind="offset_limit", page_size=0)

    def test_invalid_pointer(self):
        """Malformed JSON pointers are rejected."""
        with pytest.raises(ValidationError, match="not a valid JSON pointer"):
            SourceConfig("s", "https://a", kind="cursor", next_page_pointer="/a~2")

    def test_negative_override_interval(self):
        """OData override intervals cannot be negative."""
        with pytest.raises(ValidationError, match="nextlink_interval_ms"):
            SourceConfig("s", "https://a", kind="odata", nextlink_interval_ms=-5)


class TestBuildSourceConfig:
    """Tests for build_source_config."""

    def test_unknown_key_rejected(self):
        """Misspelled options are reported instead of ignored."""
        with pytest.raises(ConfigurationError, match="Unknown source option"):
            build_source_config({"source_id": "s", "base_url": "https://a", "pagesize": 10})

    def test_coerces_values(self):
        """YAML scalars are coerced to the option types."""
        config = build_source_config(
            {
                "source_id": "s",
                "base_url": "https://a",
                "kind": "offset_limit",
                "page_size": "50",
                "request_interval_ms": "1000",
                "nextlink_interval_ms": "",
                "parameters": {"$top": 10},
            }
        )
        assert config.page_size == 50
        assert config.request_interval_ms == 1000
        assert config.nextlink_interval_ms is None
        assert config.parameters == {"$top": "10"}

    def test_bad_interval(self):
        """Non-numeric intervals raise a configuration error."""
        with pytest.raises(ConfigurationError, match="milliseconds"):
            build_source_config({"source_id": "s", "base_url": "https://a", "deltalink_interval_ms": "soon"})


class TestLoadSources:
    """Tests for load_sources."""

    def test_loads_yaml_with_env(self, tmp_path, monkeypatch):
        """Sources load from YAML with .env values expanded."""
        # Registered with monkeypatch so the value loaded from .env is undone
        monkeypatch.setenv("CRM_HOST", "unused")
        monkeypatch.delenv("CRM_HOST")
        (tmp_path / ".env").write_text("CRM_HOST=org.crm.example.com\n", encoding="utf-8")
        config_file = tmp_path / "sources.yaml"
        config_file.write_text(
            textwrap.dedent(
                """
                sources:
                  - source_id: crm.accounts
                    base_url: https://${CRM_HOST}
                    path: /api/data/v9.0/accounts?$select=name
                    kind: odata
                    token_mode: token_only
                    nextlink_interval_ms: 5000
                    deltalink_interval_ms: 300000
                  - source_id: feed.events
                    base_url: https://feed.example.com
                    path: /events?since=${offset}
                    kind: timestamp
                    offset_pointer: /occurred_at
                    initial_offset: "2025-01-01T00:00:00Z"
                """
            ),
            encoding="utf-8",
        )

        accounts, events = load_sources(config_file)
        assert accounts.base_url == "https://org.crm.example.com"
        assert accounts.token_mode is TokenMode.TOKEN_ONLY
        assert accounts.deltalink_interval_ms == 300_000
        assert events.path == "/events?since=${offset}"
        assert events.kind is PaginationKind.TIMESTAMP

    def test_missing_file(self, tmp_path):
        """A missing config file raises a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_sources(tmp_path / "nope.yaml")

    def test_requires_sources_list(self, tmp_path):
        """The document must hold a sources list."""
        config_file = tmp_path / "sources.yaml"
        config_file.write_text("source_id: x\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="sources"):
            load_sources(config_file)

    def test_invalid_yaml(self, tmp_path):
        """Unparseable YAML raises a configuration error."""
        config_file = tmp_path / "sources.yaml"
        config_file.write_text("sources: [\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_sources(config_file)

    def test_duplicate_source_ids(self, tmp_path):
        """Two sources may not share an id."""
        config_file = tmp_path / "sources.yaml"
        config_file.write_text(
            textwrap.dedent(
                """
                sources:
                  - {source_id: a, base_url: "https://a"}
                  - {source_id: a, base_url: "https://b"}
                """
            ),
            encoding="utf-8",
        )
        with pytest.raises(ConfigurationError, match="Duplicate source_id"):
            load_sources(config_file)
