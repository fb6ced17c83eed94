"""Pytest configuration and fixtures."""

from typing import Any, Dict, Optional

import pytest

from pollers.lib.config import SourceConfig
from pollers.lib.response import ApiResponse
from pollers.lib.state import PaginationKind, TokenMode


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Keep every test's offset files out of the working directory."""
    state_dir = tmp_path / "state"
    monkeypatch.setenv("POLLER_STATE_DIR", str(state_dir))
    return state_dir


@pytest.fixture
def make_config():
    """Factory for SourceConfig with sensible test defaults."""

    def _make(kind: PaginationKind = PaginationKind.SIMPLE_INCREMENTING, **overrides: Any) -> SourceConfig:
        values: Dict[str, Any] = {
            "source_id": "test.items",
            "base_url": "https://api.example.com",
            "path": "/v1/items",
            "kind": kind,
        }
        values.update(overrides)
        return SourceConfig(**values)

    return _make


@pytest.fixture
def odata_config(make_config):
    """Factory for OData sources on the accounts endpoint."""

    def _make(token_mode: TokenMode = TokenMode.FULL_URL, **overrides: Any) -> SourceConfig:
        values: Dict[str, Any] = {
            "base_url": "https://x.com",
            "path": "/api/accounts?$select=name",
            "token_mode": token_mode,
        }
        values.update(overrides)
        return make_config(PaginationKind.ODATA, **values)

    return _make


def response(body: Any = None, headers: Optional[Dict[str, str]] = None) -> ApiResponse:
    """Shorthand for an ApiResponse in tests."""
    return ApiResponse(body=body if body is not None else {}, headers=headers or {})
