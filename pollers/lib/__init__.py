"""Poller library modules.

Offset and pagination state engine for polling HTTP APIs: one state
machine per pagination protocol, request rendering, poll cadence and
durable offset storage.
"""

from pollers.lib.config import SourceConfig, build_source_config, load_sources
from pollers.lib.errors import ConfigurationError, PollerError, ValidationError
from pollers.lib.interval import PollIntervalSelector, select_poll_interval
from pollers.lib.json_pointer import resolve_pointer, resolve_scalar
from pollers.lib.odata import ODataOffsetManager
from pollers.lib.pagination import (
    CursorPaginationOffsetManager,
    LinkHeaderOffsetManager,
    OffsetManager,
    SimpleIncrementingOffsetManager,
    SnapshotOffsetManager,
    TimestampOffsetManager,
    build_offset_manager,
)
from pollers.lib.poller import CycleResult, DrainSummary, SourcePoller
from pollers.lib.request import RenderedRequest, RequestTemplate, build_request_url, join_url
from pollers.lib.response import ApiResponse, parse_link_header
from pollers.lib.state import LinkKind, PaginationKind, PaginationState, TokenMode
from pollers.lib.state_store import (
    FileOffsetStore,
    MemoryOffsetStore,
    OffsetPersistenceAdapter,
    OffsetStore,
)
from pollers.lib.templates import TemplateVariableReplacer, expand_env_vars, expand_options

__all__ = [
    # Configuration
    "SourceConfig",
    "build_source_config",
    "load_sources",
    # Errors
    "PollerError",
    "ConfigurationError",
    "ValidationError",
    # State
    "PaginationKind",
    "LinkKind",
    "TokenMode",
    "PaginationState",
    # Offset managers
    "OffsetManager",
    "SimpleIncrementingOffsetManager",
    "CursorPaginationOffsetManager",
    "LinkHeaderOffsetManager",
    "TimestampOffsetManager",
    "SnapshotOffsetManager",
    "ODataOffsetManager",
    "build_offset_manager",
    # Cadence
    "PollIntervalSelector",
    "select_poll_interval",
    # Requests and responses
    "ApiResponse",
    "parse_link_header",
    "RenderedRequest",
    "RequestTemplate",
    "build_request_url",
    "join_url",
    "TemplateVariableReplacer",
    "expand_env_vars",
    "expand_options",
    "resolve_pointer",
    "resolve_scalar",
    # Persistence
    "OffsetStore",
    "MemoryOffsetStore",
    "FileOffsetStore",
    "OffsetPersistenceAdapter",
    # Polling
    "SourcePoller",
    "CycleResult",
    "DrainSummary",
]
