"""Offset managers: one state machine per pagination protocol.

Every manager exposes the same contract:

- ``initialize(restored_offset, configured_initial_offset)`` seeds the
  state, a restored offset always winning over the configured one
- ``build_next_request_url(state, base_path_template)`` renders the path
  (and query) of the next request from the state alone
- ``update_from_response(state, response)`` returns the next state; an
  absent continuation field means "no more pages", never an error
- ``has_more_pages(state)`` and ``reset_offset()``

Managers hold only static configuration. The state they produce is a
frozen ``PaginationState`` owned by the caller's polling loop, so one
manager instance never carries per-cycle data between calls.

Typical API patterns handled here:
    SIMPLE_INCREMENTING  GET /items?page=1, /items?page=2, ...
    OFFSET_LIMIT         GET /items?offset=0&limit=100, offset=100, ...
    CURSOR               GET /items -> {"next_cursor": "abc"} -> /items?cursor=abc
    LINK_HEADER          Link: <https://api/items?page=2>; rel="next"
    TIMESTAMP            GET /items?since=<last record's updated_at>
    SNAPSHOT             GET /items every poll, records up to the last seen id dropped
OData lives in ``pollers.lib.odata``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Type

from pollers.lib.config import SourceConfig
from pollers.lib.errors import ConfigurationError
from pollers.lib.json_pointer import resolve_scalar
from pollers.lib.request import append_query_param
from pollers.lib.response import ApiResponse
from pollers.lib.state import LinkKind, PaginationKind, PaginationState
from pollers.lib.templates import TemplateVariableReplacer

logger = logging.getLogger(__name__)

__all__ = [
    "OffsetManager",
    "FieldOffsetManager",
    "SimpleIncrementingOffsetManager",
    "CursorPaginationOffsetManager",
    "LinkHeaderOffsetManager",
    "TimestampOffsetManager",
    "SnapshotOffsetManager",
    "compare_offsets",
    "build_offset_manager",
    "inject_variable",
]

_replacer = TemplateVariableReplacer()

# Offset tuple returned by extractors: (new offset value, has more pages)
Continuation = Tuple[Optional[str], bool]


def inject_variable(template: str, name: str, param: Optional[str], value: str) -> str:
    """Put ``value`` into the request path.

    A ``${name}`` token in the template takes the value verbatim; otherwise
    it is appended as the URL-encoded query parameter ``param``.
    """
    token = "${" + name + "}"
    if token in template:
        return _replacer.replace(template, {name: value}) or template
    if param:
        return append_query_param(template, param, value)
    return template


class OffsetManager(ABC):
    """Base class for pagination offset managers."""

    kind: PaginationKind

    def __init__(self, config: SourceConfig) -> None:
        if config.kind is not self.kind:
            raise ConfigurationError(
                f"{type(self).__name__} cannot manage {config.kind.value} pagination",
                source_id=config.source_id,
                field="kind",
                value=config.kind.value,
            )
        self.config = config
        self.source_id = config.source_id
        self.initial_offset = config.initial_offset
        self._check_config()
        logger.debug(
            "Initialized %s for %s (initial offset: %s)",
            type(self).__name__,
            self.source_id,
            self.initial_offset,
        )

    def _check_config(self) -> None:
        """Raise ConfigurationError for settings this kind cannot run without."""

    def initialize(
        self,
        restored_offset: Optional[str],
        configured_initial_offset: Optional[str] = None,
    ) -> PaginationState:
        """Seed the state at source start.

        A restored offset takes precedence over the configured initial
        offset. A restored continuation is followed immediately.
        """
        if configured_initial_offset is None:
            configured_initial_offset = self.initial_offset

        if restored_offset is not None and str(restored_offset).strip():
            logger.info("Resuming %s from stored offset: %s", self.source_id, restored_offset)
            return PaginationState(kind=self.kind, offset_value=str(restored_offset), has_more=True)

        logger.debug("Using initial offset for %s: %s", self.source_id, configured_initial_offset)
        return PaginationState(kind=self.kind, offset_value=configured_initial_offset)

    @abstractmethod
    def build_next_request_url(
        self,
        state: PaginationState,
        base_path_template: Optional[str] = None,
    ) -> str:
        """Path (and query) of the next request."""
        ...

    @abstractmethod
    def update_from_response(self, state: PaginationState, response: ApiResponse) -> PaginationState:
        """State for the next cycle given the response to the current one."""
        ...

    def has_more_pages(self, state: PaginationState) -> bool:
        return state.has_more

    def reset_offset(self) -> PaginationState:
        """Return to the configured initial offset (administrative use)."""
        logger.info("Reset offset for %s to initial value: %s", self.source_id, self.initial_offset)
        return PaginationState(kind=self.kind, offset_value=self.initial_offset, link_kind=LinkKind.UNKNOWN)

    def replays_full_request(self, state: PaginationState) -> bool:
        """True when the next path already carries its complete query."""
        return False

    def request_offset(self, state: PaginationState) -> Optional[str]:
        """Value bound to ${offset} when rendering the next request."""
        return state.offset_value

    def should_process_record(self, state: PaginationState, record: Any) -> bool:
        """False for records the caller has already received."""
        return True

    def _template(self, base_path_template: Optional[str]) -> str:
        if base_path_template is None:
            return self.config.path
        return base_path_template


class FieldOffsetManager(OffsetManager):
    """Extract one scalar from the response and substitute it next time.

    Subclasses only decide where the value comes from (``_continuation``)
    and which static parameters ride along (``_static_params``).
    """

    def build_next_request_url(
        self,
        state: PaginationState,
        base_path_template: Optional[str] = None,
    ) -> str:
        path = self._template(base_path_template)
        if state.offset_value is not None:
            path = inject_variable(path, "offset", self.config.offset_param, state.offset_value)
        for name, (param, value) in self._static_params().items():
            path = inject_variable(path, name, param, value)
        return path

    def update_from_response(self, state: PaginationState, response: ApiResponse) -> PaginationState:
        offset_value, has_more = self._continuation(state, response)
        new_state = state.advance(offset_value, has_more=has_more)
        logger.debug("Updated %s: %s -> %s", self.source_id, state.describe(), new_state.describe())
        return new_state

    def _static_params(self) -> Dict[str, Tuple[Optional[str], str]]:
        """Template variable -> (query param, value) applied to every request."""
        return {}

    def _records(self, response: ApiResponse) -> list:
        return response.records(self.config.records_pointer)

    @abstractmethod
    def _continuation(self, state: PaginationState, response: ApiResponse) -> Continuation:
        ...


class SimpleIncrementingOffsetManager(FieldOffsetManager):
    """Counter that moves forward by one per non-empty page.

    When ``offset_pointer`` is configured the counter is read from the
    response body instead and carried forward verbatim. An empty page
    keeps the counter where it is, so the same page is asked for again on
    the next scheduled poll.
    """

    kind = PaginationKind.SIMPLE_INCREMENTING

    def _continuation(self, state: PaginationState, response: ApiResponse) -> Continuation:
        current = state.offset_value if state.offset_value is not None else self.initial_offset
        records = self._records(response)

        if self.config.offset_pointer:
            value = resolve_scalar(response.body, self.config.offset_pointer)
            if value is None:
                return current, False
            return value, bool(records)

        if not records:
            return current, False

        try:
            return str(int(current or "0") + 1), True
        except ValueError:
            logger.warning(
                "Offset for %s is not an integer (%r); keeping it unchanged",
                self.source_id,
                current,
            )
            return current, False


class CursorPaginationOffsetManager(FieldOffsetManager):
    """Offset/limit and opaque-cursor pagination.

    OFFSET_LIMIT advances the offset by the number of records received
    (or takes ``offset_pointer`` from the body verbatim) and re-applies
    the page size as the limit parameter on every request. A short page
    means the stream is caught up; the offset is kept for the next poll.

    CURSOR reads ``next_page_pointer`` from the body. An absent cursor
    ends pagination and clears the offset, so the next scheduled poll
    starts again from the base request.
    """

    kind = PaginationKind.CURSOR

    def __init__(self, config: SourceConfig) -> None:
        if config.kind in (PaginationKind.OFFSET_LIMIT, PaginationKind.CURSOR):
            self.kind = config.kind
        super().__init__(config)

    def _check_config(self) -> None:
        if self.kind is PaginationKind.CURSOR and not self.config.next_page_pointer:
            raise ConfigurationError(
                "next_page_pointer must be configured for cursor pagination",
                source_id=self.source_id,
                field="next_page_pointer",
            )
        if self.kind is PaginationKind.OFFSET_LIMIT and self.config.page_size <= 0:
            raise ConfigurationError(
                "page_size must be positive for offset_limit pagination",
                source_id=self.source_id,
                field="page_size",
                value=self.config.page_size,
            )

    def _static_params(self) -> Dict[str, Tuple[Optional[str], str]]:
        if self.kind is PaginationKind.OFFSET_LIMIT:
            return {"limit": (self.config.limit_param, str(self.config.page_size))}
        return {}

    def _continuation(self, state: PaginationState, response: ApiResponse) -> Continuation:
        if self.kind is PaginationKind.CURSOR:
            cursor = resolve_scalar(response.body, self.config.next_page_pointer)
            if cursor is None:
                logger.debug("No cursor in response for %s, end of pagination", self.source_id)
            return cursor, cursor is not None

        current = state.offset_value if state.offset_value is not None else self.initial_offset
        records = self._records(response)

        if self.config.offset_pointer:
            value = resolve_scalar(response.body, self.config.offset_pointer)
            if value is None or not records:
                return current, False
            return value, True

        if not records:
            return current, False

        try:
            next_offset = int(current or "0") + len(records)
        except ValueError:
            logger.warning(
                "Offset for %s is not an integer (%r); keeping it unchanged",
                self.source_id,
                current,
            )
            return current, False
        return str(next_offset), len(records) >= self.config.page_size


class LinkHeaderOffsetManager(FieldOffsetManager):
    """Follows the ``rel="next"`` URL of the RFC 5988 ``Link`` header.

    The next URL is stored verbatim and replayed as-is, since it already
    carries every query parameter the server wants back.
    """

    kind = PaginationKind.LINK_HEADER

    def build_next_request_url(
        self,
        state: PaginationState,
        base_path_template: Optional[str] = None,
    ) -> str:
        if state.offset_value:
            return state.offset_value
        return self._template(base_path_template)

    def replays_full_request(self, state: PaginationState) -> bool:
        return bool(state.offset_value)

    def _continuation(self, state: PaginationState, response: ApiResponse) -> Continuation:
        next_url = response.links.get("next")
        if not next_url:
            logger.debug("No rel=\"next\" link for %s, end of pagination", self.source_id)
            return None, False
        return next_url, True


class TimestampOffsetManager(FieldOffsetManager):
    """Watermark taken from the last record of each page.

    The value at ``offset_pointer`` in the last record becomes the next
    ``since`` parameter. An empty page, a record without the field, or a
    watermark that did not move keeps the current value and ends the
    drain; the watermark is never reset by normal polling.
    """

    kind = PaginationKind.TIMESTAMP

    def _check_config(self) -> None:
        if not self.config.offset_pointer:
            raise ConfigurationError(
                "offset_pointer must be configured for timestamp pagination",
                source_id=self.source_id,
                field="offset_pointer",
            )

    def _continuation(self, state: PaginationState, response: ApiResponse) -> Continuation:
        current = state.offset_value
        records = self._records(response)
        if not records:
            return current, False

        value = resolve_scalar(records[-1], self.config.offset_pointer)
        if value is None:
            logger.debug("Last record for %s has no %s", self.source_id, self.config.offset_pointer)
            return current, False
        if value == current:
            return current, False
        return value, True


def compare_offsets(left: str, right: str) -> int:
    """Order two offset values: -1, 0 or 1.

    Integers compare numerically when ``right`` (the stored offset) is an
    integer; anything else falls back to plain string ordering.
    """
    left, right = left.strip(), right.strip()
    try:
        right_number = int(right)
    except ValueError:
        right_number = None

    if right_number is not None:
        try:
            left_number = int(left)
        except ValueError:
            logger.warning("Offset %r is not numeric, falling back to string comparison", left)
        else:
            return (left_number > right_number) - (left_number < right_number)

    return (left > right) - (left < right)


class SnapshotOffsetManager(OffsetManager):
    """Static URL that returns a growing snapshot of records.

    Every poll sends the same request. The offset is the highest
    ``offset_pointer`` value seen in any record, and records at or below
    it are filtered out so a record is delivered once even though the API
    keeps returning it. ``${offset}`` is never bound in the request.
    """

    kind = PaginationKind.SNAPSHOT

    def _check_config(self) -> None:
        if not self.config.offset_pointer:
            raise ConfigurationError(
                "offset_pointer must be configured for snapshot pagination",
                source_id=self.source_id,
                field="offset_pointer",
            )

    def build_next_request_url(
        self,
        state: PaginationState,
        base_path_template: Optional[str] = None,
    ) -> str:
        return self._template(base_path_template)

    def request_offset(self, state: PaginationState) -> Optional[str]:
        return None

    def record_offset(self, record: Any) -> Optional[str]:
        return resolve_scalar(record, self.config.offset_pointer)

    def should_process_record(self, state: PaginationState, record: Any) -> bool:
        value = self.record_offset(record)
        if value is None or not state.offset_value:
            return True
        return compare_offsets(value, state.offset_value) > 0

    def update_from_response(self, state: PaginationState, response: ApiResponse) -> PaginationState:
        last = state.offset_value
        for record in response.records(self.config.records_pointer):
            value = self.record_offset(record)
            if value is None:
                continue
            if not last or compare_offsets(value, last) > 0:
                last = value
        if last != state.offset_value:
            logger.debug("Last processed offset for %s: %s -> %s", self.source_id, state.offset_value, last)
        return state.advance(last, has_more=False)


def _manager_classes() -> Dict[PaginationKind, Type[OffsetManager]]:
    from pollers.lib.odata import ODataOffsetManager

    return {
        PaginationKind.SIMPLE_INCREMENTING: SimpleIncrementingOffsetManager,
        PaginationKind.OFFSET_LIMIT: CursorPaginationOffsetManager,
        PaginationKind.CURSOR: CursorPaginationOffsetManager,
        PaginationKind.LINK_HEADER: LinkHeaderOffsetManager,
        PaginationKind.TIMESTAMP: TimestampOffsetManager,
        PaginationKind.ODATA: ODataOffsetManager,
        PaginationKind.SNAPSHOT: SnapshotOffsetManager,
    }


def build_offset_manager(config: SourceConfig) -> OffsetManager:
    """Create the manager for a source's pagination kind.

    Raises:
        ConfigurationError: If the kind is unsupported or its required
            settings are missing
    """
    classes = _manager_classes()
    manager_class = classes.get(config.kind)
    if manager_class is None:
        raise ConfigurationError(
            f"Unsupported pagination kind: {config.kind}",
            source_id=config.source_id,
            field="kind",
            value=config.kind,
        )
    logger.info("Creating offset manager for %s with kind: %s", config.source_id, config.kind.value)
    return manager_class(config)
