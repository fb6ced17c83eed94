"""One source's polling loop, minus the transport.

``SourcePoller`` owns exactly one offset manager and one pagination
state. It renders requests, folds responses into the state and commits
offsets, but never performs I/O itself: the caller supplies a ``fetch``
callable (request -> ``ApiResponse``) and decides when records are
durably delivered.

Example:
    poller = SourcePoller(config, FileOffsetStore())

    def fetch(request):
        response = client.request(request.method, request.url, headers=request.headers)
        response.raise_for_status()
        return ApiResponse.from_httpx(response)

    while True:
        poller.drain(fetch, emit=write_records)
        time.sleep(poller.next_delay_seconds())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pollers.lib.config import SourceConfig
from pollers.lib.interval import PollIntervalSelector
from pollers.lib.logging import get_source_logger
from pollers.lib.pagination import OffsetManager, build_offset_manager
from pollers.lib.request import RenderedRequest, RequestTemplate
from pollers.lib.response import ApiResponse
from pollers.lib.state import LinkKind, PaginationState
from pollers.lib.state_store import MemoryOffsetStore, OffsetPersistenceAdapter, OffsetStore

__all__ = ["SourcePoller", "CycleResult", "DrainSummary"]

FetchFn = Callable[[RenderedRequest], ApiResponse]
EmitFn = Callable[[List[Any], PaginationState], None]


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one request/response cycle."""

    request: RenderedRequest
    records: List[Any]
    previous_state: PaginationState
    state: PaginationState
    interval_ms: int

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    @property
    def stalled(self) -> bool:
        """More pages announced, but the continuation did not move."""
        return self.state.has_more and self.state == self.previous_state


@dataclass
class DrainSummary:
    """What a ``drain`` call did."""

    pages: int = 0
    records: int = 0
    max_pages_hit: bool = False
    stalled: bool = False
    cycles: List[CycleResult] = field(default_factory=list)


class SourcePoller:
    """Polling loop state for a single API source."""

    def __init__(
        self,
        config: SourceConfig,
        store: Optional[OffsetStore] = None,
        *,
        manager: Optional[OffsetManager] = None,
    ) -> None:
        self.config = config
        self.manager = manager or build_offset_manager(config)
        self.persistence = OffsetPersistenceAdapter(store or MemoryOffsetStore())
        self.intervals = PollIntervalSelector.from_config(config)
        self.template = RequestTemplate(
            base_url=config.base_url,
            parameters=dict(config.parameters),
            headers=dict(config.headers),
            body=config.body,
            method=config.method,
        )
        self.partition = config.source_partition
        self.log = get_source_logger(__name__, config.source_id, kind=config.kind.value)

        restored = self.persistence.restore(self.partition)
        self.state = self.manager.initialize(restored, config.initial_offset)
        self._committed = self.state
        self.log.info("Starting at %s", self.state.describe())

    @property
    def committed_state(self) -> PaginationState:
        return self._committed

    def _variables(self) -> Dict[str, str]:
        variables = {
            "source_id": self.config.source_id,
            "limit": str(self.config.page_size),
        }
        offset = self.manager.request_offset(self.state)
        if offset is not None:
            variables["offset"] = offset
        return variables

    def next_request(self) -> RenderedRequest:
        """Render the request the current state asks for."""
        path = self.manager.build_next_request_url(self.state)
        return self.template.render(
            path,
            self._variables(),
            include_parameters=not self.manager.replays_full_request(self.state),
        )

    def process(self, request: RenderedRequest, response: ApiResponse) -> CycleResult:
        """Fold a response into the state and return the cycle's outcome."""
        records = [
            record
            for record in response.records(self.config.records_pointer)
            if self.manager.should_process_record(self.state, record)
        ]
        new_state = self.manager.update_from_response(self.state, response)
        result = CycleResult(
            request=request,
            records=records,
            previous_state=self.state,
            state=new_state,
            interval_ms=self.intervals.select(new_state),
        )
        self.state = new_state
        self.log.debug("Fetched %d records, now %s", len(records), new_state.describe())
        return result

    def poll_once(self, fetch: FetchFn) -> CycleResult:
        """Issue one request through ``fetch`` and process the response.

        Exceptions from ``fetch`` propagate unchanged and leave the state
        untouched; retrying is the fetch layer's job.
        """
        request = self.next_request()
        self.log.debug("Requesting %s %s", request.method, request.url)
        response = fetch(request)
        return self.process(request, response)

    def commit(self, result: CycleResult) -> None:
        """Persist the offset of ``result`` once its records are delivered."""
        self.persistence.commit(self.partition, result.state)
        self._committed = result.state

    def rollback(self) -> PaginationState:
        """Forget uncommitted progress, e.g. after a failed delivery."""
        if self.state != self._committed:
            self.log.warning(
                "Rolling back from %s to last committed %s",
                self.state.describe(),
                self._committed.describe(),
            )
        self.state = self._committed
        return self.state

    def drain(
        self,
        fetch: FetchFn,
        emit: Optional[EmitFn] = None,
        *,
        max_pages: Optional[int] = None,
    ) -> DrainSummary:
        """Poll until the source is caught up, committing after each page.

        ``emit`` receives each page's records and the state they belong to;
        the offset is committed only after it returns. If ``emit`` raises,
        the uncommitted state is rolled back and the error propagates.
        A page whose continuation equals the one it was fetched with ends the
        drain with a warning instead of fetching the same page again.
        """
        summary = DrainSummary()

        while True:
            if max_pages is not None and summary.pages >= max_pages:
                summary.max_pages_hit = True
                self.log.info("Reached max_pages limit of %d", max_pages)
                break

            result = self.poll_once(fetch)
            summary.pages += 1
            summary.records += len(result.records)
            summary.cycles.append(result)

            if emit is not None:
                try:
                    emit(result.records, result.state)
                except Exception:
                    self.rollback()
                    raise
            self.commit(result)

            if result.stalled:
                summary.stalled = True
                self.log.warning(
                    "Continuation did not advance (%s); stopping until the next poll",
                    result.state.describe(),
                )
                break

            # A delta link is followed on the next scheduled poll, not in this drain
            if not result.has_more or result.state.link_kind is LinkKind.DELTALINK:
                break

        self.log.info(
            "Drained %d records in %d pages, next poll in %d ms",
            summary.records,
            summary.pages,
            self.intervals.select(self.state),
        )
        return summary

    def reset(self) -> PaginationState:
        """Administrative reset: initial offset, stored offset removed."""
        self.state = self.manager.reset_offset()
        self._committed = self.state
        self.persistence.clear(self.partition)
        return self.state

    def next_delay_ms(self) -> int:
        return self.intervals.select(self.state)

    def next_delay_seconds(self) -> float:
        return self.intervals.select_seconds(self.state)
