"""Poll cadence that depends on the kind of continuation held.

A next link is usually the middle of a burst of pages that should drain
quickly; a delta link means the source is caught up and can be polled
sparsely. Only OData sources make that distinction, every other kind
always uses the standard interval. A missing override falls back to the
standard interval, never to zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pollers.lib.config import SourceConfig
from pollers.lib.state import LinkKind, PaginationKind, PaginationState

logger = logging.getLogger(__name__)

__all__ = ["PollIntervalSelector", "select_poll_interval"]


def select_poll_interval(
    state: PaginationState,
    standard_interval_ms: int,
    nextlink_interval_ms: Optional[int] = None,
    deltalink_interval_ms: Optional[int] = None,
) -> int:
    """Milliseconds to wait before the next request for this state.

    Example:
        >>> s = PaginationState(PaginationKind.ODATA, "x", LinkKind.DELTALINK, True)
        >>> select_poll_interval(s, 60_000, 5_000, 300_000)
        300000
    """
    if state.kind is not PaginationKind.ODATA:
        return standard_interval_ms

    if state.link_kind is LinkKind.NEXTLINK and nextlink_interval_ms is not None:
        return nextlink_interval_ms
    if state.link_kind is LinkKind.DELTALINK and deltalink_interval_ms is not None:
        return deltalink_interval_ms
    return standard_interval_ms


@dataclass(frozen=True)
class PollIntervalSelector:
    """``select_poll_interval`` bound to one source's configured intervals."""

    standard_interval_ms: int
    nextlink_interval_ms: Optional[int] = None
    deltalink_interval_ms: Optional[int] = None

    @classmethod
    def from_config(cls, config: SourceConfig) -> "PollIntervalSelector":
        return cls(
            standard_interval_ms=config.request_interval_ms,
            nextlink_interval_ms=config.nextlink_interval_ms,
            deltalink_interval_ms=config.deltalink_interval_ms,
        )

    def select(self, state: PaginationState) -> int:
        interval = select_poll_interval(
            state,
            self.standard_interval_ms,
            self.nextlink_interval_ms,
            self.deltalink_interval_ms,
        )
        logger.debug("Poll interval %d ms for %s", interval, state.describe())
        return interval

    def select_seconds(self, state: PaginationState) -> float:
        return self.select(state) / 1000.0
