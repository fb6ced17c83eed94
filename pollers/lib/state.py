"""Pagination state for one API source.

``PaginationState`` is the unit of durability: it records where a source
is in its API's result stream. Instances are frozen; every polling cycle
produces a new one, so a cycle either fully applies or leaves the prior
state as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "PaginationKind",
    "LinkKind",
    "TokenMode",
    "PaginationState",
]


class PaginationKind(Enum):
    """Supported pagination protocols."""

    SIMPLE_INCREMENTING = "simple_incrementing"
    OFFSET_LIMIT = "offset_limit"
    CURSOR = "cursor"
    LINK_HEADER = "link_header"
    TIMESTAMP = "timestamp"
    ODATA = "odata"
    SNAPSHOT = "snapshot"


class LinkKind(Enum):
    """Which OData continuation link produced the current offset."""

    NEXTLINK = "nextlink"
    DELTALINK = "deltalink"
    UNKNOWN = "unknown"


class TokenMode(Enum):
    """How an OData continuation URL is stored.

    FULL_URL keeps the path and query of the link; TOKEN_ONLY keeps only
    the decoded value of the skip/delta token parameter.
    """

    FULL_URL = "full_url"
    TOKEN_ONLY = "token_only"


@dataclass(frozen=True)
class PaginationState:
    """Where a source is in its result stream.

    ``offset_value is None`` together with ``has_more is False`` means the
    stream is exhausted for this cycle and the next scheduled poll starts
    from the base request.
    """

    kind: PaginationKind
    offset_value: Optional[str] = None
    link_kind: LinkKind = LinkKind.UNKNOWN
    has_more: bool = False

    @property
    def exhausted(self) -> bool:
        return self.offset_value is None and not self.has_more

    def advance(
        self,
        offset_value: Optional[str],
        *,
        has_more: bool,
        link_kind: LinkKind = LinkKind.UNKNOWN,
    ) -> "PaginationState":
        """Return the state for the next cycle."""
        return replace(
            self,
            offset_value=offset_value,
            has_more=has_more,
            link_kind=link_kind,
        )

    def describe(self) -> str:
        """Short human-readable form for log lines."""
        if self.offset_value is None:
            position = "base request"
        elif len(self.offset_value) > 40:
            position = f"offset={self.offset_value[:40]}..."
        else:
            position = f"offset={self.offset_value}"
        if self.kind is PaginationKind.ODATA:
            position = f"{position}, link={self.link_kind.value}"
        more = "more pages" if self.has_more else "caught up"
        return f"({self.kind.value}: {position}, {more})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "offset": self.offset_value,
            "link_kind": self.link_kind.value,
            "has_more": self.has_more,
        }
