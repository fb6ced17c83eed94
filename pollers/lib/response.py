"""Already-fetched API responses as seen by the offset managers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from pollers.lib.json_pointer import resolve_pointer

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

__all__ = ["ApiResponse", "parse_link_header", "RECORD_KEYS"]

# Checked in order when no records pointer is configured
RECORD_KEYS = ("value", "items", "data", "results", "records")

# Links are separated by commas that precede the next "<uri>"
LINK_SPLIT_PATTERN = re.compile(r",\s*(?=<)")
LINK_PARAM_PATTERN = re.compile(r';\s*([^\s=;]+)\s*=\s*("[^"]*"|[^;]*)')


def parse_link_header(value: Optional[str]) -> Dict[str, str]:
    """Parse an RFC 5988 ``Link`` header into ``{rel: url}``.

    Every ``;``-separated parameter of a link is read, so ``rel`` may
    appear after ``type``, ``title`` or any other attribute. A ``rel``
    attribute may carry several space-separated relation types; each one
    maps to the same URL. The first URL seen for a relation wins.

    Example:
        >>> parse_link_header('<https://api.x.com/items?page=2>; type="text/json"; rel="next"')
        {'next': 'https://api.x.com/items?page=2'}
    """
    links: Dict[str, str] = {}
    if not value:
        return links
    for link in LINK_SPLIT_PATTERN.split(value.strip()):
        link = link.strip()
        if not link.startswith("<") or ">" not in link:
            continue
        url, params = link[1:].split(">", 1)
        for name, raw in LINK_PARAM_PATTERN.findall(params):
            if name.lower() != "rel":
                continue
            for rel in raw.strip().strip("\"'").split():
                links.setdefault(rel.lower(), url.strip())
    return links


@dataclass(frozen=True)
class ApiResponse:
    """A parsed response body plus its headers."""

    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    status_code: int = 200

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def links(self) -> Dict[str, str]:
        return parse_link_header(self.header("Link"))

    def records(self, pointer: Optional[str] = None) -> List[Any]:
        """Locate the records array in the body.

        Uses ``pointer`` when given; otherwise tries the common envelope
        keys, and finally wraps a single object as a one-record page.
        """
        data = self.body
        if pointer:
            data = resolve_pointer(data, pointer)
            if data is None:
                return []

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            if not data:
                return []
            if not pointer:
                for key in RECORD_KEYS:
                    if isinstance(data.get(key), list):
                        return data[key]
            return [data]
        if data is not None:
            logger.warning("Unexpected records type: %s", type(data).__name__)
        return []

    @classmethod
    def from_httpx(cls, response: "httpx.Response") -> "ApiResponse":
        """Wrap an ``httpx.Response``; non-JSON bodies become the raw text."""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return cls(
            body=body,
            headers=dict(response.headers.items()),
            status_code=response.status_code,
        )
