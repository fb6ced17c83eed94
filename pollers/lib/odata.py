"""OData pagination: ``@odata.nextLink`` / ``@odata.deltaLink``.

Each cycle the response is checked in a fixed order:

1. a non-empty next link    -> NEXTLINK, more pages follow immediately
2. else a non-empty delta link -> DELTALINK, the stream is caught up and
   the link is the starting point for incremental changes
3. else                      -> UNKNOWN, offset cleared, no more pages

Example response:
    {
      "value": [...],
      "@odata.nextLink": "https://org/api/data/v9.0/accounts?$select=name&$skiptoken=..."
    }

The continuation URL is stored in one of two ways (``TokenMode``):

FULL_URL keeps the path and query exactly as received (scheme and host
are dropped; the base URL is supplied again on replay). A link that does
not parse as an absolute URL is stored unchanged.

TOKEN_ONLY keeps only the URL-decoded value of the ``$skiptoken`` or
``$deltatoken`` parameter (names configurable) and re-attaches it to the
configured base path. The parameter used on replay follows the link kind
that produced the token. Note the asymmetry: FULL_URL stores the query
still encoded, TOKEN_ONLY stores the token decoded and replays it as-is.
Downstream consumers depend on this, so it is kept.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional, Pattern
from urllib.parse import unquote, urlsplit

from pollers.lib.config import SourceConfig
from pollers.lib.errors import ConfigurationError
from pollers.lib.json_pointer import resolve_scalar
from pollers.lib.pagination import OffsetManager
from pollers.lib.request import append_query_param
from pollers.lib.response import ApiResponse
from pollers.lib.state import LinkKind, PaginationKind, PaginationState, TokenMode

logger = logging.getLogger(__name__)

__all__ = ["ODataOffsetManager", "extract_path_and_query", "extract_token"]


@lru_cache(maxsize=64)
def _token_pattern(param: str) -> Pattern[str]:
    return re.compile(r"(?:^|[?&])" + re.escape(param) + r"=([^&#]*)")


def extract_path_and_query(link: str) -> Optional[str]:
    """Path plus raw query of an absolute http(s) URL, or None if unparsable.

    Example:
        >>> extract_path_and_query("https://x.com/api/accounts?$skiptoken=abc")
        '/api/accounts?$skiptoken=abc'
    """
    try:
        parts = urlsplit(link)
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path or "/"
    if parts.query:
        return f"{path}?{parts.query}"
    return path


def extract_token(link: str, param: str) -> Optional[str]:
    """URL-decoded value of query parameter ``param`` in ``link``, or None."""
    query = link.split("?", 1)[1] if "?" in link else link
    match = _token_pattern(param).search(query)
    if match is None or not match.group(1):
        return None
    return unquote(match.group(1))


class ODataOffsetManager(OffsetManager):
    """Offset manager for OData next/delta link pagination."""

    kind = PaginationKind.ODATA

    def _check_config(self) -> None:
        config = self.config
        if not (config.odata_nextlink_field or "").strip():
            raise ConfigurationError(
                "odata_nextlink_field must be configured for odata pagination",
                source_id=self.source_id,
                field="odata_nextlink_field",
            )
        self.nextlink_field = config.odata_nextlink_field.strip()
        self.deltalink_field = (config.odata_deltalink_field or "").strip() or None
        self.token_mode = config.token_mode
        self.skip_token_param = config.skip_token_param
        self.delta_token_param = config.delta_token_param
        logger.debug(
            "OData settings for %s: nextLink=%s deltaLink=%s mode=%s skip=%s delta=%s",
            self.source_id,
            self.nextlink_field,
            self.deltalink_field,
            self.token_mode.value,
            self.skip_token_param,
            self.delta_token_param,
        )

    def update_from_response(self, state: PaginationState, response: ApiResponse) -> PaginationState:
        next_link = resolve_scalar(response.body, self.nextlink_field)
        if next_link:
            logger.debug("Found nextLink for %s: %s", self.source_id, next_link)
            return self.update_offset(state, next_link, LinkKind.NEXTLINK)

        if self.deltalink_field:
            delta_link = resolve_scalar(response.body, self.deltalink_field)
            if delta_link:
                logger.debug("Found deltaLink for %s: %s", self.source_id, delta_link)
                return self.update_offset(state, delta_link, LinkKind.DELTALINK)

        logger.debug("No pagination links in response for %s", self.source_id)
        return self.update_offset(state, None)

    def update_offset(
        self,
        state: PaginationState,
        link: Optional[str],
        link_kind: LinkKind = LinkKind.NEXTLINK,
    ) -> PaginationState:
        """Store a continuation link according to the token mode.

        A missing or blank link, or a TOKEN_ONLY link without a token
        parameter, ends pagination for the cycle.
        """
        link = (link or "").strip()
        if not link:
            return state.advance(None, has_more=False, link_kind=LinkKind.UNKNOWN)

        if self.token_mode is TokenMode.TOKEN_ONLY:
            token = self._extract_token_only(link, link_kind)
            if token is None:
                logger.warning(
                    "No %s or %s in %s link for %s; treating as end of pagination",
                    self.skip_token_param,
                    self.delta_token_param,
                    link_kind.value,
                    self.source_id,
                )
                return state.advance(None, has_more=False, link_kind=LinkKind.UNKNOWN)
            return state.advance(token, has_more=True, link_kind=link_kind)

        path = extract_path_and_query(link)
        if path is None:
            logger.warning("Failed to parse OData URL for %s: %s, using as-is", self.source_id, link)
            path = link
        return state.advance(path, has_more=True, link_kind=link_kind)

    def _extract_token_only(self, link: str, link_kind: LinkKind) -> Optional[str]:
        # Look for the parameter matching the link first, then the other one
        if link_kind is LinkKind.DELTALINK:
            params = (self.delta_token_param, self.skip_token_param)
        else:
            params = (self.skip_token_param, self.delta_token_param)
        for param in params:
            token = extract_token(link, param)
            if token is not None:
                return token
        return None

    def build_next_request_url(
        self,
        state: PaginationState,
        base_path_template: Optional[str] = None,
    ) -> str:
        base_path = self._template(base_path_template)
        offset = state.offset_value

        if self.token_mode is TokenMode.FULL_URL:
            if offset:
                return offset
            return self.initial_offset or base_path

        if not offset:
            return base_path
        param = self.token_param_for(state.link_kind)
        return append_query_param(base_path, param, offset, encode=False)

    def token_param_for(self, link_kind: LinkKind) -> str:
        """Query parameter a stored token is replayed under."""
        if link_kind is LinkKind.DELTALINK:
            return self.delta_token_param
        return self.skip_token_param

    def replays_full_request(self, state: PaginationState) -> bool:
        return self.token_mode is TokenMode.FULL_URL and bool(state.offset_value)
