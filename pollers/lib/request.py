"""Request rendering: from a path template to an outgoing URL.

Template variables are replaced on the raw string first and only the
result is parsed as a URL. The reverse order percent-encodes ``${`` and
``}`` during parsing, after which the tokens can no longer be replaced:

    >>> build_request_url("http://host", "/api${offset}", {"offset": "?$top=5"})
    'http://host/api?$top=5'

Requests are rendered unauthenticated; credentials are added later by
the fetch layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from pollers.lib.templates import TemplateVariableReplacer

logger = logging.getLogger(__name__)

__all__ = [
    "join_url",
    "is_absolute_url",
    "append_query_param",
    "build_request_url",
    "RequestTemplate",
    "RenderedRequest",
]

_replacer = TemplateVariableReplacer()


def is_absolute_url(value: str) -> bool:
    return value.lower().startswith(("http://", "https://"))


def join_url(base_url: str, path: Optional[str]) -> str:
    """Join a base URL and a path with exactly one slash between them.

    An absolute ``path`` replaces the base URL entirely.
    """
    path = path or ""
    if is_absolute_url(path):
        return path
    if not path:
        return base_url
    if base_url.endswith("/") and path.startswith("/"):
        return base_url + path[1:]
    if not base_url.endswith("/") and not path.startswith(("/", "?")):
        return f"{base_url}/{path}"
    return base_url + path


def append_query_param(path: str, name: str, value: str, *, encode: bool = True) -> str:
    """Append ``name=value`` to a path, choosing ``?`` or ``&``.

    With ``encode=False`` the value is appended exactly as given.
    """
    if encode:
        value = quote(value, safe="")
    separator = "&" if "?" in path else "?"
    if path.endswith(("?", "&")):
        separator = ""
    return f"{path}{separator}{name}={value}"


def build_request_url(
    base_url: str,
    path: Optional[str],
    variables: Optional[Mapping[str, Any]] = None,
) -> str:
    """Replace template variables, then parse and normalise the URL.

    A string that httpx cannot parse is returned as replaced, with a
    warning, so the fetch layer reports the failure against the real value.
    """
    raw = join_url(base_url, path)
    replaced = _replacer.replace(raw, variables) or raw
    try:
        return str(httpx.URL(replaced))
    except httpx.InvalidURL as exc:
        logger.warning("Could not parse request URL %s: %s", replaced, exc)
        return replaced


@dataclass(frozen=True)
class RenderedRequest:
    """Everything the fetch layer needs to issue one request."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


@dataclass
class RequestTemplate:
    """Static request shape for a source: base URL, params, headers, body."""

    base_url: str
    parameters: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    method: str = "GET"

    def render(
        self,
        path: str,
        variables: Optional[Mapping[str, Any]] = None,
        *,
        include_parameters: bool = True,
    ) -> RenderedRequest:
        """Render the request for ``path``.

        Args:
            path: Path (and query) produced by the offset manager
            variables: Template variables for path, params, headers and body
            include_parameters: False when ``path`` is a replayed
                continuation that already carries its full query
        """
        variables = dict(variables or {})

        if include_parameters:
            for key, value in self.parameters.items():
                value = _replacer.replace(value, variables) or value
                path = append_query_param(path or "", key, value)

        url = build_request_url(self.base_url, path, variables)

        headers = {
            key: _replacer.replace(value, variables) or value
            for key, value in self.headers.items()
        }
        body = _replacer.replace(self.body, variables) if self.body else self.body
        return RenderedRequest(url=url, method=self.method, headers=headers, body=body)
