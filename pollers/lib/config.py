"""Static configuration for polled API sources.

Sources can be declared in Python:

    from pollers.lib.config import SourceConfig
    from pollers.lib.state import PaginationKind, TokenMode

    accounts = SourceConfig(
        source_id="crm.accounts",
        base_url="https://org.crm.dynamics.com",
        path="/api/data/v9.0/accounts?$select=name",
        kind=PaginationKind.ODATA,
        token_mode=TokenMode.TOKEN_ONLY,
        nextlink_interval_ms=5_000,
        deltalink_interval_ms=300_000,
    )

or in YAML, loaded with ``load_sources``:

    sources:
      - source_id: github.issues
        base_url: https://api.github.com
        path: /repos/${GITHUB_REPO}/issues
        kind: link_header
        headers:
          Accept: application/vnd.github+json

``${VAR}`` references are expanded from the environment (and a ``.env``
file next to the YAML) at load time, except reserved request-time
variables such as ``${offset}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from pollers.lib.errors import ConfigurationError, ValidationError
from pollers.lib.json_pointer import is_valid_pointer
from pollers.lib.request import join_url
from pollers.lib.state import PaginationKind, TokenMode
from pollers.lib.templates import expand_options

logger = logging.getLogger(__name__)

__all__ = [
    "SourceConfig",
    "build_source_config",
    "load_sources",
    "parse_kind",
    "parse_token_mode",
]

DEFAULT_REQUEST_INTERVAL_MS = 60_000

KIND_MAP = {
    "simple_incrementing": PaginationKind.SIMPLE_INCREMENTING,
    "offset_limit": PaginationKind.OFFSET_LIMIT,
    "cursor": PaginationKind.CURSOR,
    "cursor_pagination": PaginationKind.CURSOR,
    "link_header": PaginationKind.LINK_HEADER,
    "timestamp": PaginationKind.TIMESTAMP,
    "chaining": PaginationKind.TIMESTAMP,
    "odata": PaginationKind.ODATA,
    "odata_pagination": PaginationKind.ODATA,
    "snapshot": PaginationKind.SNAPSHOT,
    "snapshot_pagination": PaginationKind.SNAPSHOT,
}

TOKEN_MODE_MAP = {
    "full_url": TokenMode.FULL_URL,
    "token_only": TokenMode.TOKEN_ONLY,
}

DEFAULT_OFFSET_PARAMS = {
    PaginationKind.SIMPLE_INCREMENTING: "page",
    PaginationKind.OFFSET_LIMIT: "offset",
    PaginationKind.CURSOR: "cursor",
    PaginationKind.TIMESTAMP: "since",
}


def parse_kind(value: Union[str, PaginationKind]) -> PaginationKind:
    if isinstance(value, PaginationKind):
        return value
    key = str(value).strip().lower().replace("-", "_")
    if key not in KIND_MAP:
        raise ConfigurationError(
            f"Unsupported pagination kind: '{value}'",
            field="kind",
            value=value,
            suggestion=f"Use one of: {', '.join(sorted(KIND_MAP))}",
        )
    return KIND_MAP[key]


def parse_token_mode(value: Union[str, TokenMode]) -> TokenMode:
    if isinstance(value, TokenMode):
        return value
    key = str(value).strip().lower().replace("-", "_")
    if key not in TOKEN_MODE_MAP:
        raise ConfigurationError(
            f"Unsupported token mode: '{value}'",
            field="token_mode",
            value=value,
            suggestion="Use 'full_url' or 'token_only'",
        )
    return TOKEN_MODE_MAP[key]


@dataclass
class SourceConfig:
    """Declarative configuration for one polled API source."""

    # Identity
    source_id: str
    base_url: str  # e.g. "https://api.example.com"
    path: str = ""  # Path template, may contain ${offset}

    # Pagination
    kind: PaginationKind = PaginationKind.SIMPLE_INCREMENTING
    initial_offset: Optional[str] = None
    offset_param: Optional[str] = None  # Defaults per kind (page/offset/cursor/since)
    limit_param: str = "limit"
    page_size: int = 100

    # Where continuation values live in the response
    offset_pointer: Optional[str] = None
    next_page_pointer: Optional[str] = None
    records_pointer: Optional[str] = None

    # OData
    odata_nextlink_field: str = "@odata.nextLink"
    odata_deltalink_field: str = "@odata.deltaLink"
    token_mode: TokenMode = TokenMode.FULL_URL
    skip_token_param: str = "$skiptoken"
    delta_token_param: str = "$deltatoken"

    # Cadence (milliseconds); None falls back to request_interval_ms
    request_interval_ms: int = DEFAULT_REQUEST_INTERVAL_MS
    nextlink_interval_ms: Optional[int] = None
    deltalink_interval_ms: Optional[int] = None

    # Request shaping (unauthenticated)
    method: str = "GET"
    parameters: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None

    def __post_init__(self) -> None:
        self.kind = parse_kind(self.kind)
        self.token_mode = parse_token_mode(self.token_mode)
        if self.offset_param is None:
            self.offset_param = DEFAULT_OFFSET_PARAMS.get(self.kind)
        if self.initial_offset is None and self.kind in (
            PaginationKind.SIMPLE_INCREMENTING,
            PaginationKind.OFFSET_LIMIT,
        ):
            self.initial_offset = "0"
        if self.initial_offset is not None:
            self.initial_offset = str(self.initial_offset)
        self.method = (self.method or "GET").upper()

        errors = self._validate()
        if errors:
            raise ValidationError(
                f"Source configuration errors for {self.source_id or '?'}",
                issues=errors,
                source_id=self.source_id or None,
                suggestion="Fix the configuration and try again.",
            )

    def _validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors: List[str] = []

        if not self.source_id:
            errors.append("source_id is required")

        if not self.base_url:
            errors.append("base_url is required (e.g., 'https://api.example.com')")

        if self.method.upper() not in ("GET", "POST"):
            errors.append(f"method must be GET or POST, got {self.method!r}")

        if self.kind is PaginationKind.OFFSET_LIMIT and self.page_size <= 0:
            errors.append("page_size must be positive for offset_limit pagination")

        if self.kind is PaginationKind.CURSOR and not self.next_page_pointer:
            errors.append("next_page_pointer is required for cursor pagination")

        if self.kind is PaginationKind.TIMESTAMP and not self.offset_pointer:
            errors.append("offset_pointer is required for timestamp pagination")

        if self.kind is PaginationKind.SNAPSHOT and not self.offset_pointer:
            errors.append("offset_pointer is required for snapshot pagination")

        if self.kind is PaginationKind.ODATA:
            if not (self.odata_nextlink_field or "").strip():
                errors.append("odata_nextlink_field is required for odata pagination")
            if self.token_mode is TokenMode.TOKEN_ONLY:
                if not self.skip_token_param or not self.delta_token_param:
                    errors.append("skip_token_param and delta_token_param must be non-empty")
                elif self.skip_token_param == self.delta_token_param:
                    errors.append("skip_token_param and delta_token_param must differ")

        for name in ("offset_pointer", "next_page_pointer", "records_pointer"):
            pointer = getattr(self, name)
            if pointer and pointer.startswith("/") and not is_valid_pointer(pointer):
                errors.append(f"{name} is not a valid JSON pointer: {pointer!r}")

        if self.request_interval_ms is None or self.request_interval_ms < 0:
            errors.append("request_interval_ms must be >= 0")
        for name in ("nextlink_interval_ms", "deltalink_interval_ms"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"{name} must be >= 0")

        return errors

    @property
    def source_partition(self) -> str:
        """Offset store key: the base URL joined with the path template."""
        return join_url(self.base_url, self.path)


def _int_or_none(options: Dict[str, Any], key: str) -> Optional[int]:
    value = options.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{key} must be an integer number of milliseconds",
            field=key,
            value=value,
        )


def build_source_config(options: Dict[str, Any]) -> SourceConfig:
    """Build a SourceConfig from a plain dictionary (e.g. parsed YAML).

    Unknown keys are rejected so typos fail before polling starts.
    """
    known = set(SourceConfig.__dataclass_fields__)
    unknown = sorted(set(options) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown source option(s): {', '.join(unknown)}",
            source_id=options.get("source_id"),
            field=unknown[0],
        )

    values = dict(options)
    for key in ("nextlink_interval_ms", "deltalink_interval_ms"):
        values[key] = _int_or_none(options, key)
    if "request_interval_ms" in options:
        interval = _int_or_none(options, "request_interval_ms")
        values["request_interval_ms"] = (
            DEFAULT_REQUEST_INTERVAL_MS if interval is None else interval
        )
    if "page_size" in options:
        values["page_size"] = int(options["page_size"])
    for key in ("parameters", "headers"):
        values[key] = {str(k): str(v) for k, v in (options.get(key) or {}).items()}

    return SourceConfig(**values)


def load_sources(path: Union[str, Path], *, load_env: bool = True) -> List[SourceConfig]:
    """Load every source declared under ``sources:`` in a YAML file.

    Raises:
        ConfigurationError: If the file is missing, malformed, or declares
            duplicate source ids
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", field="path", value=path)

    if load_env:
        env_file = path.parent / ".env"
        if env_file.exists():
            load_dotenv(dotenv_path=env_file, override=False)
            logger.debug("Loaded environment from %s", env_file)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    entries = data.get("sources") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationError(
            f"{path} must contain a 'sources:' list",
            field="sources",
        )

    sources: List[SourceConfig] = []
    seen: Dict[str, int] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"sources[{index}] must be a mapping", field=f"sources[{index}]")
        source = build_source_config(expand_options(entry))
        if source.source_id in seen:
            raise ConfigurationError(
                f"Duplicate source_id '{source.source_id}' in {path}",
                field="source_id",
                value=source.source_id,
            )
        seen[source.source_id] = index
        sources.append(source)

    logger.info("Loaded %d source(s) from %s", len(sources), path)
    return sources
