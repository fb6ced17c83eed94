"""Structured exception hierarchy for API pollers.

Only configuration problems surface as exceptions. Data problems in a
response (missing or malformed continuation values) are handled inside
the offset managers and never raised to the caller.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "PollerError",
    "ConfigurationError",
    "ValidationError",
]


class PollerError(Exception):
    """Base exception for all poller errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        source_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.source_id = source_id
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if source_id:
            parts.insert(0, f"[{source_id}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_id": self.source_id,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(PollerError):
    """Invalid static configuration for a source.

    Raised at construction time, before any polling starts.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class ValidationError(ConfigurationError):
    """Several configuration problems found at once."""

    def __init__(
        self,
        message: str,
        *,
        issues: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.issues = issues or []

        details = kwargs.pop("details", None) or {}
        if issues:
            details["issue_count"] = len(issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)
