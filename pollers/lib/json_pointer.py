"""JSON pointer lookups into parsed response bodies.

Implements RFC 6901 resolution over plain ``dict``/``list`` trees. A
lookup that runs off the document returns ``None`` instead of raising,
because an absent continuation field is the normal end-of-pagination
signal rather than an error.

A pointer that does not start with ``/`` names a single top-level field,
so ``@odata.nextLink`` can be configured as-is even though it contains a
dot.
"""

from __future__ import annotations

from typing import Any, List, Optional

__all__ = [
    "resolve_pointer",
    "resolve_scalar",
    "is_valid_pointer",
    "escape_token",
    "unescape_token",
    "normalize_pointer",
]


def escape_token(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def unescape_token(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def normalize_pointer(pointer: Optional[str]) -> str:
    """Turn a bare field name into a pointer; pointers pass through."""
    if not pointer:
        return ""
    if pointer.startswith("/"):
        return pointer
    return "/" + escape_token(pointer)


def is_valid_pointer(pointer: Optional[str]) -> bool:
    """Check RFC 6901 syntax: empty, or ``/``-prefixed with valid escapes."""
    if pointer is None:
        return False
    if pointer == "":
        return True
    if not pointer.startswith("/"):
        return False
    for token in pointer.split("/")[1:]:
        stripped = token.replace("~0", "").replace("~1", "")
        if "~" in stripped:
            return False
    return True


def _split(pointer: str) -> List[str]:
    return [unescape_token(t) for t in pointer.split("/")[1:]]


def resolve_pointer(document: Any, pointer: Optional[str]) -> Any:
    """Return the value at ``pointer`` or None when any segment is absent.

    Example:
        >>> resolve_pointer({"meta": {"next": "abc"}}, "/meta/next")
        'abc'
        >>> resolve_pointer({"@odata.nextLink": "u"}, "@odata.nextLink")
        'u'
        >>> resolve_pointer({"items": []}, "/items/0/id") is None
        True
    """
    pointer = normalize_pointer(pointer)
    if pointer == "":
        return document

    current = document
    for token in _split(pointer):
        if isinstance(current, dict):
            if token not in current:
                return None
            current = current[token]
        elif isinstance(current, list):
            if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
                return None
            index = int(token)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def resolve_scalar(document: Any, pointer: Optional[str]) -> Optional[str]:
    """Resolve a pointer to a stripped, non-empty string, or None.

    Containers (dicts, lists) and JSON null are treated as absent. Numbers
    and booleans are rendered with ``str`` so numeric offsets round-trip.
    """
    value = resolve_pointer(document, pointer)
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value).strip()
    return text or None
