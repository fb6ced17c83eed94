"""Template variable substitution.

Replaces ``${name}`` tokens in URL paths, query parameter strings and
request bodies. Tokens without a value are left exactly as written so a
missing variable shows up in the outgoing request instead of producing a
plausible-looking but wrong URL.

Substitution must run on the raw template string, before it is parsed as
a URL. Parsing first percent-encodes the braces (``$%7Boffset%7D``) and
the token can no longer be found.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Collection, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "TEMPLATE_PATTERN",
    "RESERVED_VARIABLES",
    "TemplateVariableReplacer",
    "expand_env_vars",
    "expand_options",
]

TEMPLATE_PATTERN = re.compile(r"\$\{([^}]+)\}")

# Filled in per request by the poller, never from the environment
RESERVED_VARIABLES = frozenset({"offset", "limit", "cursor", "source_id"})


class TemplateVariableReplacer:
    """Substitutes ``${name}`` tokens from a name -> value mapping.

    Example:
        >>> TemplateVariableReplacer().replace("/items?since=${offset}", {"offset": "42"})
        '/items?since=42'
        >>> TemplateVariableReplacer().replace("/items/${missing}", {})
        '/items/${missing}'
    """

    def replace(self, text: Optional[str], variables: Optional[Mapping[str, Any]]) -> Optional[str]:
        if not text or not variables:
            return text

        def replacer(match: re.Match[str]) -> str:
            name = match.group(1)
            value = variables.get(name)
            if value is None:
                logger.debug("No replacement found for template variable: ${%s}", name)
                return match.group(0)
            return str(value)

        result = TEMPLATE_PATTERN.sub(replacer, text)
        if result != text:
            logger.debug("Template replacement: %s -> %s", text, result)
        return result

    def contains_template_variables(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return TEMPLATE_PATTERN.search(text) is not None

    def extract_variable_names(self, text: Optional[str]) -> List[str]:
        """Return variable names in order of appearance (duplicates kept)."""
        if not text:
            return []
        return TEMPLATE_PATTERN.findall(text)


_replacer = TemplateVariableReplacer()


def expand_env_vars(
    value: str,
    *,
    strict: bool = False,
    reserved: Collection[str] = RESERVED_VARIABLES,
) -> str:
    """Expand ``${VAR}`` references from the process environment.

    Reserved request-time variables such as ``${offset}`` are never taken
    from the environment, so they survive config loading untouched.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for a missing (non-reserved) variable
        reserved: Variable names to leave for request-time substitution

    Example:
        >>> os.environ["API_HOST"] = "api.example.com"
        >>> expand_env_vars("https://${API_HOST}/v1/items?since=${offset}")
        'https://api.example.com/v1/items?since=${offset}'
    """
    if strict:
        missing = [
            name
            for name in _replacer.extract_variable_names(value)
            if name not in reserved and name not in os.environ
        ]
        if missing:
            raise KeyError(f"Environment variable not set: {missing[0]}")

    env = {k: v for k, v in os.environ.items() if k not in reserved}
    return _replacer.replace(value, env) or value


def expand_options(options: Dict[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Recursively expand environment variables in an options dict."""
    result: Dict[str, Any] = {}

    for key, value in options.items():
        if isinstance(value, str):
            result[key] = expand_env_vars(value, strict=strict)
        elif isinstance(value, dict):
            result[key] = expand_options(value, strict=strict)
        elif isinstance(value, list):
            result[key] = [
                expand_env_vars(item, strict=strict) if isinstance(item, str) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
