"""Secret redaction for logs, tool annotations and API error bodies.

Worker environments carry Google OAuth tokens and tool errors sometimes echo
request headers back. Everything that leaves the process through a log line
or a chat message goes through one of these helpers first.
"""

import re
from collections.abc import Mapping
from typing import Any

# Substring patterns matched case-insensitively against mapping keys
_DEFAULT_SENSITIVE_PATTERNS = frozenset({
    "secret", "token", "authorization", "api_key", "password",
    "credential", "cookie",
})

_REDACTED = "***REDACTED***"


def _is_sensitive_key(key: str, sensitive_patterns: frozenset[str]) -> bool:
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in sensitive_patterns)


def redact_for_logging(
    obj: Mapping[str, Any],
    sensitive_patterns: frozenset[str] = _DEFAULT_SENSITIVE_PATTERNS,
) -> dict[str, Any]:
    """Return a copy of ``obj`` with sensitive values replaced.

    Works for flat environments (``GOOGLE_ACCESS_TOKEN=...``) as well as
    nested JSON payloads; lists of mappings are walked too.

    Args:
        obj: Mapping to redact (not mutated).
        sensitive_patterns: Key substrings whose values are replaced.

    Returns:
        New dict with sensitive values replaced by '***REDACTED***'.
    """
    result: dict[str, Any] = {}
    for key, value in obj.items():
        if _is_sensitive_key(str(key), sensitive_patterns):
            result[key] = _REDACTED
        elif isinstance(value, Mapping):
            result[key] = redact_for_logging(value, sensitive_patterns)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item, sensitive_patterns)
                if isinstance(item, Mapping) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


_SENSITIVE_KEYWORDS = (
    r"secret|token|password|api_key|authorization|credential"
)
_SENSITIVE_VALUE_PATTERNS = re.compile(
    r"(?i)"
    r"(?:"
    r"Bearer\s+[A-Za-z0-9._~+/=-]+"
    r"|"
    r"\bya29\.[A-Za-z0-9._-]+"
    r"|"
    r'"[a-z_]*(?:' + _SENSITIVE_KEYWORDS + r')[a-z_]*"\s*:\s*"[^"]*"'
    r"|"
    r"[a-z_]*(?:" + _SENSITIVE_KEYWORDS + r")[a-z_]*\s*[=:]\s*(?:Bearer\s+)?\S+"
    r")",
)


def sanitize_error_message(msg: str | None, max_length: int = 2000) -> str | None:
    """Redact token-looking fragments from free text and truncate it.

    Args:
        msg: Text to sanitize (None passes through).
        max_length: Maximum length of the result.

    Returns:
        Sanitized and truncated text, or None.
    """
    if msg is None:
        return None
    sanitized = _SENSITIVE_VALUE_PATTERNS.sub(_REDACTED, msg)
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."
    return sanitized
