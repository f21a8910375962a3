"""
Log redaction for tool arguments and results.

Everything the dispatcher logs passes through sanitize_for_logs() first.
Values under sensitive-looking keys are replaced wholesale; free-form
strings have embedded credentials (URL parameters, auth headers, inline
cookies, JWTs, well-known token formats) replaced in place.
"""

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "[REDACTED]"
MAX_DEPTH = 8

SENSITIVE_KEY_RE = re.compile(
    r"(authorization|proxy-authorization|cookie|set-cookie|token|secret|password|passwd"
    r"|api[-_]?key|client[-_]?secret|session|csrf|x[-_]api[-_]key)",
    re.IGNORECASE,
)

URL_SECRET_RE = re.compile(
    r"([?&](?:api[-_]?key|token|access_token|refresh_token|session|secret|password)=)([^&#\s]+)",
    re.IGNORECASE,
)
BEARER_RE = re.compile(r"\b(Bearer)\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
BASIC_RE = re.compile(r"\b(Basic)\s+[A-Za-z0-9+/=]+", re.IGNORECASE)
COOKIE_INLINE_RE = re.compile(r"\b(cookie|set-cookie)\s*:\s*([^\n\r;]+)", re.IGNORECASE)
JWT_RE = re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b")

# Well-known provider token formats
TOKEN_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"sk-[a-zA-Z0-9_-]{20,}"), "<REDACTED_OPENAI_KEY>"),
    (re.compile(r"gh[pousr]_[a-zA-Z0-9]{36}"), "<REDACTED_GITHUB_TOKEN>"),
    (re.compile(r"AKIA[0-9A-Z]{16}"), "<REDACTED_AWS_KEY>"),
    (re.compile(r"xox[baprs]-[a-zA-Z0-9-]+"), "<REDACTED_SLACK_TOKEN>"),
    (
        re.compile(
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----[\s\S]*?"
            r"-----END (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"
        ),
        "<REDACTED_PRIVATE_KEY>",
    ),
]


def redact_string(text: str) -> str:
    """Redact credentials embedded in a free-form string."""
    text = URL_SECRET_RE.sub(lambda m: m.group(1) + REDACTED, text)
    text = BEARER_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    text = BASIC_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    text = COOKIE_INLINE_RE.sub(lambda m: f"{m.group(1)}: {REDACTED}", text)
    text = JWT_RE.sub(REDACTED, text)
    for pattern, replacement in TOKEN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_for_logs(value: Any, depth: int = 0, seen: set[int] | None = None) -> Any:
    """
    Recursively sanitize a value before it is written to a log.

    Mappings, lists and tuples are walked; nesting deeper than MAX_DEPTH
    becomes "[TRUNCATED]" and a container seen twice on the current path
    becomes "[CIRCULAR]". Non-container scalars are returned unchanged.
    """
    if depth > MAX_DEPTH:
        return "[TRUNCATED]"
    if isinstance(value, str):
        return redact_string(value)
    if not isinstance(value, (Mapping, list, tuple)):
        return value

    seen = seen if seen is not None else set()
    if id(value) in seen:
        return "[CIRCULAR]"
    seen.add(id(value))
    try:
        if isinstance(value, Mapping):
            output: dict[Any, Any] = {}
            for key, entry in value.items():
                if isinstance(key, str) and SENSITIVE_KEY_RE.search(key):
                    output[key] = REDACTED
                    continue
                output[key] = sanitize_for_logs(entry, depth + 1, seen)
            return output
        return [sanitize_for_logs(entry, depth + 1, seen) for entry in value]
    finally:
        seen.discard(id(value))


def preview(value: Any, limit: int = 500) -> str:
    """Sanitized, length-limited text for a log line."""
    if isinstance(value, str):
        text = redact_string(value)
    else:
        text = repr(sanitize_for_logs(value))
    if len(text) > limit:
        return text[:limit] + "..."
    return text
