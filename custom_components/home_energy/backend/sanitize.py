"""Shared sanitisation helpers for backend clients."""

from __future__ import annotations

import re

_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_TOKEN_QUERY_RE = re.compile(
    r"(?i)(token|refresh_token|access_token|code|code_verifier)=([^&\s]+)"
)
_TOKEN_JSON_RE = re.compile(
    r"(?i)\"(token|refresh_token|access_token|password)\"\s*:\s*\"[^\"]*\""
)
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def redact_text(value: str | None) -> str:
    """Return ``value`` with bearer tokens, emails and query tokens removed."""

    if not value:
        return ""
    text = str(value)
    redacted = _BEARER_RE.sub("Bearer ***", text)
    redacted = _TOKEN_QUERY_RE.sub(lambda match: f"{match.group(1)}=***", redacted)
    redacted = _TOKEN_JSON_RE.sub(lambda match: f'"{match.group(1)}": "***"', redacted)
    return _EMAIL_RE.sub("***@***", redacted)


def mask_identifier(value: str | None) -> str:
    """Return a masked identifier suitable for log output."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}...{trimmed[-2:]}"
    prefix = trimmed[:6]
    suffix = trimmed[-4:]
    return f"{prefix}...{suffix}"


__all__ = ["mask_identifier", "redact_text"]
