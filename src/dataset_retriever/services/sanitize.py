from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


# Query keys that may carry credentials for a metadata or archive service.
_SENSITIVE_QUERY_KEYS = {
    "apikey",
    "api_key",
    "key",
    "token",
    "access_token",
    "password",
    "authorization",
}


def _is_sensitive_key(key: str) -> bool:
    return str(key or "").strip().lower() in _SENSITIVE_QUERY_KEYS


def redact_url(url: str) -> str:
    """Hide credentials (userinfo and secret query params) in a URL before printing it."""
    s = str(url or "").strip()
    if not s:
        return s

    try:
        parts = urlsplit(s)
    except ValueError:
        return redact_text(s)

    netloc = parts.netloc
    if "@" in netloc:
        netloc = "REDACTED@" + netloc.rsplit("@", 1)[1]

    query = parts.query
    if query:
        q = [(k, "REDACTED" if _is_sensitive_key(k) else v) for k, v in parse_qsl(query, keep_blank_values=True)]
        query = urlencode(q)

    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


_SECRET_KV_RE = re.compile(
    r'(?i)(\b(?:apikey|api_key|access_token|token|password|authorization|key)\b)\s*=\s*([^&\s\'"]+)',
)


def redact_text(text: str) -> str:
    """Redact `key=value` secrets in an error message."""
    s = str(text or "")
    if not s:
        return s
    return _SECRET_KV_RE.sub(lambda m: f"{m.group(1)}=REDACTED", s)
