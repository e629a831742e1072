"""Utilities for keeping webhook secrets and user input out of logs."""

import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

REDACTED = "***REDACTED***"


def redact_url(url: str | None) -> str:
    """
    Redact the secret parts of a webhook URL.

    Slack and Teams incoming-webhook URLs carry their credential in the path
    (``/services/T000/B000/XXXX``) or query string, so only the scheme and host
    are kept.

    Args:
        url: Webhook URL

    Returns:
        ``scheme://host/***REDACTED***`` or the redaction marker for unparsable input
    """
    if not url:
        return ""

    try:
        parts = urlsplit(url)
    except ValueError:
        return REDACTED

    if not parts.scheme or not parts.netloc:
        return REDACTED

    # Drop any userinfo embedded in the netloc
    host = parts.netloc.rsplit("@", 1)[-1]
    path = f"/{REDACTED}" if parts.path.strip("/") or parts.query else ""
    return urlunsplit((parts.scheme, host, path, "", ""))


def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """
    Make a user-controlled value safe to interpolate into a log line.

    Newlines and other control characters are escaped so a crafted note or
    image name cannot forge additional log records.

    Args:
        value: Value to sanitize
        max_length: Truncate longer values

    Returns:
        Single-line string
    """
    text = "" if value is None else str(value)
    text = text.replace("\r", "\\r").replace("\n", "\\n")
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "?", text)
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def redact_payload(data: Any) -> Any:
    """
    Recursively redact URL-valued strings in a webhook payload before logging it.

    Args:
        data: Payload (dict, list, str, or primitive)

    Returns:
        Redacted copy of data
    """
    if isinstance(data, dict):
        return {k: redact_payload(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [redact_payload(item) for item in data]
    elif isinstance(data, str):
        return re.sub(r"https?://[^\s|>]+", lambda m: redact_url(m.group(0)), data)
    else:
        return data
