"""Helpers for safe debug logging.

Malformed frames can be arbitrarily large.  This module turns raw payloads
into short previews before they are logged or attached to exceptions.
"""

from __future__ import annotations


def preview_for_log(raw: str | bytes, *, max_string: int = 256) -> str:
    """Return *raw* as text, truncated to *max_string* characters."""
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="replace")
    else:
        text = raw
    if len(text) > max_string:
        return f"{text[:max_string]}…<truncated {len(text)} chars>"
    return text
