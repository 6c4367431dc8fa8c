"""Base model and shared field types for stats stream messages.

Every wire model inherits from :class:`StatsBaseModel` which is frozen
and ignores unknown keys, so servers may add fields without breaking
older clients.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1e11


def _require_non_empty(value: str) -> str:
    if not value:
        raise ValueError("identifier must be non-empty")
    return value


def require_integer(value: Any) -> Any:
    """Reject anything but a JSON integer (no numeric strings, floats or bools)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {type(value).__name__}")
    return value


def normalize_timestamp_seconds(value: Any) -> float:
    """Normalize an epoch timestamp to seconds.

    Values above ``1e11`` are treated as milliseconds.  Numeric strings and
    bools are rejected rather than coerced.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a numeric timestamp, got {type(value).__name__}")
    if value > _MS_THRESHOLD:
        return value / 1000.0
    return float(value)


OpaqueId = Annotated[str, AfterValidator(_require_non_empty)]
"""Subject or object identifier.  Compared as-is, never stripped or case-folded."""

UnixSeconds = Annotated[float, BeforeValidator(normalize_timestamp_seconds)]
"""Event time in epoch seconds (milliseconds are coerced)."""


class StatsBaseModel(BaseModel):
    """Base for stats stream models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
