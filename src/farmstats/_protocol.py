"""Decoding of inbound stream frames into typed messages."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from farmstats._preview import preview_for_log
from farmstats.exceptions import StatsProtocolError
from farmstats.models.messages import StatsIncrement, StatsMessage, StatsSnapshot

_logger = logging.getLogger(__name__)

#: Key whose presence marks a frame as an increment.
DISCRIMINATOR_KEY = "category"


def _parse_json_object(raw: str | bytes, *, max_preview: int) -> dict[str, Any]:
    try:
        text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
        parsed = json.loads(text)
    except (ValueError, RecursionError) as exc:
        # JSONDecodeError, UnicodeDecodeError and pathologically deep nesting
        raise StatsProtocolError(
            f"Message is not valid JSON: {exc}",
            raw=preview_for_log(raw, max_string=max_preview),
        ) from exc

    if not isinstance(parsed, dict):
        raise StatsProtocolError(
            f"Message is a JSON {type(parsed).__name__}, expected an object",
            raw=preview_for_log(raw, max_string=max_preview),
        )
    return parsed


def decode_message(raw: str | bytes, *, max_preview: int = 256) -> StatsMessage:
    """Decode one frame into a :class:`StatsSnapshot` or :class:`StatsIncrement`.

    An object carrying a ``category`` key is an increment; any other object
    is a snapshot.  Payloads that fail to parse, are not objects, or do not
    validate against the selected shape raise :class:`StatsProtocolError`.
    """
    payload = _parse_json_object(raw, max_preview=max_preview)

    model: type[StatsIncrement] | type[StatsSnapshot]
    model = StatsIncrement if DISCRIMINATOR_KEY in payload else StatsSnapshot
    try:
        message: StatsMessage = model.model_validate(payload)
    except ValidationError as exc:
        raise StatsProtocolError(
            f"Message does not match the {model.__name__} shape: {exc.error_count()} validation error(s)",
            raw=preview_for_log(raw, max_string=max_preview),
        ) from exc

    if isinstance(message, StatsIncrement):
        _logger.debug(
            "Decoded increment category=%s subject=%s object=%s quantity=%s",
            message.category.name,
            message.subject,
            message.object_id,
            message.quantity,
        )
    else:
        _logger.debug("Decoded snapshot subjects=%s", message.subject_count)
    return message
