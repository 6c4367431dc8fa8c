"""farmstats - Async Python client for live game-server farm statistics."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("farmstats")
except PackageNotFoundError:
    __version__ = "0+local"
from farmstats._connection import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
    TransportHandle,
    aiohttp_connector,
)
from farmstats._protocol import decode_message
from farmstats.client import StatsClient
from farmstats.config import StatsConfig
from farmstats.exceptions import (
    StaleHandleError,
    StatsConfigError,
    StatsError,
    StatsProtocolError,
    StatsTransportError,
)
from farmstats.models import (
    IncrementCategory,
    SnapshotEntry,
    StatCell,
    StatsAggregate,
    StatsIncrement,
    StatsMessage,
    StatsSnapshot,
)
from farmstats.state import StatsStore
from farmstats.views import (
    ObjectRow,
    PlayerRow,
    filter_by_substring,
    is_recently_changed,
    object_label,
    objects_for_subject,
    refresh_ticks,
    top_players_by_object,
)

__all__ = [
    "__version__",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "IncrementCategory",
    "ObjectRow",
    "PlayerRow",
    "SnapshotEntry",
    "StaleHandleError",
    "StatCell",
    "StatsAggregate",
    "StatsClient",
    "StatsConfig",
    "StatsConfigError",
    "StatsError",
    "StatsIncrement",
    "StatsMessage",
    "StatsProtocolError",
    "StatsSnapshot",
    "StatsStore",
    "StatsTransportError",
    "TransportHandle",
    "aiohttp_connector",
    "decode_message",
    "filter_by_substring",
    "is_recently_changed",
    "object_label",
    "objects_for_subject",
    "refresh_ticks",
    "top_players_by_object",
]
