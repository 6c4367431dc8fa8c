"""Client configuration for farmstats."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from farmstats.exceptions import StatsConfigError


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise StatsConfigError(f"{key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class StatsConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        WebSocket base URL of the stats server (``ws://`` or ``wss://``).
    stream_path : str
        Well-known path of the stats stream endpoint.
    init_command : str
        Literal text command requesting a full snapshot after connecting.
    probe_interval : float
        Seconds between liveness probes while connected.  Keeps idle
        proxies (e.g. an Nginx 60 s read timeout) from tearing the
        connection down.
    probe_payload : str
        Text sent as liveness probe.  Not interpreted by the server, must
        not collide with ``init_command``.
    reconnect_delay : float
        Seconds to wait before reconnecting after a drop.  Defaults to
        ``0`` (immediate retry, no backoff).
    freshness_window_ms : int
        Window during which a mutated cell counts as "recently changed".
    refresh_interval : float
        Seconds between freshness re-evaluation ticks.
    max_message_preview : int
        Maximum characters of a raw payload included in log lines and
        protocol errors.
    """

    base_url: str = "ws://localhost:8080"
    stream_path: str = "/sock/stats"
    init_command: str = "init"
    probe_interval: float = 30.0
    probe_payload: str = "keepalive"
    reconnect_delay: float = 0.0
    freshness_window_ms: int = 3000
    refresh_interval: float = 1.0
    max_message_preview: int = 256

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("ws://", "wss://")):
            raise StatsConfigError(f"base_url must be a ws:// or wss:// URL, got {self.base_url!r}")
        if not self.init_command:
            raise StatsConfigError("init_command must be non-empty")
        if not self.probe_payload:
            raise StatsConfigError("probe_payload must be non-empty")
        if self.probe_payload == self.init_command:
            raise StatsConfigError("probe_payload must differ from init_command")
        if self.probe_interval <= 0:
            raise StatsConfigError("probe_interval must be positive")
        if self.refresh_interval <= 0:
            raise StatsConfigError("refresh_interval must be positive")
        if self.reconnect_delay < 0:
            raise StatsConfigError("reconnect_delay must not be negative")
        if self.freshness_window_ms <= 0:
            raise StatsConfigError("freshness_window_ms must be positive")

    @property
    def url(self) -> str:
        """Full URL of the stream endpoint."""
        path = self.stream_path if self.stream_path.startswith("/") else f"/{self.stream_path}"
        return f"{self.base_url.rstrip('/')}{path}"

    @classmethod
    def from_env(cls, **overrides: Any) -> StatsConfig:
        """Create configuration from environment variables.

        Reads the optional ``FARMSTATS_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        StatsConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FARMSTATS_BASE_URL": "base_url",
            "FARMSTATS_STREAM_PATH": "stream_path",
            "FARMSTATS_INIT_COMMAND": "init_command",
            "FARMSTATS_PROBE_PAYLOAD": "probe_payload",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "FARMSTATS_PROBE_INTERVAL": "probe_interval",
            "FARMSTATS_RECONNECT_DELAY": "reconnect_delay",
            "FARMSTATS_REFRESH_INTERVAL": "refresh_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            if field_name in overrides:
                continue
            parsed = _env_float(env, env_key)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        # integer fields, handled separately
        window = _env_float(env, "FARMSTATS_FRESHNESS_WINDOW_MS")
        if window is not None and "freshness_window_ms" not in overrides:
            config_kwargs["freshness_window_ms"] = int(window)

        preview = _env_float(env, "FARMSTATS_MAX_MESSAGE_PREVIEW")
        if preview is not None and "max_message_preview" not in overrides:
            config_kwargs["max_message_preview"] = int(preview)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
