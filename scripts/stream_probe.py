#!/usr/bin/env python3
"""Live console view of a farm stats stream.

Connects to the stats endpoint, requests a snapshot and then prints the
per-object leaderboard every refresh tick.  Rows that changed within the
freshness window are marked with ``*``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from farmstats import StatsClient, StatsConfig  # noqa: E402
from farmstats.exceptions import StatsConfigError  # noqa: E402
from farmstats.views import filter_by_substring, object_label, refresh_ticks  # noqa: E402

_LOG = logging.getLogger("stream_probe")


@dataclass
class ProbeStats:
    started_at: float
    renders: int = 0
    disconnected_renders: int = 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print a live leaderboard from a farm stats stream.",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="WebSocket base URL (default: FARMSTATS_BASE_URL or ws://localhost:8080).",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=5,
        help="Rows shown per object.",
    )
    parser.add_argument(
        "--filter",
        default="",
        help="Only show objects whose id contains this substring.",
    )
    parser.add_argument(
        "--player",
        default=None,
        help="Show the objects of a single player instead of the leaderboard.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _render_leaderboard(client: StatsClient, now: datetime, *, top: int, needle: str) -> None:
    ranking = client.top_players_by_object()
    for object_id in filter_by_substring(sorted(ranking), needle):
        print(f"[probe] {object_label(object_id)}")
        for row in ranking[object_id][:top]:
            marker = "*" if client.is_recently_changed(row, now) else " "
            print(f"[probe]  {marker} {row.subject:<20} {row.quantity:>10}")


def _render_player(client: StatsClient, now: datetime, *, subject: str, needle: str) -> None:
    rows = client.objects_for_subject(subject)
    if not rows:
        print(f"[probe] no stats for {subject}")
        return
    keep = set(filter_by_substring([row.object_id for row in rows], needle))
    for row in rows:
        if row.object_id not in keep:
            continue
        marker = "*" if client.is_recently_changed(row, now) else " "
        print(f"[probe]  {marker} {object_label(row.object_id):<30} {row.quantity:>10}")


async def _run(args: argparse.Namespace, config: StatsConfig, stats: ProbeStats) -> None:
    deadline = stats.started_at + args.duration if args.duration > 0 else None
    async with StatsClient(config) as client:
        async for now in refresh_ticks(config.refresh_interval):
            if deadline is not None and time.time() >= deadline:
                break
            stats.renders += 1
            if not client.is_connected:
                stats.disconnected_renders += 1
                print(f"[probe] Disconnected ({client.status.state})")
                continue
            print(f"[probe] --- {now:%H:%M:%S} ---")
            if args.player:
                _render_player(client, now, subject=args.player, needle=args.filter)
            else:
                _render_leaderboard(client, now, top=args.top, needle=args.filter)
        _LOG.debug("Applied %s messages, dropped %s", client.messages_applied, client.protocol_errors)


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s      : {runtime:.1f}")
    print(f"[probe]   renders        : {stats.renders}")
    print(f"[probe]   disconnected   : {stats.disconnected_renders}")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides = {"base_url": args.base_url} if args.base_url else {}
    try:
        config = StatsConfig.from_env(**overrides)
    except StatsConfigError as exc:
        print(f"[probe] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    stats = ProbeStats(started_at=time.time())
    try:
        asyncio.run(_run(args, config, stats))
    except KeyboardInterrupt:
        pass

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
