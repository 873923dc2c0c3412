"""Terminal monitor for the activity log.

Usage:
    python -m happywatch.monitor live --interval 3 --tail 20
    python -m happywatch.monitor summary --since 1700000000
    python -m happywatch.monitor actors
    python -m happywatch.monitor export --since 1700000000 --actor alice
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from datetime import UTC
from typing import TextIO

from dotenv import load_dotenv
from redis.asyncio import Redis  # type: ignore[import-untyped]

from happywatch.activity.schemas import ActivityEvent
from happywatch.activity.store import EventStore
from happywatch.aggregation import ActorProgress
from happywatch.aggregation import InactiveActor
from happywatch.aggregation import LiveActor
from happywatch.aggregation import TrafficSummary
from happywatch.aggregation import WindowAggregator
from happywatch.config import MonitorConfig
from happywatch.config import StoreConfig
from happywatch.errors import HappywatchError
from happywatch.errors import StorageError

logger = logging.getLogger("happywatch.monitor")

REDIS_URL_ENV = "HAPPYWATCH_REDIS_URL"


def _fmt_ts(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


def _ago(now: float, timestamp: float) -> str:
    seconds = max(int(now - timestamp), 0)
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m ago"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_live(rows: list[LiveActor], *, now: float) -> list[str]:
    lines = [f"LIVE ACTIVITY  ({len(rows)} actors)  {_fmt_ts(now)} UTC"]
    if not rows:
        lines.append("  (no activity in window)")
    for row in rows:
        lines.append(
            f"  {row.actor:<24} {_ago(now, row.last_seen):>10}  "
            f"{row.endpoint:<24} total={row.total_count} errors={row.error_count}"
        )
    return lines


def render_feed(events: list[ActivityEvent]) -> list[str]:
    lines = ["RECENT REQUESTS"]
    for event in events:
        status = event.status if event.status is not None else "-"
        lines.append(
            f"  #{event.id:<6} {_fmt_ts(event.timestamp)}  "
            f"{event.actor or 'anonymous':<20} {event.endpoint:<24} {status}"
        )
    return lines


def render_summary(summary: TrafficSummary, *, since: float | None = None) -> list[str]:
    if since is None:
        heading = f"TRAFFIC SUMMARY  (last {summary.window_seconds / 3600:g}h)"
    else:
        heading = f"TRAFFIC SUMMARY  (since {_fmt_ts(since)} UTC)"
    lines = [
        heading,
        f"  requests: {summary.total_count}",
        f"  actors:   {summary.actor_count}",
        f"  errors:   {summary.error_count} ({summary.error_rate:.1f}%)",
    ]
    for item in summary.endpoints:
        lines.append(f"    {item.endpoint:<32} {item.count}")
    return lines


def render_actors(
    progress: list[ActorProgress], inactive: list[InactiveActor], *, now: float
) -> list[str]:
    lines = ["ACTOR PROGRESS"]
    for row in progress:
        lines.append(
            f"  {row.actor:<24} requests={row.total_count} sessions={row.sessions} "
            f"first={_fmt_ts(row.first_seen)} last={_fmt_ts(row.last_seen)}"
        )
    lines.append(f"INACTIVE ACTORS  ({len(inactive)})")
    for row in inactive:
        lines.append(f"  {row.actor:<24} last seen {_ago(now, row.last_seen)}")
    return lines


def _write(out: TextIO, lines: list[str]) -> None:
    out.write("\n".join(lines) + "\n")
    out.flush()


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


async def run_live(
    aggregator: WindowAggregator,
    *,
    interval: float,
    tail: int,
    iterations: int | None = None,
    out: TextIO = sys.stdout,
) -> int:
    """Poll the live view every *interval* seconds.

    A failed tick is logged and the next tick tries again.  *iterations*
    bounds the loop; ``None`` runs until cancelled.
    """
    last_id: int | None = None
    tick = 0
    while iterations is None or tick < iterations:
        tick += 1
        try:
            now = aggregator.now()
            rows = await aggregator.live_activity(now=now)
            if last_id is None:
                last_id = max(await aggregator.latest_id() - tail, 0)
            feed = await aggregator.recent_events(last_id, limit=tail)
            if feed:
                last_id = feed[-1].id
            lines = render_live(rows, now=now)
            if feed:
                lines += render_feed(feed)
            _write(out, lines)
        except StorageError as exc:
            logger.warning("monitor tick %d failed: %s", tick, exc)
        if iterations is None or tick < iterations:
            await asyncio.sleep(interval)
    return 0


async def run_summary(
    aggregator: WindowAggregator,
    *,
    since: float | None = None,
    out: TextIO = sys.stdout,
) -> int:
    """Summary from *since* onwards, or over the default trailing window."""
    summary = await aggregator.traffic_summary(since=since)
    _write(out, render_summary(summary, since=since))
    return 0


async def run_actors(aggregator: WindowAggregator, *, out: TextIO = sys.stdout) -> int:
    now = aggregator.now()
    progress = await aggregator.actor_progress(now=now)
    inactive = await aggregator.inactive_actors(now=now)
    _write(out, render_actors(progress, inactive, now=now))
    return 0


async def run_export(
    aggregator: WindowAggregator,
    *,
    since: float | None = None,
    actor: str | None = None,
    out: TextIO = sys.stdout,
) -> int:
    """Write matching events as JSON lines in log order."""
    for event in await aggregator.export(since=since, actor=actor):
        out.write(event.model_dump_json() + "\n")
    out.flush()
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = MonitorConfig()
    parser = argparse.ArgumentParser(prog="happywatch-monitor")
    parser.add_argument(
        "mode", nargs="?", default="live", choices=["live", "summary", "actors", "export"]
    )
    parser.add_argument(
        "--redis-url", default=os.getenv(REDIS_URL_ENV, StoreConfig.redis_url)
    )
    parser.add_argument("--prefix", default=StoreConfig.key_prefix)
    parser.add_argument("--interval", type=float, default=defaults.refresh_seconds)
    parser.add_argument("--tail", type=int, default=defaults.tail)
    parser.add_argument("--since", type=float, default=None)
    parser.add_argument("--actor", default=None)
    return parser.parse_args(argv)


async def run(
    args: argparse.Namespace,
    aggregator: WindowAggregator,
    *,
    out: TextIO = sys.stdout,
) -> int:
    """Dispatch one monitor mode; one-shot modes return 1 on failure."""
    if args.mode == "live":
        return await run_live(
            aggregator, interval=args.interval, tail=args.tail, out=out
        )
    try:
        if args.mode == "summary":
            return await run_summary(aggregator, since=args.since, out=out)
        if args.mode == "actors":
            return await run_actors(aggregator, out=out)
        return await run_export(
            aggregator, since=args.since, actor=args.actor, out=out
        )
    except HappywatchError as exc:
        logger.error("%s failed: %s", args.mode, exc)
        return 1


async def _main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    redis = Redis.from_url(args.redis_url)
    aggregator = WindowAggregator(EventStore(redis, prefix=args.prefix))
    try:
        return await run(args, aggregator)
    finally:
        await redis.aclose()


def main() -> None:
    load_dotenv(override=False)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # latency samples are noise on an interactive terminal
    logging.getLogger("happywatch.observability").setLevel(logging.WARNING)
    try:
        raise SystemExit(asyncio.run(_main()))
    except KeyboardInterrupt:
        raise SystemExit(130) from None


if __name__ == "__main__":
    main()
