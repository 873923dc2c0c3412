"""Unit tests for the terminal monitor."""

from __future__ import annotations

import io
import json

import pytest

from happywatch import monitor
from happywatch.activity import ActivityInput
from happywatch.errors import StorageError


async def _record(store, clock, at: float, **fields) -> None:
    now = clock.now()
    clock.set(at)
    fields.setdefault("endpoint", "/message")
    await store.append(ActivityInput(**fields))
    clock.set(now)


class _FlakyAggregator:
    """Delegates to a real aggregator but fails the first live read."""

    def __init__(self, inner):
        self._inner = inner
        self.failures = 1

    def now(self):
        return self._inner.now()

    async def live_activity(self, *args, **kwargs):
        if self.failures:
            self.failures -= 1
            raise StorageError("connection refused")
        return await self._inner.live_activity(*args, **kwargs)

    async def latest_id(self):
        return await self._inner.latest_id()

    async def recent_events(self, after_id, *, limit):
        return await self._inner.recent_events(after_id, limit=limit)


class TestParseArgs:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv(monitor.REDIS_URL_ENV, raising=False)
        args = monitor._parse_args([])
        assert args.mode == "live"
        assert args.interval == 3.0
        assert args.tail == 20
        assert args.redis_url == "redis://localhost:6379"

    def test_redis_url_from_env(self, monkeypatch):
        monkeypatch.setenv(monitor.REDIS_URL_ENV, "redis://cache:6380")
        args = monitor._parse_args(["summary"])
        assert args.mode == "summary"
        assert args.redis_url == "redis://cache:6380"

    def test_rejects_unknown_mode(self):
        with pytest.raises(SystemExit):
            monitor._parse_args(["nope"])


class TestLiveMode:
    async def test_renders_actors_and_feed(self, store, clock, aggregator):
        await _record(store, clock, clock.now() - 30, actor="alice", endpoint="/a")
        await _record(store, clock, clock.now() - 5, actor="bob", endpoint="/b")
        out = io.StringIO()

        code = await monitor.run_live(aggregator, interval=0, tail=5, iterations=1, out=out)

        text = out.getvalue()
        assert code == 0
        assert "LIVE ACTIVITY  (2 actors)" in text
        assert text.index("bob") < text.index("alice")
        assert "RECENT REQUESTS" in text

    async def test_feed_only_shows_new_events(self, store, clock, aggregator):
        await _record(store, clock, clock.now() - 30, actor="alice")
        out = io.StringIO()
        await monitor.run_live(aggregator, interval=0, tail=5, iterations=2, out=out)
        assert out.getvalue().count("RECENT REQUESTS") == 1

    async def test_failed_tick_is_retried(self, store, clock, aggregator, caplog):
        await _record(store, clock, clock.now() - 30, actor="alice")
        flaky = _FlakyAggregator(aggregator)
        out = io.StringIO()

        code = await monitor.run_live(flaky, interval=0, tail=5, iterations=2, out=out)

        assert code == 0
        assert "monitor tick 1 failed" in caplog.text
        assert "alice" in out.getvalue()


class TestOneShotModes:
    async def test_summary(self, store, clock, aggregator):
        await _record(store, clock, clock.now() - 30, actor="alice", status=500)
        out = io.StringIO()
        assert await monitor.run_summary(aggregator, out=out) == 0
        assert "requests: 1" in out.getvalue()
        assert "(100.0%)" in out.getvalue()

    async def test_summary_since_overrides_default_window(self, store, clock, aggregator):
        now = clock.now()
        await _record(store, clock, now - 5 * 3600, actor="alice")
        await _record(store, clock, now - 10, actor="bob")
        args = monitor._parse_args(["summary", "--since", str(now - 6 * 3600)])
        out = io.StringIO()

        assert await monitor.run(args, aggregator, out=out) == 0

        assert "requests: 2" in out.getvalue()
        assert "since" in out.getvalue().splitlines()[0]

    async def test_summary_default_window_is_two_hours(self, store, clock, aggregator):
        now = clock.now()
        await _record(store, clock, now - 5 * 3600, actor="alice")
        await _record(store, clock, now - 10, actor="bob")
        out = io.StringIO()
        await monitor.run_summary(aggregator, out=out)
        assert "requests: 1" in out.getvalue()

    async def test_actors(self, store, clock, aggregator):
        await _record(store, clock, clock.now() - 30, actor="alice")
        await _record(store, clock, clock.now() - 3600, actor="bob")
        out = io.StringIO()
        assert await monitor.run_actors(aggregator, out=out) == 0
        text = out.getvalue()
        assert "INACTIVE ACTORS  (1)" in text
        assert "bob" in text.split("INACTIVE ACTORS")[1]

    async def test_export_writes_json_lines(self, store, clock, aggregator):
        await _record(store, clock, clock.now() - 30, actor="alice")
        await _record(store, clock, clock.now() - 10, actor="bob")
        out = io.StringIO()
        await monitor.run_export(aggregator, actor="bob", out=out)
        lines = out.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["actor"] == "bob"

    async def test_one_shot_failure_exits_1(self, aggregator, caplog):
        args = monitor._parse_args(["export", "--since", "0"])

        async def _boom(**kwargs):
            raise StorageError("connection refused")

        aggregator.export = _boom
        assert await monitor.run(args, aggregator) == 1
        assert "export failed" in caplog.text
