"""
Unit tests for the polling client and its cache.

Time is driven by a manual scheduler so intervals and retry delays are
observed without sleeping.
"""

from __future__ import annotations

import asyncio

import pytest

from nexus_monitor.errors import MalformedResponse, TransportFailure
from nexus_monitor.polling import PollingClient, QueryCache
from nexus_monitor.types import PollOptions

from _helpers import ManualScheduler, drain

KEY = ("monitoring", "stats")
OTHER_KEY = ("monitoring", "health")


class _Fetcher:
    """Async fetch function returning scripted results in order."""

    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def _poller() -> tuple[PollingClient, ManualScheduler]:
    scheduler = ManualScheduler()
    return PollingClient(scheduler=scheduler), scheduler


# ============================================================
#  Cache
# ============================================================


def test_cache_staleness_and_prefix_invalidation() -> None:
    cache = QueryCache()
    cache.set_data(("monitoring", "alerts", "all"), [], at=10.0)
    cache.set_data(("monitoring", "alerts", "unacknowledged"), [], at=10.0)
    cache.set_data(("monitoring", "stats"), {}, at=10.0)

    assert cache.is_stale(("missing",), 1000, now=10.0)
    assert not cache.is_stale(("monitoring", "stats"), 1000, now=10.5)
    assert cache.is_stale(("monitoring", "stats"), 1000, now=11.0)

    touched = cache.invalidate(("monitoring", "alerts"))
    assert sorted(touched) == [
        ("monitoring", "alerts", "all"),
        ("monitoring", "alerts", "unacknowledged"),
    ]
    assert cache.is_stale(("monitoring", "alerts", "all"), 60_000, now=10.0)
    assert not cache.is_stale(("monitoring", "stats"), 60_000, now=10.0)


def test_cache_error_keeps_last_data() -> None:
    cache = QueryCache()
    cache.set_data(KEY, {"blocks_processed": 5}, at=1.0)
    cache.set_error(KEY, TransportFailure("down"))

    entry = cache.get(KEY)
    assert entry.data == {"blocks_processed": 5}
    assert isinstance(entry.error, TransportFailure)


# ============================================================
#  Retries and scheduling
# ============================================================


@pytest.mark.asyncio
async def test_retries_before_publishing() -> None:
    """Three failures then a success: the error is never published."""
    poller, scheduler = _poller()
    boom = TransportFailure("connection refused")
    fetch = _Fetcher(boom, boom, boom, {"ok": True})
    errors: list[Exception] = []

    sub = poller.subscribe(KEY, fetch, PollOptions(interval_ms=5000, retries=3, retry_delay_ms=1000))
    sub.on_change(lambda s: errors.append(s.error) if s.error else None)
    data = await sub.next_update(timeout=1)

    assert data == {"ok": True}
    assert sub.error is None
    assert errors == []
    assert fetch.calls == 4
    assert scheduler.sleeps == [1.0, 1.0, 1.0]
    await poller.close()


@pytest.mark.asyncio
async def test_error_published_after_retries_exhausted() -> None:
    poller, scheduler = _poller()
    fetch = _Fetcher(TransportFailure("connection refused"))

    sub = poller.subscribe(KEY, fetch, PollOptions(retries=2, retry_delay_ms=500))
    await sub.next_update(timeout=1)

    assert fetch.calls == 3
    assert isinstance(sub.error, TransportFailure)
    assert sub.data is None
    assert scheduler.sleeps == [0.5, 0.5]
    await poller.close()


@pytest.mark.asyncio
async def test_malformed_response_is_not_retried() -> None:
    poller, scheduler = _poller()
    fetch = _Fetcher(MalformedResponse("not json"))

    sub = poller.subscribe(KEY, fetch, PollOptions(retries=3))
    await sub.next_update(timeout=1)

    assert fetch.calls == 1
    assert scheduler.sleeps == []
    assert isinstance(sub.error, MalformedResponse)
    await poller.close()


@pytest.mark.asyncio
async def test_interval_is_kept_after_failure() -> None:
    """No back-off across ticks: the next fetch follows interval_ms later."""
    poller, scheduler = _poller()
    fetch = _Fetcher(TransportFailure("down"), {"blocks_processed": 1})

    sub = poller.subscribe(KEY, fetch, PollOptions(interval_ms=2000, retries=0))
    await sub.next_update(timeout=1)
    assert sub.error is not None
    assert [t.when for t in scheduler.pending()] == [2.0]

    scheduler.advance(2.0)
    await sub.next_update(timeout=1)
    assert sub.data == {"blocks_processed": 1}
    assert sub.error is None
    assert [t.when for t in scheduler.pending()] == [4.0]
    await poller.close()


@pytest.mark.asyncio
async def test_last_good_value_survives_a_failed_refresh() -> None:
    poller, scheduler = _poller()
    fetch = _Fetcher({"blocks_processed": 1}, TransportFailure("down"))

    sub = poller.subscribe(KEY, fetch, PollOptions(interval_ms=1000, retries=0))
    await sub.next_update(timeout=1)
    scheduler.advance(1.0)
    await sub.next_update(timeout=1)

    assert sub.data == {"blocks_processed": 1}
    assert isinstance(sub.error, TransportFailure)
    await poller.close()


@pytest.mark.asyncio
async def test_zero_interval_does_not_reschedule() -> None:
    poller, scheduler = _poller()
    sub = poller.subscribe(KEY, _Fetcher(1), PollOptions(interval_ms=0))
    await sub.next_update(timeout=1)

    assert scheduler.pending() == []
    await poller.close()


# ============================================================
#  Staleness
# ============================================================


@pytest.mark.asyncio
async def test_fresh_cache_is_served_without_fetch() -> None:
    scheduler = ManualScheduler()
    cache = QueryCache()
    cache.set_data(KEY, "cached", at=0.0)
    scheduler.time = 1.0
    poller = PollingClient(cache, scheduler)
    fetch = _Fetcher("fresh")

    sub = poller.subscribe(KEY, fetch, PollOptions(interval_ms=60_000, stale_ms=60_000))
    await drain()

    assert fetch.calls == 0
    assert sub.data == "cached"
    assert len(scheduler.pending()) == 1
    await poller.close()


@pytest.mark.asyncio
async def test_stale_cache_is_refetched_on_subscribe() -> None:
    scheduler = ManualScheduler()
    cache = QueryCache()
    cache.set_data(KEY, "cached", at=0.0)
    scheduler.time = 120.0
    poller = PollingClient(cache, scheduler)
    fetch = _Fetcher("fresh")

    sub = poller.subscribe(KEY, fetch, PollOptions(stale_ms=60_000))
    assert sub.data == "cached"
    await sub.next_update(timeout=1)

    assert fetch.calls == 1
    assert sub.data == "fresh"
    await poller.close()


# ============================================================
#  Invalidation
# ============================================================


@pytest.mark.asyncio
async def test_invalidate_refetches_subscribed_keys() -> None:
    poller, _ = _poller()
    fetch = _Fetcher([1], [1, 2])

    sub = poller.subscribe(("monitoring", "alerts", "all"), fetch)
    await sub.next_update(timeout=1)
    assert fetch.calls == 1

    poller.invalidate(("monitoring", "alerts"))
    await sub.next_update(timeout=1)

    assert fetch.calls == 2
    assert sub.data == [1, 2]
    await poller.close()


@pytest.mark.asyncio
async def test_result_started_before_invalidation_is_dropped() -> None:
    poller, _ = _poller()
    gate = asyncio.Event()
    calls: list[int] = []
    published: list[str] = []

    async def fetch() -> str:
        calls.append(1)
        if len(calls) == 1:
            await gate.wait()
            return "old"
        return "new"

    sub = poller.subscribe(KEY, fetch)
    sub.on_change(lambda s: published.append(s.data) if not s.is_fetching else None)
    await drain()
    assert sub.is_loading

    poller.invalidate(KEY)
    gate.set()
    await drain()

    assert len(calls) == 2
    assert sub.data == "new"
    assert published == ["new"]
    await poller.close()


@pytest.mark.asyncio
async def test_invalidate_unsubscribed_key_only_marks_stale() -> None:
    poller, _ = _poller()
    poller.cache.set_data(OTHER_KEY, "x", at=0.0)

    poller.invalidate(OTHER_KEY)
    await drain()

    assert poller.cache.get(OTHER_KEY).invalidated
    assert poller.active_keys == []
    await poller.close()


# ============================================================
#  Subscribers
# ============================================================


@pytest.mark.asyncio
async def test_subscribers_share_one_fetch() -> None:
    poller, scheduler = _poller()
    fetch = _Fetcher("value")

    first = poller.subscribe(KEY, fetch)
    second = poller.subscribe(KEY, fetch)
    await drain()

    assert fetch.calls == 1
    assert first.data == second.data == "value"
    assert len(scheduler.pending()) == 1

    first.unsubscribe()
    assert len(scheduler.pending()) == 1
    second.unsubscribe()
    assert scheduler.pending() == []
    await poller.close()


@pytest.mark.asyncio
async def test_unsubscribe_discards_in_flight_result() -> None:
    poller, scheduler = _poller()
    gate = asyncio.Event()

    async def fetch() -> str:
        await gate.wait()
        return "late"

    sub = poller.subscribe(KEY, fetch)
    await drain()
    sub.unsubscribe()
    gate.set()
    await drain()

    assert poller.cache.get(KEY) is None
    assert scheduler.pending() == []
    assert not sub.active
    await poller.close()


@pytest.mark.asyncio
async def test_keys_refresh_independently() -> None:
    poller, _ = _poller()
    failing = _Fetcher(TransportFailure("down"))
    working = _Fetcher({"status": "healthy"})

    bad = poller.subscribe(KEY, failing, PollOptions(retries=0))
    good = poller.subscribe(OTHER_KEY, working, PollOptions(retries=0))
    await drain()

    assert isinstance(bad.error, TransportFailure)
    assert good.error is None
    assert good.data == {"status": "healthy"}
    await poller.close()


@pytest.mark.asyncio
async def test_listener_errors_do_not_stop_polling() -> None:
    poller, _ = _poller()

    def broken(_sub: object) -> None:
        raise RuntimeError("listener bug")

    sub = poller.subscribe(KEY, _Fetcher(7))
    sub.on_change(broken)
    assert await sub.next_update(timeout=1) == 7
    await poller.close()


# ============================================================
#  Focus, refetch, close
# ============================================================


@pytest.mark.asyncio
async def test_focus_refetches_active_keys() -> None:
    poller, _ = _poller()
    on_focus = _Fetcher(1)
    no_focus = _Fetcher(2)

    poller.subscribe(KEY, on_focus)
    poller.subscribe(OTHER_KEY, no_focus, PollOptions(refetch_on_focus=False))
    await drain()

    poller.focus()
    await drain()

    assert on_focus.calls == 2
    assert no_focus.calls == 1
    await poller.close()


@pytest.mark.asyncio
async def test_refetch_waits_for_result() -> None:
    poller, _ = _poller()
    fetch = _Fetcher("a", "b")
    sub = poller.subscribe(KEY, fetch)
    await drain()

    await poller.refetch(KEY)

    assert sub.data == "b"
    with pytest.raises(KeyError):
        await poller.refetch(("unknown",))
    await poller.close()


@pytest.mark.asyncio
async def test_close_cancels_everything() -> None:
    poller, scheduler = _poller()
    gate = asyncio.Event()

    async def fetch() -> None:
        await gate.wait()

    poller.subscribe(KEY, fetch)
    poller.subscribe(OTHER_KEY, _Fetcher(1))
    await drain()

    await poller.close()

    assert poller.active_keys == []
    assert poller.cache.keys() == []
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_no_retry_after_last_subscriber_leaves_during_delay() -> None:
    class _LeavingScheduler(ManualScheduler):
        subscription = None

        async def sleep(self, delay: float) -> None:
            await super().sleep(delay)
            self.subscription.unsubscribe()

    scheduler = _LeavingScheduler()
    poller = PollingClient(scheduler=scheduler)
    fetch = _Fetcher(TransportFailure("down"))

    scheduler.subscription = poller.subscribe(KEY, fetch, PollOptions(retries=3))
    await drain()

    assert fetch.calls == 1
    assert scheduler.sleeps == [1.0]
    assert poller.cache.get(KEY) is None
    await poller.close()


@pytest.mark.asyncio
async def test_async_listener_is_awaited() -> None:
    poller, _ = _poller()
    seen: list[object] = []

    async def record(sub) -> None:
        seen.append(sub.data)

    sub = poller.subscribe(KEY, _Fetcher("value"))
    sub.on_change(record)
    await drain()

    assert seen
    assert seen[-1] == "value"
    await poller.close()
