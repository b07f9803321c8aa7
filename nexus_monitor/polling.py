"""
Periodic refresh of named cache entries.

A :class:`PollingClient` keeps one :class:`QueryCache` entry per key
current by calling the key's fetch function on a fixed interval. Any
number of consumers can :meth:`~PollingClient.subscribe` to the same key;
they share one timer and one in-flight request.

Rules per key:

- at most one fetch is outstanding; a result is dropped if the key was
  invalidated after the fetch started, and a new fetch is issued;
- after every fetch, success or failure, the next one is scheduled
  ``interval_ms`` later (no back-off across ticks);
- a failing fetch is retried ``retries`` times, ``retry_delay_ms`` apart,
  before the error is published;
- when the last subscriber leaves, the timer is cancelled and any
  in-flight result is discarded.

Keys are tuples and invalidation matches by prefix, so invalidating
``("monitoring", "alerts")`` also covers
``("monitoring", "alerts", "unacknowledged")``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Protocol

from nexus_monitor.errors import MalformedResponse
from nexus_monitor.types import PollOptions

logger = logging.getLogger(__name__)

Key = tuple[str, ...]
FetchFn = Callable[[], Awaitable[Any]]
Listener = Callable[["Subscription"], Any]

# Strong references to running async listeners until they finish.
_listener_tasks: set[asyncio.Task[Any]] = set()


def _listener_done(task: asyncio.Task[Any]) -> None:
    _listener_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Error in async listener", exc_info=task.exception())


def call_listener(listener: Callable[[Any], Any], arg: Any, label: str) -> None:
    """Call a sync or async listener. Failures are logged, never raised.

    A coroutine result is scheduled on the running loop; outside a loop it
    is closed and dropped with a warning.
    """
    try:
        result = listener(arg)
    except Exception:
        logger.exception("Error in %s listener", label)
        return
    if not asyncio.iscoroutine(result):
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        result.close()
        logger.warning("Async %s listener called outside an event loop; skipped", label)
        return
    task = loop.create_task(result)
    _listener_tasks.add(task)
    task.add_done_callback(_listener_done)


# ============================================================
#  Scheduler
# ============================================================


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler:
    """Clock and timer primitives used by the poller."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


# ============================================================
#  Cache
# ============================================================


@dataclass
class CacheEntry:
    data: Any = None
    error: Exception | None = None
    updated_at: float | None = None
    invalidated: bool = False


def _matches(key: Key, prefix: Key) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    """Last known value per key. Owned by one :class:`PollingClient`."""

    def __init__(self) -> None:
        self._entries: dict[Key, CacheEntry] = {}

    def get(self, key: Key) -> CacheEntry | None:
        return self._entries.get(key)

    def set_data(self, key: Key, data: Any, at: float) -> None:
        entry = self._entries.setdefault(key, CacheEntry())
        entry.data = data
        entry.error = None
        entry.updated_at = at
        entry.invalidated = False

    def set_error(self, key: Key, error: Exception) -> None:
        self._entries.setdefault(key, CacheEntry()).error = error

    def is_stale(self, key: Key, stale_ms: int, now: float) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.updated_at is None or entry.invalidated:
            return True
        return (now - entry.updated_at) * 1000 >= stale_ms

    def invalidate(self, prefix: Key) -> list[Key]:
        """Mark every entry under ``prefix`` stale; returns the keys touched."""
        touched = [key for key in self._entries if _matches(key, prefix)]
        for key in touched:
            self._entries[key].invalidated = True
        return touched

    def keys(self) -> list[Key]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


# ============================================================
#  Subscriptions
# ============================================================


class _Query:
    def __init__(self, key: Key, fetch_fn: FetchFn, options: PollOptions) -> None:
        self.key = key
        self.fetch_fn = fetch_fn
        self.options = options
        self.subscribers: list[Subscription] = []
        self.timer: TimerHandle | None = None
        self.task: asyncio.Task[None] | None = None
        self.generation = 0
        self.is_fetching = False


class Subscription:
    """Live view of one polled key: ``data``, ``is_loading``, ``error``."""

    def __init__(self, client: PollingClient, query: _Query) -> None:
        self._client = client
        self._query = query
        self._listeners: list[Listener] = []
        self._settled = asyncio.Event()
        self.active = True

    @property
    def key(self) -> Key:
        return self._query.key

    def _entry(self) -> CacheEntry:
        return self._client.cache.get(self._query.key) or CacheEntry()

    @property
    def data(self) -> Any:
        return self._entry().data

    @property
    def error(self) -> Exception | None:
        return self._entry().error

    @property
    def updated_at(self) -> float | None:
        return self._entry().updated_at

    @property
    def is_fetching(self) -> bool:
        return self._query.is_fetching

    @property
    def is_loading(self) -> bool:
        """True while the first value for this key is being fetched."""
        return self._query.is_fetching and self._entry().updated_at is None

    def on_change(self, listener: Listener) -> None:
        """Call ``listener(subscription)`` on every state change.

        Coroutine functions are accepted; their result runs as a task.
        """
        self._listeners.append(listener)

    async def next_update(self, timeout: float | None = None) -> Any:
        """Wait until the next fetch for this key settles; returns ``data``."""
        self._settled.clear()
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self.data

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._client._remove(self)

    def _notify(self, settled: bool) -> None:
        if settled:
            self._settled.set()
        label = f"poll {'/'.join(self.key)}"
        for listener in list(self._listeners):
            call_listener(listener, self, label)


# ============================================================
#  Poller
# ============================================================


class PollingClient:
    """Runs one refresh loop per subscribed key on the current event loop."""

    def __init__(
        self,
        cache: QueryCache | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.cache = cache if cache is not None else QueryCache()
        self._scheduler = scheduler or Scheduler()
        self._queries: dict[Key, _Query] = {}

    def subscribe(
        self,
        key: Iterable[str],
        fetch_fn: FetchFn,
        options: PollOptions | None = None,
    ) -> Subscription:
        """Start (or join) polling for ``key``.

        Must be called from a running event loop. The first subscriber's
        ``fetch_fn`` and ``options`` define the key's policy.
        """
        key = tuple(key)
        query = self._queries.get(key)
        if query is None:
            query = _Query(key, fetch_fn, options or PollOptions())
            self._queries[key] = query

        subscription = Subscription(self, query)
        query.subscribers.append(subscription)

        if query.task is None:
            if self.cache.is_stale(key, query.options.stale_ms, self._scheduler.now()):
                self._start_fetch(query)
            elif query.timer is None:
                self._schedule(query)
        return subscription

    def get(self, key: Iterable[str]) -> Any:
        entry = self.cache.get(tuple(key))
        return entry.data if entry else None

    def invalidate(self, prefix: Iterable[str]) -> None:
        """Mark keys under ``prefix`` stale and refetch the subscribed ones."""
        prefix = tuple(prefix)
        self.cache.invalidate(prefix)
        for query in list(self._queries.values()):
            if not _matches(query.key, prefix):
                continue
            query.generation += 1
            if query.subscribers and query.task is None:
                self._start_fetch(query)
        logger.debug("Invalidated %s", "/".join(prefix))

    def focus(self) -> None:
        """The consuming view regained focus: refetch every active key now."""
        for query in list(self._queries.values()):
            if query.subscribers and query.options.refetch_on_focus and query.task is None:
                self._start_fetch(query)

    async def refetch(self, key: Iterable[str]) -> None:
        """Fetch ``key`` now (or join the fetch in flight) and wait for it."""
        query = self._queries.get(tuple(key))
        if query is None:
            raise KeyError(tuple(key))
        await self._start_fetch(query)

    @property
    def active_keys(self) -> list[Key]:
        return [key for key, query in self._queries.items() if query.subscribers]

    async def close(self) -> None:
        """Cancel every timer and in-flight fetch, then drop cached data."""
        tasks = []
        for query in self._queries.values():
            self._cancel_timer(query)
            query.subscribers.clear()
            if query.task is not None:
                query.task.cancel()
                tasks.append(query.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._queries.clear()
        self.cache.clear()

    # ---- Internal ----

    def _remove(self, subscription: Subscription) -> None:
        query = subscription._query
        if subscription in query.subscribers:
            query.subscribers.remove(subscription)
        if not query.subscribers:
            self._cancel_timer(query)
            logger.debug("No subscribers left for %s; polling stopped", "/".join(query.key))

    def _start_fetch(self, query: _Query) -> asyncio.Task[None]:
        if query.task is None:
            self._cancel_timer(query)
            query.task = asyncio.get_running_loop().create_task(self._run(query))
        return query.task

    async def _run(self, query: _Query) -> None:
        generation = query.generation
        query.is_fetching = True
        self._notify(query, settled=False)
        try:
            data, error = await self._fetch_with_retries(query)
        finally:
            query.task = None
            query.is_fetching = False

        if not query.subscribers:
            logger.debug("Discarding result for %s; no subscribers", "/".join(query.key))
            return
        if generation != query.generation:
            # Invalidated while in flight; this answer may predate the change.
            self._start_fetch(query)
            return

        if error is None:
            self.cache.set_data(query.key, data, self._scheduler.now())
        else:
            self.cache.set_error(query.key, error)
        self._notify(query, settled=True)
        self._schedule(query)

    async def _fetch_with_retries(self, query: _Query) -> tuple[Any, Exception | None]:
        opts = query.options
        attempts = opts.retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                return await query.fetch_fn(), None
            except MalformedResponse as e:
                logger.warning("Malformed response for %s: %s", "/".join(query.key), e)
                return None, e
            except Exception as e:
                last_error = e
                if attempt + 1 < attempts and query.subscribers:
                    logger.debug(
                        "Fetch for %s failed (attempt %d/%d); retrying in %dms",
                        "/".join(query.key), attempt + 1, attempts, opts.retry_delay_ms,
                    )
                    await self._scheduler.sleep(opts.retry_delay_ms / 1000.0)
                    if not query.subscribers:
                        break
                else:
                    break
        logger.warning("Fetch for %s failed: %s", "/".join(query.key), last_error)
        return None, last_error

    def _schedule(self, query: _Query) -> None:
        self._cancel_timer(query)
        if not query.subscribers or query.options.interval_ms <= 0:
            return
        query.timer = self._scheduler.call_later(
            query.options.interval_ms / 1000.0,
            lambda: self._on_tick(query),
        )

    def _on_tick(self, query: _Query) -> None:
        query.timer = None
        if query.subscribers:
            self._start_fetch(query)

    @staticmethod
    def _cancel_timer(query: _Query) -> None:
        if query.timer is not None:
            query.timer.cancel()
            query.timer = None

    @staticmethod
    def _notify(query: _Query, settled: bool) -> None:
        for subscription in list(query.subscribers):
            subscription._notify(settled)
