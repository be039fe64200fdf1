"""Rate-limited, retrying work queue that applies actions to the target cluster."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import Counter, defaultdict, deque
from collections.abc import Iterable
from dataclasses import dataclass

from ..exceptions import SyncActionError, UnknownActionError
from ..metrics import DiscovererMetrics
from .actions import Action, ActionKind, ObjectClient, apply_action
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


@dataclass
class QueueItem:
    """An action plus the queue's bookkeeping for it."""

    action: Action
    seq: int
    retries: int = 0

    @property
    def key(self) -> tuple[str, str, str]:
        return self.action.key


class SyncQueue:
    """Drains actions with a fixed pool of worker threads.

    Items are keyed by object identity. A key handed to a worker is not handed
    out again until that worker is done with it; an action enqueued for the
    key meanwhile waits and then runs with the freshest content. Failed items
    are retried with a per-item backoff up to ``max_retries`` attempts and
    dropped afterwards.
    """

    def __init__(
        self,
        client: ObjectClient,
        metrics: DiscovererMetrics,
        workers: int = 2,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rate_limiter: RateLimiter | None = None,
    ):
        self._client = client
        self._metrics = metrics
        self._workers = workers
        self._max_retries = max_retries
        self._limiter = rate_limiter or RateLimiter.from_settings(
            base_delay=0.005, max_delay=60.0, qps=5.0, burst=10,
        )

        self._cond = threading.Condition()
        self._fifo: deque[tuple[str, str, str]] = deque()
        self._pending: dict[tuple[str, str, str], QueueItem] = {}
        self._processing: set[tuple[str, str, str]] = set()
        self._delayed: list[tuple[float, int, QueueItem]] = []
        self._delayed_keys: Counter[tuple[str, str, str]] = Counter()
        self._latest: dict[tuple[str, str, str], int] = {}
        self._seq = itertools.count(1)
        self._ticket = itertools.count()
        self._shutting_down = False
        self._threads: list[threading.Thread] = []

        self._replicated_lock = threading.Lock()
        self._replicated: dict[tuple[str, str], set[str]] = defaultdict(set)

    # ── Producer side ───────────────────────────────────────────────

    def enqueue(self, action: Action) -> None:
        """Add *action* to the queue, subject to the rate limiter."""
        if not isinstance(action, Action):
            logger.error("Ignoring unknown item of type %s in queue", type(action).__name__)
            self._metrics.generic_error("UnknownQueueItem")
            return

        delay = self._limiter.when(0)
        with self._cond:
            item = QueueItem(action=action, seq=next(self._seq))
            self._latest[item.key] = item.seq
            self._schedule(item, delay)

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending) + len(self._delayed)

    def wait_until_empty(self, timeout: float | None = None) -> bool:
        """Block until nothing is pending, delayed or in flight. False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not (self._pending or self._delayed or self._processing),
                timeout,
            )

    def seed_replicated(self, kind: str, namespace: str, names: Iterable[str]) -> None:
        """Reset the replicated count for *kind* in *namespace* to the objects found in the cluster."""
        with self._replicated_lock:
            replicated = self._replicated[(kind, namespace)] = set(names)
            count = len(replicated)
        self._metrics.replicated_objects(kind, namespace, count)

    # ── Lifecycle ───────────────────────────────────────────────────

    def start(self) -> None:
        """Launch the worker threads."""
        with self._cond:
            if self._threads:
                return
            self._shutting_down = False

        logger.info("Starting %d sync queue workers", self._workers)
        for i in range(self._workers):
            thread = threading.Thread(target=self._worker, name=f"sync-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def shutdown(self, wait: bool = True) -> None:
        """Stop handing out items; workers exit after their current item."""
        logger.info("Shutting down sync queue workers")
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
        if wait:
            for thread in self._threads:
                thread.join()
        self._threads = []

    # ── Queue internals (callers hold self._cond) ───────────────────

    def _schedule(self, item: QueueItem, delay: float) -> None:
        if delay > 0:
            heapq.heappush(self._delayed, (time.monotonic() + delay, next(self._ticket), item))
            self._delayed_keys[item.key] += 1
            self._metrics.queue_size(len(self._pending) + len(self._delayed))
            self._cond.notify_all()
        else:
            self._insert(item)

    def _insert(self, item: QueueItem) -> None:
        key = item.key
        if item.seq < self._latest.get(key, item.seq):
            logger.debug("Discarding %s, superseded by a newer action", item.action)
            self._forget_if_idle(key)
            self._metrics.queue_size(len(self._pending) + len(self._delayed))
            self._cond.notify_all()
            return

        if key not in self._pending and key not in self._processing:
            self._fifo.append(key)
        # Keys in flight are queued again by _done.
        self._pending[key] = item
        self._metrics.queue_size(len(self._pending) + len(self._delayed))
        self._cond.notify_all()

    def _promote_ready(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, item = heapq.heappop(self._delayed)
            self._delayed_keys[item.key] -= 1
            if not self._delayed_keys[item.key]:
                del self._delayed_keys[item.key]
            self._insert(item)

    def _forget_if_idle(self, key: tuple[str, str, str]) -> None:
        """Drop the latest-sequence entry once nothing for *key* is queued or in flight."""
        if key in self._pending or key in self._processing or key in self._delayed_keys:
            return
        self._latest.pop(key, None)

    def _get(self) -> QueueItem | None:
        """Block until an item is ready; None once the queue shuts down."""
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                self._promote_ready()
                if self._fifo:
                    key = self._fifo.popleft()
                    item = self._pending.pop(key)
                    self._processing.add(key)
                    self._metrics.queue_size(len(self._pending) + len(self._delayed))
                    return item
                timeout = None
                if self._delayed:
                    timeout = max(0.0, self._delayed[0][0] - time.monotonic())
                self._cond.wait(timeout)

    def _done(self, item: QueueItem, requeue_after: float | None = None) -> None:
        with self._cond:
            key = item.key
            self._processing.discard(key)
            if key in self._pending:
                self._fifo.append(key)
            if requeue_after is not None:
                self._schedule(item, requeue_after)
            else:
                self._forget_if_idle(key)
            self._cond.notify_all()

    # ── Workers ─────────────────────────────────────────────────────

    def _worker(self) -> None:
        while True:
            item = self._get()
            if item is None:
                return
            self._process(item)

    def _process(self, item: QueueItem) -> None:
        action = item.action
        try:
            apply_action(self._client, action)
        except UnknownActionError as exc:
            logger.error("Dropping %s: %s", action, exc)
            self._metrics.generic_error("UnknownAction")
            self._done(item)
            return
        except SyncActionError as exc:
            self._handle_failure(item, exc, exc.operation)
            return
        except Exception as exc:
            logger.exception("Unexpected error handling %s", action)
            self._handle_failure(item, exc, str(getattr(action.kind, "value", action.kind)).upper())
            return

        self._record_success(action)
        logger.info(
            "Successfully handled: %s", action,
            extra={"action": str(action), "namespace": action.obj.namespace, "upstream": action.upstream_name},
        )
        self._done(item)

    def _handle_failure(self, item: QueueItem, exc: Exception, operation: str) -> None:
        action = item.action
        obj = action.obj
        item.retries += 1
        self._metrics.object_error(obj.kind, obj.namespace, obj.name, operation)

        if item.retries < self._max_retries:
            delay = self._limiter.when(item.retries)
            logger.warning(
                "Error handling %s (attempt %d/%d), retrying in %.3fs: %s",
                action, item.retries, self._max_retries, delay, exc,
            )
            self._done(item, requeue_after=delay)
        else:
            logger.error(
                "Dropping %s after %d attempts: %s", action, item.retries, exc,
                extra={"action": str(action), "namespace": obj.namespace, "upstream": action.upstream_name},
            )
            self._done(item)

    def _record_success(self, action: Action) -> None:
        obj = action.obj
        self._metrics.event_timestamp(obj.kind, obj.namespace, obj.name, time.time())
        with self._replicated_lock:
            names = self._replicated[(obj.kind, obj.namespace)]
            if action.kind == ActionKind.DELETE:
                names.discard(obj.name)
            else:
                names.add(obj.name)
            count = len(names)
        self._metrics.replicated_objects(obj.kind, obj.namespace, count)
