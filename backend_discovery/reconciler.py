"""Periodic reconciliation of one backend against the target cluster."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import NamedTuple, TypeVar

from .discovery import BackendLister
from .discovery.models import BackendIdentity
from .discovery.name_filter import NameFilter
from .discovery.shaping import kube_endpoints, kube_services
from .exceptions import KubeAPIError
from .kube.client import KubeClient
from .kube.models import ENDPOINTS, SERVICE, EndpointRecord, ServiceRecord
from .metrics import DiscovererMetrics
from .sync.actions import Action
from .sync.diff import DiffResult, diff
from .sync.queue import SyncQueue
from .translator import LABEL_SERVICE, backend_selector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PassResult(NamedTuple):
    """Outcome of one reconciliation pass."""

    enqueued: int = 0
    failures: int = 0

    @property
    def ok(self) -> bool:
        return self.failures == 0


class Reconciler:
    """list -> filter -> shape -> list current -> diff -> enqueue, every interval.

    Each pass only enqueues actions; the sync queue applies them. A pass that
    fails part way leaves the other partitions untouched and the next pass
    starts from scratch.
    """

    def __init__(
        self,
        backend: BackendIdentity,
        lister: BackendLister,
        client: KubeClient,
        queue: SyncQueue,
        metrics: DiscovererMetrics,
        interval_seconds: float = 30,
    ):
        self._backend = backend
        self._lister = lister
        self._client = client
        self._queue = queue
        self._metrics = metrics
        self._interval = interval_seconds
        self._name_filter = NameFilter()
        self._wake = threading.Event()

    def run(self, stop: threading.Event) -> None:
        """Reconcile now, then every interval, until *stop* is set."""
        logger.info(
            "Reconciler started, resyncing every %ss", self._interval,
            extra={"backend": self._backend.name},
        )
        while not stop.is_set():
            try:
                self.reconcile()
            except Exception:
                logger.exception("Reconciliation pass failed", extra={"backend": self._backend.name})
            self._sleep(stop, self._interval)
        logger.info("Reconciler stopped", extra={"backend": self._backend.name})

    def trigger(self) -> None:
        """Start the next pass immediately."""
        self._wake.set()

    def reconcile(self) -> PassResult:
        """Run one pass over every partition.

        Returns how many actions were enqueued and how many listings failed.
        A failed ListPartitions fails the whole pass.
        """
        start = time.monotonic()

        try:
            partitions = self._timed("ListPartitions", self._lister.list_partitions)
        except Exception as exc:
            logger.error("Failed to list partitions: %s", exc, extra={"backend": self._backend.name})
            self._metrics.generic_error("ListPartitions")
            return PassResult(failures=1)

        enqueued = failures = 0
        for partition in partitions:
            count = self._reconcile_partition(partition)
            if count is None:
                failures += 1
            else:
                enqueued += count

        elapsed = time.monotonic() - start
        self._metrics.cycle_duration(elapsed)
        logger.info(
            "Reconciliation pass complete, %d partitions failed", failures,
            extra={
                "backend": self._backend.name,
                "elapsed_seconds": round(elapsed, 2),
                "total_services": enqueued,
            },
        )
        return PassResult(enqueued, failures)

    # ── Per-partition pass ──────────────────────────────────────────

    def _reconcile_partition(self, partition: str) -> int | None:
        """Enqueue the actions for *partition*; None if a listing failed."""
        try:
            load_balancers = self._timed(
                "ListLoadBalancers", lambda: self._lister.list_load_balancers(partition),
            )
        except Exception as exc:
            logger.error(
                "Failed to list load balancers: %s", exc,
                extra={"backend": self._backend.name, "namespace": partition},
            )
            self._metrics.generic_error("ListLoadBalancers")
            return None

        kept, rejected = self._name_filter.apply(load_balancers, partition)
        for lb in rejected:
            self._metrics.object_error(SERVICE, partition, lb.upstream_name, "InvalidName")
        self._metrics.invalid_services(partition, len(rejected))
        self._metrics.upstream_services(partition, len(load_balancers))

        desired_services = kube_services(self._backend, partition, kept)
        desired_endpoints = kube_endpoints(self._backend, partition, kept)

        selector = backend_selector(self._backend.name)
        try:
            current_services = [
                ServiceRecord.from_manifest(m)
                for m in self._client.list_objects("services", partition, selector)
            ]
        except KubeAPIError as exc:
            self._list_failed("ListServices", partition, exc)
            return None
        try:
            current_endpoints = [
                EndpointRecord.from_manifest(m)
                for m in self._client.list_objects("endpoints", partition, selector)
            ]
        except KubeAPIError as exc:
            self._list_failed("ListEndpoints", partition, exc)
            return None

        self._queue.seed_replicated(SERVICE, partition, (s.name for s in current_services))
        self._queue.seed_replicated(ENDPOINTS, partition, (e.name for e in current_endpoints))

        return (
            self._enqueue(diff(desired_services, current_services))
            + self._enqueue(diff(desired_endpoints, current_endpoints))
        )

    def _enqueue(self, result: DiffResult) -> int:
        actions = (
            [Action.add(obj, obj.labels.get(LABEL_SERVICE)) for obj in result.add]
            + [Action.update(obj, obj.labels.get(LABEL_SERVICE)) for obj in result.update]
            + [Action.delete(obj, obj.labels.get(LABEL_SERVICE)) for obj in result.delete]
        )
        for action in actions:
            self._queue.enqueue(action)
        return len(actions)

    def _list_failed(self, operation: str, partition: str, exc: Exception) -> None:
        logger.error(
            "%s failed: %s", operation, exc,
            extra={"backend": self._backend.name, "namespace": partition},
        )
        self._metrics.generic_error(operation)

    def _timed(self, operation: str, call: Callable[[], T]) -> T:
        start = time.monotonic()
        try:
            return call()
        finally:
            self._metrics.api_latency(operation, time.monotonic() - start)

    def _sleep(self, stop: threading.Event, seconds: float) -> None:
        """Sleep in short increments so stop and trigger are noticed promptly."""
        end = time.monotonic() + seconds
        while not stop.is_set() and not self._wake.is_set():
            remaining = end - time.monotonic()
            if remaining <= 0:
                break
            self._wake.wait(min(remaining, 1.0))
        self._wake.clear()
