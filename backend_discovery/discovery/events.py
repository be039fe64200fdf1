"""Enqueue actions directly from load balancer change notifications."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..kube.models import SERVICE, MirroredObject
from ..metrics import DiscovererMetrics
from ..sync.actions import Action
from ..sync.queue import SyncQueue
from .models import BackendIdentity, UpstreamLoadBalancer
from .name_filter import NameFilter
from .shaping import kube_endpoints, kube_services

logger = logging.getLogger(__name__)


class EventMirror:
    """Turns change notifications into queued actions.

    Nothing is diffed here: each notification becomes one action for the
    Service and one for the Endpoints of the load balancer. The periodic
    full reconciliation still corrects anything a missed notification
    leaves behind.
    """

    def __init__(
        self,
        backend: BackendIdentity,
        queue: SyncQueue,
        metrics: DiscovererMetrics | None = None,
        excluded_namespaces: Iterable[str] = ("kube-system",),
    ):
        self._backend = backend
        self._queue = queue
        self._metrics = metrics
        self._excluded = frozenset(excluded_namespaces)
        self._name_filter = NameFilter()

    def on_add(self, partition: str, lb: UpstreamLoadBalancer) -> None:
        for record in self._shape(partition, lb):
            self._queue.enqueue(Action.add(record, lb.upstream_name))

    def on_update(self, partition: str, old: UpstreamLoadBalancer, new: UpstreamLoadBalancer) -> None:
        for record in self._shape(partition, new):
            self._queue.enqueue(Action.update(record, new.upstream_name))

    def on_delete(self, partition: str, lb: UpstreamLoadBalancer) -> None:
        for record in self._shape(partition, lb):
            self._queue.enqueue(Action.delete(record, lb.upstream_name))

    def _shape(self, partition: str, lb: UpstreamLoadBalancer) -> list[MirroredObject]:
        if partition in self._excluded:
            logger.debug("Ignoring %r in excluded namespace %s", lb.upstream_name, partition)
            return []

        kept, rejected = self._name_filter.apply([lb], partition)
        if rejected:
            if self._metrics is not None:
                self._metrics.object_error(SERVICE, partition, lb.upstream_name, "InvalidName")
            return []

        return [
            *kube_services(self._backend, partition, kept),
            *kube_endpoints(self._backend, partition, kept),
        ]
