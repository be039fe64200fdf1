"""Prometheus metrics recorded by the reconciler and the sync queue."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from .kube.models import SERVICE

_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class DiscovererMetrics:
    """Collectors for one backend, registered on their own registry.

    prometheus_client collectors are thread-safe, so workers and the
    reconciliation loop share one instance without extra locking.
    """

    def __init__(self, backend_name: str, backend_type: str, registry: CollectorRegistry | None = None):
        self.backend_name = backend_name
        self.backend_type = backend_type
        self.registry = registry if registry is not None else CollectorRegistry()

        self._event_timestamp = {
            kind: Gauge(
                f"discovery_{kind}_event_timestamp",
                f"Timestamp the last {kind} event was processed",
                ["namespace", "backendname", "name"],
                registry=self.registry,
            )
            for kind in ("service", "endpoints")
        }
        self._object_errors = {
            kind: Counter(
                f"discovery_{kind}_error",
                f"Number of {kind} errors encountered",
                ["namespace", "backendname", "name", "errortype"],
                registry=self.registry,
            )
            for kind in ("service", "endpoints")
        }
        self._replicated = {
            kind: Gauge(
                f"discovery_replicated_{kind}",
                f"Number of {kind} objects replicated into the cluster",
                ["namespace", "backendname"],
                registry=self.registry,
            )
            for kind in ("service", "endpoints")
        }
        self._queue_size = Gauge(
            "discovery_queuesize",
            "Number of items in the sync queue",
            ["backendname", "backendtype"],
            registry=self.registry,
        )
        self._api_latency = Histogram(
            "discovery_backend_api_latency_seconds",
            "Time taken by requests to the backend API",
            ["backendname", "backendtype", "operation"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._cycle_duration = Histogram(
            "discovery_cycle_duration_seconds",
            "Time taken by one full reconciliation pass",
            ["backendname", "backendtype"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self._errors = Counter(
            "discovery_error",
            "Number of errors that have occurred in the discoverer",
            ["backendname", "errortype"],
            registry=self.registry,
        )
        self._upstream_services = Gauge(
            "discovery_upstream_services",
            "Number of load balancers seen in the backend",
            ["namespace", "backendname"],
            registry=self.registry,
        )
        self._invalid_services = Gauge(
            "discovery_invalid_services",
            "Number of load balancers rejected because of invalid names",
            ["namespace", "backendname"],
            registry=self.registry,
        )

    @staticmethod
    def _kind(kind: str) -> str:
        return "service" if kind == SERVICE else "endpoints"

    def object_error(self, kind: str, namespace: str, name: str, errortype: str) -> None:
        self._object_errors[self._kind(kind)].labels(namespace, self.backend_name, name, errortype).inc()

    def event_timestamp(self, kind: str, namespace: str, name: str, timestamp: float) -> None:
        self._event_timestamp[self._kind(kind)].labels(namespace, self.backend_name, name).set(timestamp)

    def replicated_objects(self, kind: str, namespace: str, count: int) -> None:
        self._replicated[self._kind(kind)].labels(namespace, self.backend_name).set(count)

    def generic_error(self, errortype: str) -> None:
        self._errors.labels(self.backend_name, errortype).inc()

    def queue_size(self, size: int) -> None:
        self._queue_size.labels(self.backend_name, self.backend_type).set(size)

    def api_latency(self, operation: str, seconds: float) -> None:
        self._api_latency.labels(self.backend_name, self.backend_type, operation).observe(seconds)

    def cycle_duration(self, seconds: float) -> None:
        self._cycle_duration.labels(self.backend_name, self.backend_type).observe(seconds)

    def upstream_services(self, namespace: str, count: int) -> None:
        self._upstream_services.labels(namespace, self.backend_name).set(count)

    def invalid_services(self, namespace: str, count: int) -> None:
        self._invalid_services.labels(namespace, self.backend_name).set(count)

    def serve(self, port: int) -> None:
        """Expose the registry over HTTP on *port*."""
        start_http_server(port, registry=self.registry)
