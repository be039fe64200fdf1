"""Backend discovery package — backend-agnostic lister and change-notification Protocols."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import threading

    from .models import UpstreamLoadBalancer


@runtime_checkable
class BackendLister(Protocol):
    """Protocol that every backend lister must satisfy."""

    def list_partitions(self) -> list[str]:
        """Return the partitions (target namespaces) known to the backend."""
        ...

    def list_load_balancers(self, partition: str) -> list[UpstreamLoadBalancer]:
        """Return the load balancers currently defined in *partition*."""
        ...


@runtime_checkable
class ChangeHandler(Protocol):
    """Receives load balancer changes as a backend observes them."""

    def on_add(self, partition: str, lb: UpstreamLoadBalancer) -> None: ...

    def on_update(self, partition: str, old: UpstreamLoadBalancer, new: UpstreamLoadBalancer) -> None: ...

    def on_delete(self, partition: str, lb: UpstreamLoadBalancer) -> None: ...


@runtime_checkable
class ChangeNotifier(Protocol):
    """A lister that can also push changes between reconciliation passes."""

    def subscribe(self, handler: ChangeHandler) -> None:
        """Register *handler* for every change found from now on."""
        ...

    def watch(self, stop: threading.Event) -> None:
        """Observe the backend and notify subscribers until *stop* is set."""
        ...
