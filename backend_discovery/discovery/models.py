"""Backend-neutral data models for discovered load balancers."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BackendIdentity:
    """The backend instance this process mirrors; fixed for the process lifetime."""

    name: str
    type: str  # "static", "openstack", "kubernetes", "vmware", ...


@dataclass(frozen=True)
class UpstreamMember:
    """One pool member behind a listener."""

    address: str
    port: int


@dataclass(frozen=True)
class UpstreamListener:
    name: str
    port: int
    protocol: str = "TCP"
    members: tuple[UpstreamMember, ...] = ()


@dataclass(frozen=True)
class UpstreamLoadBalancer:
    """A load balancer as reported by a backend lister."""

    name: str
    id: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    listeners: tuple[UpstreamListener, ...] = ()

    @property
    def upstream_name(self) -> str:
        """'name-id' when both are set, otherwise whichever one is."""
        if self.name and self.id:
            return f"{self.name}-{self.id}"
        return self.name or self.id
