"""Mirrored Service / Endpoints records and their Kubernetes manifest form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

SERVICE = "service"
ENDPOINTS = "endpoints"


@dataclass(frozen=True, order=True)
class ServicePort:
    name: str
    port: int
    protocol: str = "TCP"

    def to_manifest(self) -> dict[str, Any]:
        return {"name": self.name, "port": self.port, "protocol": self.protocol}

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> ServicePort:
        return cls(
            name=data.get("name") or "",
            port=int(data["port"]),
            protocol=data.get("protocol") or "TCP",
        )


@dataclass(frozen=True, order=True)
class EndpointAddress:
    ip: str

    def to_manifest(self) -> dict[str, Any]:
        return {"ip": self.ip}


@dataclass(frozen=True, order=True)
class EndpointPort:
    name: str
    port: int
    protocol: str = "TCP"

    def to_manifest(self) -> dict[str, Any]:
        return {"name": self.name, "port": self.port, "protocol": self.protocol}

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> EndpointPort:
        return cls(
            name=data.get("name") or "",
            port=int(data["port"]),
            protocol=data.get("protocol") or "TCP",
        )


@dataclass(frozen=True)
class EndpointSubset:
    """A set of addresses that all serve the same set of ports."""

    addresses: tuple[EndpointAddress, ...] = ()
    ports: tuple[EndpointPort, ...] = ()

    @property
    def key(self) -> tuple[tuple[EndpointAddress, ...], tuple[EndpointPort, ...]]:
        """Order-independent comparison key."""
        return (tuple(sorted(self.addresses)), tuple(sorted(self.ports)))

    def to_manifest(self) -> dict[str, Any]:
        addresses, ports = self.key
        return {
            "addresses": [a.to_manifest() for a in addresses],
            "ports": [p.to_manifest() for p in ports],
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> EndpointSubset:
        return cls(
            addresses=tuple(EndpointAddress(ip=a["ip"]) for a in data.get("addresses") or []),
            ports=tuple(EndpointPort.from_manifest(p) for p in data.get("ports") or []),
        )


def _metadata(data: dict[str, Any]) -> tuple[str, str, dict[str, str]]:
    meta = data.get("metadata") or {}
    return meta.get("namespace", ""), meta.get("name", ""), dict(meta.get("labels") or {})


@dataclass(frozen=True)
class ServiceRecord:
    """A headless Service mirrored into the target cluster."""

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    ports: tuple[ServicePort, ...] = ()

    kind: ClassVar[str] = SERVICE
    resource: ClassVar[str] = "services"

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)

    def content(self) -> tuple[ServicePort, ...]:
        return tuple(self.ports)

    def same_content(self, other: MirroredObject) -> bool:
        return self.kind == other.kind and self.content() == other.content()

    def mutable_manifest(self) -> dict[str, Any]:
        """The part of the manifest this daemon owns and replaces on update."""
        return {
            "metadata": {"labels": dict(self.labels)},
            "spec": {"ports": [p.to_manifest() for p in self.ports]},
        }

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "namespace": self.namespace,
                "name": self.name,
                "labels": dict(self.labels),
            },
            "spec": {
                "type": "ClusterIP",
                "clusterIP": "None",
                "ports": [p.to_manifest() for p in self.ports],
            },
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> ServiceRecord:
        namespace, name, labels = _metadata(data)
        spec = data.get("spec") or {}
        return cls(
            namespace=namespace,
            name=name,
            labels=labels,
            ports=tuple(ServicePort.from_manifest(p) for p in spec.get("ports") or []),
        )


@dataclass(frozen=True)
class EndpointRecord:
    """The Endpoints object backing a mirrored Service."""

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    subsets: tuple[EndpointSubset, ...] = ()

    kind: ClassVar[str] = ENDPOINTS
    resource: ClassVar[str] = "endpoints"

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)

    def content(self) -> tuple:
        return tuple(sorted(s.key for s in self.subsets))

    def same_content(self, other: MirroredObject) -> bool:
        return self.kind == other.kind and self.content() == other.content()

    def mutable_manifest(self) -> dict[str, Any]:
        return {
            "metadata": {"labels": dict(self.labels)},
            "subsets": [s.to_manifest() for s in self.subsets],
        }

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Endpoints",
            "metadata": {
                "namespace": self.namespace,
                "name": self.name,
                "labels": dict(self.labels),
            },
            "subsets": [s.to_manifest() for s in self.subsets],
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> EndpointRecord:
        namespace, name, labels = _metadata(data)
        return cls(
            namespace=namespace,
            name=name,
            labels=labels,
            subsets=tuple(EndpointSubset.from_manifest(s) for s in data.get("subsets") or []),
        )


MirroredObject = ServiceRecord | EndpointRecord

RECORD_TYPES: dict[str, type[ServiceRecord] | type[EndpointRecord]] = {
    SERVICE: ServiceRecord,
    ENDPOINTS: EndpointRecord,
}
