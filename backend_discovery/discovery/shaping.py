"""Shape upstream load balancers into mirrored Service / Endpoints records."""

from __future__ import annotations

from collections.abc import Iterable

from ..kube.models import (
    EndpointAddress,
    EndpointPort,
    EndpointRecord,
    EndpointSubset,
    ServicePort,
    ServiceRecord,
)
from ..translator import MAX_NAME_LENGTH, build_labels, build_name, hashname, shorten_label_value
from .models import BackendIdentity, UpstreamListener, UpstreamLoadBalancer

LABEL_LB_ID = "discovery.backend.io/load-balancer-id"
LABEL_LB_NAME = "discovery.backend.io/load-balancer-name"

_KUBE_PROTOCOLS = frozenset({"TCP", "UDP", "SCTP"})


def port_name(listener: UpstreamListener) -> str:
    """Port names must be DNS labels; unnamed listeners get 'unnamed-<port>'."""
    port = str(listener.port)
    if not listener.name:
        return f"unnamed-{port}"
    return hashname(MAX_NAME_LENGTH, listener.name, port)


def _protocol(listener: UpstreamListener) -> str:
    # HTTP/HTTPS listeners are plain TCP as far as the Service is concerned.
    protocol = (listener.protocol or "").upper()
    return protocol if protocol in _KUBE_PROTOCOLS else "TCP"


def _labels(backend: BackendIdentity, lb: UpstreamLoadBalancer) -> dict[str, str]:
    own = dict(lb.labels)
    own[LABEL_LB_ID] = shorten_label_value(lb.id)
    own[LABEL_LB_NAME] = shorten_label_value(lb.name)
    return build_labels(backend.name, lb.upstream_name, own)


def kube_services(
    backend: BackendIdentity,
    namespace: str,
    load_balancers: Iterable[UpstreamLoadBalancer],
) -> list[ServiceRecord]:
    """One headless Service per load balancer, one port per listener."""
    return [
        ServiceRecord(
            namespace=namespace,
            name=build_name(backend.name, lb.upstream_name),
            labels=_labels(backend, lb),
            ports=tuple(
                ServicePort(name=port_name(listener), port=listener.port, protocol=_protocol(listener))
                for listener in lb.listeners
            ),
        )
        for lb in load_balancers
    ]


def kube_endpoints(
    backend: BackendIdentity,
    namespace: str,
    load_balancers: Iterable[UpstreamLoadBalancer],
) -> list[EndpointRecord]:
    """One Endpoints object per load balancer.

    Within a listener, members sharing a port are grouped into one subset.
    """
    records: list[EndpointRecord] = []
    for lb in load_balancers:
        subsets: list[EndpointSubset] = []
        for listener in lb.listeners:
            by_port: dict[int, list[EndpointAddress]] = {}
            for member in listener.members:
                by_port.setdefault(member.port, []).append(EndpointAddress(ip=member.address))
            for member_port in sorted(by_port):
                subsets.append(EndpointSubset(
                    addresses=tuple(by_port[member_port]),
                    ports=(EndpointPort(name=port_name(listener), port=member_port, protocol=_protocol(listener)),),
                ))
        records.append(EndpointRecord(
            namespace=namespace,
            name=build_name(backend.name, lb.upstream_name),
            labels=_labels(backend, lb),
            subsets=tuple(subsets),
        ))
    return records

