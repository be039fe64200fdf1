"""Tests for shaping upstream load balancers into Services and Endpoints."""

from backend_discovery.discovery.models import (
    BackendIdentity,
    UpstreamListener,
    UpstreamLoadBalancer,
    UpstreamMember,
)
from backend_discovery.discovery.shaping import (
    LABEL_LB_ID,
    LABEL_LB_NAME,
    kube_endpoints,
    kube_services,
    port_name,
)
from backend_discovery.kube.models import ServicePort
from backend_discovery.translator import LABEL_BACKEND, LABEL_SERVICE

BACKEND = BackendIdentity(name="alpha", type="static")


def _lb(name="prod", lb_id="", listeners=None, labels=None):
    return UpstreamLoadBalancer(
        name=name,
        id=lb_id,
        labels=labels or {},
        listeners=tuple(listeners or [UpstreamListener("http", 80, members=(UpstreamMember("10.0.0.1", 8080),))]),
    )


class TestUpstreamName:
    def test_name_and_id(self):
        assert _lb(name="web", lb_id="7a1f").upstream_name == "web-7a1f"

    def test_id_only(self):
        assert _lb(name="", lb_id="7a1f").upstream_name == "7a1f"

    def test_name_only(self):
        assert _lb(name="web").upstream_name == "web"


class TestPortName:
    def test_named(self):
        assert port_name(UpstreamListener("http", 80)) == "http-80"

    def test_unnamed(self):
        assert port_name(UpstreamListener("", 443)) == "unnamed-443"

    def test_long_name_bounded(self):
        assert len(port_name(UpstreamListener("l" * 100, 8443))) <= 63


class TestKubeServices:
    def test_one_service_per_load_balancer(self):
        services = kube_services(BACKEND, "finance", [_lb("web"), _lb("api")])
        assert [s.name for s in services] == ["alpha-web", "alpha-api"]
        assert all(s.namespace == "finance" for s in services)

    def test_ports_from_listeners(self):
        lb = _lb(listeners=[UpstreamListener("http", 80), UpstreamListener("", 443, protocol="HTTPS")])
        (svc,) = kube_services(BACKEND, "finance", [lb])
        assert svc.ports == (ServicePort("http-80", 80, "TCP"), ServicePort("unnamed-443", 443, "TCP"))

    def test_udp_protocol_kept(self):
        lb = _lb(listeners=[UpstreamListener("dns", 53, protocol="udp")])
        (svc,) = kube_services(BACKEND, "finance", [lb])
        assert svc.ports[0].protocol == "UDP"

    def test_labels(self):
        (svc,) = kube_services(BACKEND, "finance", [_lb("web", "7a1f", labels={"team": "payments"})])
        assert svc.labels == {
            "team": "payments",
            LABEL_LB_ID: "7a1f",
            LABEL_LB_NAME: "web",
            LABEL_BACKEND: "alpha",
            LABEL_SERVICE: "web-7a1f",
        }

    def test_long_name_bounded(self):
        (svc,) = kube_services(BACKEND, "finance", [_lb("x" * 90)])
        assert len(svc.name) <= 63
        assert svc.name.startswith("alpha-")


class TestKubeEndpoints:
    def test_groups_members_by_port(self):
        listener = UpstreamListener("http", 80, members=(
            UpstreamMember("10.0.0.1", 8080),
            UpstreamMember("10.0.0.2", 8080),
            UpstreamMember("10.0.0.3", 9090),
        ))
        (ep,) = kube_endpoints(BACKEND, "finance", [_lb(listeners=[listener])])

        assert len(ep.subsets) == 2
        by_port = {s.ports[0].port: sorted(a.ip for a in s.addresses) for s in ep.subsets}
        assert by_port == {8080: ["10.0.0.1", "10.0.0.2"], 9090: ["10.0.0.3"]}
        assert all(s.ports[0].name == "http-80" for s in ep.subsets)

    def test_no_members(self):
        (ep,) = kube_endpoints(BACKEND, "finance", [_lb(listeners=[UpstreamListener("http", 80)])])
        assert ep.subsets == ()

    def test_matches_service_identity(self):
        (svc,) = kube_services(BACKEND, "finance", [_lb()])
        (ep,) = kube_endpoints(BACKEND, "finance", [_lb()])
        assert (svc.namespace, svc.name, svc.labels) == (ep.namespace, ep.name, ep.labels)

