"""Tests for mirroring change notifications."""

from unittest.mock import MagicMock

import pytest

from backend_discovery.discovery import ChangeHandler
from backend_discovery.discovery.events import EventMirror
from backend_discovery.discovery.models import (
    BackendIdentity,
    UpstreamListener,
    UpstreamLoadBalancer,
    UpstreamMember,
)
from backend_discovery.sync.actions import ActionKind

BACKEND = BackendIdentity(name="alpha", type="static")


def _lb(name="prod", port=80, member_port=8080, listener_name="http"):
    return UpstreamLoadBalancer(
        name=name,
        id="7a1f",
        listeners=(UpstreamListener(
            name=listener_name, port=port,
            members=(UpstreamMember("10.0.0.1", member_port),),
        ),),
    )


def _actions(queue):
    return [c.args[0] for c in queue.enqueue.call_args_list]


@pytest.fixture
def queue():
    return MagicMock()


class TestEventMirror:
    def test_is_change_handler(self, queue):
        assert isinstance(EventMirror(BACKEND, queue), ChangeHandler)

    def test_add_enqueues_service_and_endpoints(self, queue):
        EventMirror(BACKEND, queue).on_add("finance", _lb())
        actions = _actions(queue)
        assert [a.kind for a in actions] == [ActionKind.ADD, ActionKind.ADD]
        assert [a.obj.identity for a in actions] == [
            ("services", "finance", "alpha-prod-7a1f"),
            ("endpoints", "finance", "alpha-prod-7a1f"),
        ]
        assert {a.upstream_name for a in actions} == {"prod-7a1f"}

    def test_update_uses_new_load_balancer(self, queue):
        EventMirror(BACKEND, queue).on_update("finance", _lb(member_port=8080), _lb(member_port=9090))
        service, endpoints = _actions(queue)
        assert service.kind == endpoints.kind == ActionKind.UPDATE
        assert endpoints.obj.subsets[0].ports[0].port == 9090

    def test_delete(self, queue):
        EventMirror(BACKEND, queue).on_delete("finance", _lb())
        actions = _actions(queue)
        assert [a.kind for a in actions] == [ActionKind.DELETE, ActionKind.DELETE]
        assert actions[1].obj.identity == ("endpoints", "finance", "alpha-prod-7a1f")

    def test_skips_kube_system(self, queue):
        EventMirror(BACKEND, queue).on_add("kube-system", _lb())
        queue.enqueue.assert_not_called()

    def test_custom_exclusions(self, queue):
        mirror = EventMirror(BACKEND, queue, excluded_namespaces=["monitoring"])
        mirror.on_add("kube-system", _lb())
        mirror.on_add("monitoring", _lb())
        assert queue.enqueue.call_count == 2

    def test_invalid_name_skipped_and_counted(self, queue):
        metrics = MagicMock()
        EventMirror(BACKEND, queue, metrics).on_add("finance", _lb(name="Bad_Name"))
        queue.enqueue.assert_not_called()
        metrics.object_error.assert_called_once_with("service", "finance", "Bad_Name-7a1f", "InvalidName")

    def test_invalid_listener_name_skipped(self, queue):
        EventMirror(BACKEND, queue).on_add("finance", _lb(listener_name="HTTP"))
        queue.enqueue.assert_not_called()
