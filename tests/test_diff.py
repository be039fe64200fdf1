"""Tests for the desired-vs-current diff engine."""

import random

from backend_discovery.kube.models import ServicePort, ServiceRecord
from backend_discovery.sync.diff import diff


def _svc(name, port=80, namespace="finance", labels=None):
    return ServiceRecord(namespace=namespace, name=name, labels=labels or {}, ports=(ServicePort("http", port),))


class TestDiff:
    def test_empty(self):
        result = diff([], [])
        assert result.empty

    def test_add(self):
        result = diff([_svc("a")], [])
        assert [o.name for o in result.add] == ["a"]
        assert not result.update and not result.delete

    def test_delete(self):
        result = diff([], [_svc("a")])
        assert [o.name for o in result.delete] == ["a"]

    def test_update_carries_desired(self):
        result = diff([_svc("a", port=81)], [_svc("a", port=80)])
        assert result.update == [_svc("a", port=81)]

    def test_unchanged(self):
        assert diff([_svc("a")], [_svc("a")]).empty

    def test_label_only_change_is_not_an_update(self):
        assert diff([_svc("a", labels={"x": "1"})], [_svc("a", labels={"x": "2"})]).empty

    def test_namespace_is_part_of_identity(self):
        result = diff([_svc("a", namespace="finance")], [_svc("a", namespace="hr")])
        assert len(result.add) == 1
        assert len(result.delete) == 1

    def test_mixed(self):
        desired = [_svc("keep"), _svc("change", port=443), _svc("new")]
        current = [_svc("keep"), _svc("change"), _svc("old")]
        result = diff(desired, current)
        assert [o.name for o in result.add] == ["new"]
        assert [o.name for o in result.update] == ["change"]
        assert [o.name for o in result.delete] == ["old"]

    def test_order_independent(self):
        desired = [_svc(f"s{i}", port=80 + (i % 3)) for i in range(20)]
        current = [_svc(f"s{i}") for i in range(5, 25)]
        expected = diff(desired, current)

        rng = random.Random(7)
        for _ in range(5):
            d, c = list(desired), list(current)
            rng.shuffle(d)
            rng.shuffle(c)
            assert diff(d, c) == expected

    def test_idempotent_after_apply(self):
        desired = [_svc("a", port=81), _svc("b")]
        assert diff(desired, desired).empty

    def test_duplicate_desired_keeps_first(self):
        result = diff([_svc("a", port=1), _svc("a", port=2)], [])
        assert result.add == [_svc("a", port=1)]
