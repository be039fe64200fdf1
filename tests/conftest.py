"""Shared fixtures: an in-memory stand-in for the target cluster."""

import copy
import itertools
import threading

import pytest

from backend_discovery.exceptions import KubeAlreadyExists, KubeConflict, KubeNotFound


def apply_merge_patch(target: dict, patch: dict) -> dict:
    """Return a copy of *target* with the RFC 7386 merge *patch* applied, as the API server would."""
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict):
            current = result.get(key)
            result[key] = apply_merge_patch(current if isinstance(current, dict) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class FakeCluster:
    """Implements the KubeClient object methods against a dict, with resourceVersion checks."""

    def __init__(self):
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.calls: list[tuple[str, str, str, str]] = []
        self._versions = itertools.count(1)
        self._lock = threading.Lock()

    def seed(self, resource, manifest):
        meta = manifest["metadata"]
        with self._lock:
            stored = copy.deepcopy(manifest)
            stored["metadata"]["resourceVersion"] = str(next(self._versions))
            self.objects[(resource, meta["namespace"], meta["name"])] = stored

    def list_objects(self, resource, namespace, label_selector=None):
        key, _, value = (label_selector or "").partition("=")
        with self._lock:
            return [
                copy.deepcopy(obj)
                for (r, ns, _), obj in sorted(self.objects.items())
                if r == resource and ns == namespace
                and (not key or (obj["metadata"].get("labels") or {}).get(key) == value)
            ]

    def get_object(self, resource, namespace, name):
        with self._lock:
            self.calls.append(("get", resource, namespace, name))
            obj = self.objects.get((resource, namespace, name))
            return copy.deepcopy(obj) if obj is not None else None

    def create_object(self, resource, namespace, body):
        name = body["metadata"]["name"]
        with self._lock:
            self.calls.append(("create", resource, namespace, name))
            if (resource, namespace, name) in self.objects:
                raise KubeAlreadyExists()
            stored = copy.deepcopy(body)
            stored["metadata"]["resourceVersion"] = str(next(self._versions))
            self.objects[(resource, namespace, name)] = stored
            return copy.deepcopy(stored)

    def patch_object(self, resource, namespace, name, patch):
        with self._lock:
            self.calls.append(("patch", resource, namespace, name))
            current = self.objects.get((resource, namespace, name))
            if current is None:
                raise KubeNotFound()
            expected = (patch.get("metadata") or {}).get("resourceVersion")
            if expected and expected != current["metadata"]["resourceVersion"]:
                raise KubeConflict()
            updated = apply_merge_patch(current, patch)
            updated["metadata"]["resourceVersion"] = str(next(self._versions))
            self.objects[(resource, namespace, name)] = updated
            return copy.deepcopy(updated)

    def delete_object(self, resource, namespace, name):
        with self._lock:
            self.calls.append(("delete", resource, namespace, name))
            if self.objects.pop((resource, namespace, name), None) is None:
                raise KubeNotFound()


@pytest.fixture
def cluster():
    return FakeCluster()
