"""Actions against mirrored objects and how each kind is applied to the cluster."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ..exceptions import KubeAlreadyExists, KubeAPIError, KubeNotFound, SyncActionError, UnknownActionError
from ..kube.models import RECORD_TYPES, MirroredObject
from ..kube.patch import create_merge_patch

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Action:
    """One pending mutation of one mirrored object."""

    kind: ActionKind
    obj: MirroredObject
    upstream_name: str | None = None

    @classmethod
    def add(cls, obj: MirroredObject, upstream_name: str | None = None) -> Action:
        return cls(ActionKind.ADD, obj, upstream_name)

    @classmethod
    def update(cls, obj: MirroredObject, upstream_name: str | None = None) -> Action:
        return cls(ActionKind.UPDATE, obj, upstream_name)

    @classmethod
    def delete(cls, obj: MirroredObject, upstream_name: str | None = None) -> Action:
        return cls(ActionKind.DELETE, obj, upstream_name)

    @property
    def key(self) -> tuple[str, str, str]:
        """Queue key: two actions with the same key never run concurrently."""
        return self.obj.identity

    def __str__(self) -> str:
        kind = getattr(self.kind, "value", self.kind)
        return f'{kind} {self.obj.kind} "{self.obj.namespace}/{self.obj.name}"'


class ObjectClient(Protocol):
    """The subset of KubeClient that applying an action needs."""

    def get_object(self, resource: str, namespace: str, name: str) -> dict | None: ...

    def create_object(self, resource: str, namespace: str, body: dict) -> dict: ...

    def patch_object(self, resource: str, namespace: str, name: str, patch: dict) -> dict: ...

    def delete_object(self, resource: str, namespace: str, name: str) -> None: ...


def apply_action(client: ObjectClient, action: Action) -> None:
    """Perform *action* against the cluster.

    Raises SyncActionError on API failures and UnknownActionError when the
    action kind is not one of add/update/delete.
    """
    if action.kind == ActionKind.ADD:
        _add(client, action.obj, fallthrough=True)
    elif action.kind == ActionKind.UPDATE:
        _update(client, action.obj, fallthrough=True)
    elif action.kind == ActionKind.DELETE:
        _delete(client, action.obj)
    else:
        raise UnknownActionError(f"ignoring action of unknown kind {action.kind!r} for {action.obj.identity}")


def _add(client: ObjectClient, obj: MirroredObject, fallthrough: bool) -> None:
    try:
        client.create_object(obj.resource, obj.namespace, obj.to_manifest())
    except KubeAlreadyExists:
        if not fallthrough:
            raise SyncActionError(f"{obj.kind} {obj.namespace}/{obj.name} was deleted and recreated concurrently", "ADD")
        logger.debug("%s %s/%s already exists, updating", obj.kind, obj.namespace, obj.name)
        _update(client, obj, fallthrough=False)
    except KubeAPIError as exc:
        raise SyncActionError(f"error adding {obj.kind} {obj.namespace}/{obj.name}: {exc}", "ADD") from exc


def _update(client: ObjectClient, obj: MirroredObject, fallthrough: bool) -> None:
    try:
        existing = client.get_object(obj.resource, obj.namespace, obj.name)
    except KubeAPIError as exc:
        raise SyncActionError(f"error fetching {obj.kind} {obj.namespace}/{obj.name}: {exc}", "UPDATE") from exc

    if existing is None:
        if not fallthrough:
            raise SyncActionError(f"{obj.kind} {obj.namespace}/{obj.name} was deleted concurrently", "UPDATE")
        logger.debug("%s %s/%s not found, creating", obj.kind, obj.namespace, obj.name)
        _add(client, obj, fallthrough=False)
        return

    current = RECORD_TYPES[obj.kind].from_manifest(existing)
    patch = create_merge_patch(current.mutable_manifest(), obj.mutable_manifest())
    if not patch:
        logger.debug("%s %s/%s already up to date", obj.kind, obj.namespace, obj.name)
        return

    # Carry the server's resourceVersion so a concurrent writer causes a conflict.
    resource_version = (existing.get("metadata") or {}).get("resourceVersion")
    if resource_version:
        patch.setdefault("metadata", {})["resourceVersion"] = resource_version

    try:
        client.patch_object(obj.resource, obj.namespace, obj.name, patch)
    except KubeAPIError as exc:
        raise SyncActionError(f"error updating {obj.kind} {obj.namespace}/{obj.name}: {exc}", "UPDATE") from exc


def _delete(client: ObjectClient, obj: MirroredObject) -> None:
    try:
        client.delete_object(obj.resource, obj.namespace, obj.name)
    except KubeNotFound:
        logger.debug("%s %s/%s already deleted", obj.kind, obj.namespace, obj.name)
    except KubeAPIError as exc:
        raise SyncActionError(f"error deleting {obj.kind} {obj.namespace}/{obj.name}: {exc}", "DELETE") from exc
