"""State diff engine — desired vs. current mirrored objects."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import NamedTuple

from ..kube.models import MirroredObject

logger = logging.getLogger(__name__)


class DiffResult(NamedTuple):
    add: list[MirroredObject]
    update: list[MirroredObject]
    delete: list[MirroredObject]

    @property
    def empty(self) -> bool:
        return not (self.add or self.update or self.delete)


def _index(objects: Iterable[MirroredObject], label: str) -> dict[tuple[str, str, str], MirroredObject]:
    index: dict[tuple[str, str, str], MirroredObject] = {}
    for obj in objects:
        if obj.identity in index:
            logger.warning("Duplicate %s object %s/%s ignored", label, obj.namespace, obj.name)
            continue
        index[obj.identity] = obj
    return index


def diff(desired: Iterable[MirroredObject], current: Iterable[MirroredObject]) -> DiffResult:
    """Compare *desired* against *current* by identity.

    Returns a DiffResult where:
    - add: desired objects with no current counterpart
    - update: desired objects whose current counterpart has different content
    - delete: current objects that are no longer desired

    Each bucket is sorted by identity, so the result does not depend on the
    order of either input.
    """
    wanted = _index(desired, "desired")
    existing = _index(current, "current")

    add: list[MirroredObject] = []
    update: list[MirroredObject] = []
    delete: list[MirroredObject] = []

    for identity in sorted(existing.keys() - wanted.keys()):
        delete.append(existing[identity])

    for identity in sorted(wanted):
        obj = wanted[identity]
        current_obj = existing.get(identity)
        if current_obj is None:
            add.append(obj)
        elif not obj.same_content(current_obj):
            update.append(obj)

    logger.debug(
        "Diff: %d to add, %d to update, %d to delete, %d unchanged",
        len(add), len(update), len(delete),
        len(wanted) - len(add) - len(update),
    )
    return DiffResult(add, update, delete)
