"""JSON merge patch (RFC 7386) generation."""

from __future__ import annotations

import copy
from typing import Any

_MISSING = object()


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    """Return the merge patch that turns *original* into *modified*.

    Keys absent from *modified* are removed (``None``), nested mappings are
    diffed recursively and lists are replaced as a whole.
    """
    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None

    for key, value in modified.items():
        old = original.get(key, _MISSING)
        if isinstance(value, dict) and isinstance(old, dict):
            nested = create_merge_patch(old, value)
            if nested:
                patch[key] = nested
        elif old is _MISSING or old != value:
            patch[key] = copy.deepcopy(value)
    return patch
