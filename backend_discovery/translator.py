"""Deterministic, length-bounded names and ownership labels for mirrored objects."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping

MAX_NAME_LENGTH = 63  # Kubernetes DNS_LABEL / label value limit
SHORT_HASH_LENGTH = 6
SEPARATOR = "-"

LABEL_BACKEND = "discovery.backend.io/backend"
LABEL_SERVICE = "discovery.backend.io/service"

# DNS-1123 label charset; length is not checked because hashname shortens it.
_UPSTREAM_NAME = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
# DNS-1035 label: mirrored names start with the backend name, so it must lead with a letter.
_BACKEND_NAME = re.compile(r"[a-z]([-a-z0-9]*[a-z0-9])?")


def hashname(limit: int, *components: str) -> str:
    """Join *components* with '-' and shorten the result to at most *limit* characters.

    A join that already fits is returned unchanged. Otherwise a short SHA-256
    fingerprint of the original join is computed and components are truncated
    from the last one backwards (each to ``limit // len(components)``
    characters, fingerprint included) until the join fits. If truncating
    every component is still not enough, the digest itself is returned.
    """
    parts = list(components)
    joined = SEPARATOR.join(parts)
    if len(joined) <= limit:
        return joined

    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    fingerprint = digest[:SHORT_HASH_LENGTH]
    budget = limit // len(parts)

    for i in range(len(parts) - 1, -1, -1):
        parts[i] = _truncate(budget, parts[i], fingerprint)
        joined = SEPARATOR.join(parts)
        if len(joined) <= limit:
            return joined

    return digest[:limit]


def _truncate(length: int, value: str, suffix: str) -> str:
    """Cut *value* to *length* characters, replacing its tail with *suffix*."""
    if length >= len(value):
        return value
    if length <= len(suffix):
        return suffix[:length]
    return value[: length - len(suffix)] + suffix


def build_name(backend_name: str, upstream_name: str) -> str:
    """Name of the mirrored object for *upstream_name* discovered in *backend_name*."""
    return hashname(MAX_NAME_LENGTH, backend_name, upstream_name)


def shorten_label_value(value: str) -> str:
    return hashname(MAX_NAME_LENGTH, value)


def build_labels(
    backend_name: str,
    upstream_name: str,
    existing: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return *existing* overlaid with the reserved ownership labels.

    Reserved keys always win over values already present in *existing*.
    The input mapping is left untouched.
    """
    labels = dict(existing or {})
    labels[LABEL_BACKEND] = shorten_label_value(backend_name)
    labels[LABEL_SERVICE] = shorten_label_value(upstream_name)
    return labels


def backend_selector(backend_name: str) -> str:
    """Label selector matching every object owned by *backend_name*."""
    return f"{LABEL_BACKEND}={shorten_label_value(backend_name)}"


def is_valid_name(name: str) -> bool:
    """True if *name* can be used as a component of a mirrored object name."""
    return bool(name) and _UPSTREAM_NAME.fullmatch(name) is not None


def is_valid_backend_name(name: str) -> bool:
    return bool(name) and len(name) <= MAX_NAME_LENGTH and _BACKEND_NAME.fullmatch(name) is not None
