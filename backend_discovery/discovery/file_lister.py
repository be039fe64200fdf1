"""Backend lister that reads load balancers from a YAML inventory file.

Expected layout::

    partitions:
      finance:
        - name: prod
          id: 7a1f
          labels: {team: payments}
          listeners:
            - name: http
              port: 80
              protocol: TCP
              members:
                - {address: 10.0.0.11, port: 8080}
                - {address: 10.0.0.12, port: 8080}

The file is read again on every call, so edits are picked up by the next
reconciliation pass without a restart. Between passes, ``watch`` polls the
file and tells subscribers which load balancers were added, changed or
removed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import BackendUnavailableError
from . import ChangeHandler
from .models import UpstreamListener, UpstreamLoadBalancer, UpstreamMember

logger = logging.getLogger(__name__)

Snapshot = dict[str, dict[str, UpstreamLoadBalancer]]


class FileLister:
    """Implements the BackendLister and ChangeNotifier protocols on top of a local inventory file."""

    def __init__(self, path: str | Path, watch_interval: float = 2.0):
        self._path = Path(path)
        self._watch_interval = watch_interval
        self._handlers: list[ChangeHandler] = []
        self._snapshot: Snapshot | None = None

    def list_partitions(self) -> list[str]:
        return sorted(self._load())

    def list_load_balancers(self, partition: str) -> list[UpstreamLoadBalancer]:
        return self._partition(self._load(), partition)

    # ── Change notification ─────────────────────────────────────────

    def subscribe(self, handler: ChangeHandler) -> None:
        self._handlers.append(handler)

    def watch(self, stop: threading.Event) -> None:
        """Poll the inventory every watch interval until *stop* is set."""
        logger.info("Watching %s every %ss", self._path, self._watch_interval)
        while True:
            try:
                self.poll()
            except Exception:
                logger.exception("Inventory poll failed")
            if stop.wait(self._watch_interval):
                break
        logger.info("Stopped watching %s", self._path)

    def poll(self) -> int:
        """Re-read the inventory and notify subscribers of what changed.

        The first successful poll only records a baseline. Load balancers are
        matched by upstream name; a partition that disappears is left alone,
        as in a reconciliation pass. Returns the number of notifications sent.
        """
        try:
            partitions = self._load()
            current: Snapshot = {
                partition: {lb.upstream_name: lb for lb in self._partition(partitions, partition)}
                for partition in sorted(partitions)
            }
        except BackendUnavailableError as exc:
            logger.warning("Keeping previous inventory: %s", exc)
            return 0

        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return 0

        events: list[tuple[str, tuple[Any, ...]]] = []
        for partition, lbs in current.items():
            old = previous.get(partition, {})
            events += [("on_add", (partition, lbs[n])) for n in sorted(lbs.keys() - old.keys())]
            events += [
                ("on_update", (partition, old[n], lbs[n]))
                for n in sorted(lbs.keys() & old.keys()) if lbs[n] != old[n]
            ]
            events += [("on_delete", (partition, old[n])) for n in sorted(old.keys() - lbs.keys())]

        for method, args in events:
            for handler in self._handlers:
                getattr(handler, method)(*args)

        if events:
            logger.info("Inventory changed, %d load balancers affected", len(events))
        return len(events)

    # ── Parsing ─────────────────────────────────────────────────────

    def _partition(self, partitions: dict[str, Any], partition: str) -> list[UpstreamLoadBalancer]:
        entries = partitions.get(partition) or []
        if not isinstance(entries, list):
            raise BackendUnavailableError(f"Partition {partition!r} in {self._path} must be a list")

        try:
            result = [self._parse_load_balancer(entry) for entry in entries]
        except (KeyError, TypeError, ValueError) as exc:
            raise BackendUnavailableError(
                f"Malformed load balancer in partition {partition!r} of {self._path}: {exc}"
            ) from exc

        logger.debug("Listed %d load balancers in %s", len(result), partition)
        return result

    def _load(self) -> dict[str, Any]:
        try:
            with open(self._path) as f:
                raw = yaml.safe_load(f) or {}
        except OSError as exc:
            raise BackendUnavailableError(f"Cannot read inventory {self._path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise BackendUnavailableError(f"Invalid YAML in inventory {self._path}: {exc}") from exc

        partitions = raw.get("partitions") if isinstance(raw, dict) else None
        if partitions is None:
            return {}
        if not isinstance(partitions, dict):
            raise BackendUnavailableError(f"'partitions' in {self._path} must be a mapping")
        return {str(k): v for k, v in partitions.items()}

    @staticmethod
    def _parse_load_balancer(entry: dict[str, Any]) -> UpstreamLoadBalancer:
        return UpstreamLoadBalancer(
            name=str(entry.get("name") or ""),
            id=str(entry.get("id") or ""),
            labels={str(k): str(v) for k, v in (entry.get("labels") or {}).items()},
            listeners=tuple(
                UpstreamListener(
                    name=str(listener.get("name") or ""),
                    port=int(listener["port"]),
                    protocol=str(listener.get("protocol") or "TCP"),
                    members=tuple(
                        UpstreamMember(address=str(m["address"]), port=int(m["port"]))
                        for m in listener.get("members") or []
                    ),
                )
                for listener in entry.get("listeners") or []
            ),
        )
