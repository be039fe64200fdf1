"""Wires the reconciler, sync queue and clients together and handles signals."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType

from .config import AppConfig
from .discovery import BackendLister, ChangeNotifier
from .discovery.events import EventMirror
from .discovery.file_lister import FileLister
from .discovery.models import BackendIdentity
from .kube.client import KubeClient
from .metrics import DiscovererMetrics
from .reconciler import Reconciler
from .sync.queue import SyncQueue
from .sync.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


class Daemon:
    """One backend mirrored into one cluster: reconciler producing, queue workers consuming."""

    def __init__(self, config: AppConfig):
        self._config = config
        self._backend = BackendIdentity(name=config.backend.name, type=config.backend.type)
        self._metrics = DiscovererMetrics(self._backend.name, self._backend.type)
        self._client = KubeClient(config.kubernetes)
        self._lister: BackendLister = self._build_lister(config)
        self._queue = SyncQueue(
            self._client,
            self._metrics,
            workers=config.sync.workers,
            max_retries=config.sync.max_retries,
            rate_limiter=RateLimiter.from_settings(
                base_delay=config.sync.base_delay_seconds,
                max_delay=config.sync.max_delay_seconds,
                qps=config.sync.qps,
                burst=config.sync.burst,
            ),
        )
        self._reconciler = Reconciler(
            self._backend,
            self._lister,
            self._client,
            self._queue,
            self._metrics,
            interval_seconds=config.polling.interval_seconds,
        )
        self._stop = threading.Event()
        if isinstance(self._lister, ChangeNotifier):
            self._lister.subscribe(EventMirror(self._backend, self._queue, self._metrics))

    @staticmethod
    def _build_lister(config: AppConfig) -> BackendLister:
        return FileLister(config.inventory.path, watch_interval=config.inventory.watch_interval_seconds)

    def run_once(self, timeout: float | None = None) -> bool:
        """Run a single reconciliation pass and wait for the queue to drain.

        Returns False if any listing in the pass failed or the queue did not
        drain within *timeout* seconds.
        """
        self._queue.start()
        try:
            result = self._reconciler.reconcile()
            drained = self._queue.wait_until_empty(timeout)
            if not result.ok:
                logger.error(
                    "Reconciliation pass had %d failed listings", result.failures,
                    extra={"backend": self._backend.name},
                )
            if not drained:
                logger.warning("Sync queue did not drain within %ss", timeout)
            return result.ok and drained
        finally:
            self._queue.shutdown()

    def run(self) -> None:
        """Run until SIGTERM/SIGINT."""
        self._install_signal_handlers()
        if self._config.metrics.listen_port:
            self._metrics.serve(self._config.metrics.listen_port)
            logger.info("Serving metrics on port %d", self._config.metrics.listen_port)

        logger.info(
            "Daemon started for %s backend %r", self._backend.type, self._backend.name,
            extra={"backend": self._backend.name},
        )
        self._queue.start()
        watcher = self._start_watcher()
        try:
            self._reconciler.run(self._stop)
        finally:
            self._stop.set()
            if watcher is not None:
                watcher.join()
            self._queue.shutdown()
        logger.info("Daemon stopped")

    def _start_watcher(self) -> threading.Thread | None:
        """Watch the backend between passes when it can notify changes."""
        if not isinstance(self._lister, ChangeNotifier) or not self._config.inventory.watch_interval_seconds:
            return None
        watcher = threading.Thread(
            target=self._lister.watch, args=(self._stop,), name="inventory-watch", daemon=True,
        )
        watcher.start()
        return watcher

    def stop(self) -> None:
        self._stop.set()

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGHUP, self._handle_resync)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self.stop()

    def _handle_resync(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received SIGHUP, starting an immediate resync")
        self._reconciler.trigger()
