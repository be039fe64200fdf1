"""Tests for the YAML inventory lister."""

import os
import threading
import time
from unittest.mock import MagicMock

import pytest
import yaml

from backend_discovery.discovery import BackendLister, ChangeNotifier
from backend_discovery.discovery.file_lister import FileLister
from backend_discovery.discovery.models import UpstreamListener, UpstreamLoadBalancer, UpstreamMember
from backend_discovery.exceptions import BackendUnavailableError

INVENTORY = {
    "partitions": {
        "hr": [],
        "finance": [
            {
                "name": "prod",
                "id": "7a1f",
                "labels": {"team": "payments"},
                "listeners": [
                    {
                        "name": "http",
                        "port": 80,
                        "members": [{"address": "10.0.0.11", "port": 8080}],
                    },
                ],
            },
        ],
    },
}


def _write(tmp_path, data) -> str:
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.dump(data) if not isinstance(data, str) else data)
    return str(path)


class TestFileLister:
    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(FileLister(_write(tmp_path, INVENTORY)), BackendLister)

    def test_partitions_sorted(self, tmp_path):
        assert FileLister(_write(tmp_path, INVENTORY)).list_partitions() == ["finance", "hr"]

    def test_load_balancers(self, tmp_path):
        lbs = FileLister(_write(tmp_path, INVENTORY)).list_load_balancers("finance")
        assert lbs == [
            UpstreamLoadBalancer(
                name="prod",
                id="7a1f",
                labels={"team": "payments"},
                listeners=(UpstreamListener("http", 80, "TCP", (UpstreamMember("10.0.0.11", 8080),)),),
            ),
        ]

    def test_unknown_partition_empty(self, tmp_path):
        assert FileLister(_write(tmp_path, INVENTORY)).list_load_balancers("ops") == []

    def test_empty_file(self, tmp_path):
        lister = FileLister(_write(tmp_path, ""))
        assert lister.list_partitions() == []

    def test_rereads_file(self, tmp_path):
        path = _write(tmp_path, {"partitions": {"finance": []}})
        lister = FileLister(path)
        assert lister.list_partitions() == ["finance"]
        _write(tmp_path, INVENTORY)
        assert lister.list_partitions() == ["finance", "hr"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(BackendUnavailableError, match="Cannot read"):
            FileLister(tmp_path / "missing.yaml").list_partitions()

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(BackendUnavailableError, match="Invalid YAML"):
            FileLister(_write(tmp_path, "partitions: [unclosed")).list_partitions()

    def test_malformed_load_balancer(self, tmp_path):
        data = {"partitions": {"finance": [{"name": "prod", "listeners": [{"name": "http"}]}]}}
        with pytest.raises(BackendUnavailableError, match="Malformed"):
            FileLister(_write(tmp_path, data)).list_load_balancers("finance")

    def test_partitions_must_be_mapping(self, tmp_path):
        with pytest.raises(BackendUnavailableError):
            FileLister(_write(tmp_path, {"partitions": ["finance"]})).list_partitions()


def _with_member(address, port=8080):
    data = yaml.safe_load(yaml.dump(INVENTORY))
    data["partitions"]["finance"][0]["listeners"][0]["members"] = [{"address": address, "port": port}]
    return data


class TestChangeNotification:
    def _lister(self, tmp_path, data=INVENTORY):
        lister = FileLister(_write(tmp_path, data), watch_interval=0.01)
        handler = MagicMock()
        lister.subscribe(handler)
        return lister, handler

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(FileLister(_write(tmp_path, INVENTORY)), ChangeNotifier)

    def test_first_poll_is_baseline(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        assert lister.poll() == 0
        assert handler.mock_calls == []

    def test_unchanged_inventory_sends_nothing(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        lister.poll()
        assert lister.poll() == 0
        assert handler.mock_calls == []

    def test_added_load_balancer(self, tmp_path):
        lister, handler = self._lister(tmp_path, {"partitions": {"finance": []}})
        lister.poll()
        _write(tmp_path, INVENTORY)
        assert lister.poll() == 1
        partition, lb = handler.on_add.call_args.args
        assert (partition, lb.upstream_name) == ("finance", "prod-7a1f")

    def test_changed_load_balancer(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        lister.poll()
        _write(tmp_path, _with_member("10.0.0.99"))
        assert lister.poll() == 1
        partition, old, new = handler.on_update.call_args.args
        assert partition == "finance"
        assert old.listeners[0].members[0].address == "10.0.0.11"
        assert new.listeners[0].members[0].address == "10.0.0.99"

    def test_removed_load_balancer(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        lister.poll()
        _write(tmp_path, {"partitions": {"finance": [], "hr": []}})
        assert lister.poll() == 1
        partition, lb = handler.on_delete.call_args.args
        assert (partition, lb.name) == ("finance", "prod")

    def test_removed_partition_left_alone(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        lister.poll()
        _write(tmp_path, {"partitions": {"hr": []}})
        assert lister.poll() == 0
        handler.on_delete.assert_not_called()

    def test_unreadable_inventory_keeps_previous(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        lister.poll()
        _write(tmp_path, "partitions: [unclosed")
        assert lister.poll() == 0
        _write(tmp_path, _with_member("10.0.0.99"))
        assert lister.poll() == 1
        handler.on_update.assert_called_once()

    def test_watch_until_stopped(self, tmp_path):
        lister, handler = self._lister(tmp_path)
        stop = threading.Event()
        watcher = threading.Thread(target=lister.watch, args=(stop,))
        watcher.start()
        try:
            deadline = time.monotonic() + 5
            while lister._snapshot is None and time.monotonic() < deadline:
                time.sleep(0.01)
            staged = tmp_path / "staged.yaml"
            staged.write_text(yaml.dump(_with_member("10.0.0.99")))
            os.replace(staged, tmp_path / "inventory.yaml")
            while not handler.on_update.called and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            stop.set()
            watcher.join(5)
        assert not watcher.is_alive()
        handler.on_update.assert_called_once()
