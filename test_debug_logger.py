#!/usr/bin/env python3
"""
Tests for the bounded debug log store and its subscribers.
"""

import logging
import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

import pytest
from pydantic import ValidationError

from core.debug_logger import LogStore, NetworkLog, ObservableBuffer, measure_performance
from models.constants import MAX_DEBUG_LOGS
from models.data_models import LogEntry, LogType, NetworkRequestRecord


def test_entries_are_most_recent_first():
    store = LogStore()
    store.add_log("first")
    store.add_log("second", LogType.SUCCESS)

    messages = [entry.message for entry in store.snapshot()]
    assert messages == ["second", "first"]
    assert store.snapshot()[0].type == LogType.SUCCESS
    assert store.snapshot()[1].type == LogType.INFO


def test_bounded_retention_keeps_newest():
    max_size = 5
    store = LogStore(max_size)
    total = 12
    for i in range(1, total + 1):
        store.add_log(f"entry {i}")

    snapshot = store.snapshot()
    assert len(snapshot) == max_size
    assert snapshot[0].message == f"entry {total}"
    # Oldest retained entry was appended at position N - max + 1
    assert snapshot[max_size - 1].message == f"entry {total - max_size + 1}"


def test_default_capacity():
    assert LogStore().max_size == MAX_DEBUG_LOGS == 1000


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        ObservableBuffer(0)


def test_clear_is_idempotent():
    store = LogStore()
    store.add_log("something")
    store.clear()
    assert store.snapshot() == ()
    store.clear()
    assert store.snapshot() == ()
    assert len(store) == 0


def test_clear_logs_records_the_clear():
    store = LogStore()
    store.add_log("one")
    store.add_log("two")
    store.clear_logs()

    snapshot = store.snapshot()
    assert len(snapshot) == 1
    assert snapshot[0].message == "Debug logs cleared"
    assert snapshot[0].type == LogType.INFO


def test_notifications_are_prefix_consistent():
    store = LogStore()
    received = []
    store.subscribe(received.append)

    store.add_log("A1")
    store.add_log("A2")
    store.add_log("A3")

    assert len(received) == 3
    assert [e.message for e in received[0]] == ["A1"]
    assert [e.message for e in received[1]] == ["A2", "A1"]
    assert [e.message for e in received[2]] == ["A3", "A2", "A1"]
    for earlier, later in zip(received, received[1:]):
        assert later[1:] == earlier


def test_clear_notifies_with_empty_snapshot():
    store = LogStore()
    store.add_log("x")
    received = []
    store.subscribe(received.append)
    store.clear()
    assert received == [()]


def test_subscriber_gets_no_history():
    store = LogStore()
    store.add_log("before")
    received = []
    store.subscribe(received.append)
    assert received == []

    store.add_log("after")
    assert len(received) == 1


def test_unsubscribe_stops_delivery_and_is_idempotent():
    store = LogStore()
    received = []
    subscription = store.subscribe(received.append)
    store.add_log("delivered")

    subscription.unsubscribe()
    subscription.unsubscribe()
    store.add_log("not delivered")
    store.clear()

    assert len(received) == 1
    assert store.subscriber_count == 0


def test_subscription_as_context_manager():
    store = LogStore()
    received = []
    with store.subscribe(received.append):
        store.add_log("inside")
    store.add_log("outside")
    assert [len(s) for s in received] == [1]


def test_failing_subscriber_does_not_block_others(caplog):
    store = LogStore()
    received = []

    def broken(_entries):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(received.append)

    with caplog.at_level(logging.ERROR, logger="core.debug_logger"):
        store.add_log("still delivered")

    assert len(received) == 1
    assert len(store) == 1
    assert "subscriber" in caplog.text


def test_entries_mirrored_to_python_log(caplog):
    store = LogStore()
    with caplog.at_level(logging.INFO, logger="gridapp.debug"):
        store.add_log("Upload failed", LogType.ERROR, {"status": 500})
        store.add_log("All good", LogType.SUCCESS)

    records = [r for r in caplog.records if r.name == "gridapp.debug"]
    assert records[0].levelno == logging.ERROR
    assert "[ERROR] Upload failed" in records[0].getMessage()
    assert '"status": 500' in records[0].getMessage()
    assert records[1].levelno == logging.INFO
    assert records[1].getMessage() == "[SUCCESS] All good"


def test_details_serialized_to_multiline_text():
    entry = LogEntry.create("Network request completed", "info", {"url": "https://x", "nested": {"a": 1}})
    assert entry.details.startswith("{\n")
    assert '"nested": {' in entry.details
    assert LogEntry.create("plain").details is None


def test_entries_are_immutable():
    entry = LogEntry.create("frozen")
    with pytest.raises(ValidationError):
        entry.message = "changed"


def test_unknown_type_rejected():
    with pytest.raises(ValueError):
        LogEntry.create("bad", "debug")


def test_network_log_is_bounded():
    network_log = NetworkLog(max_size=2)
    for i in range(3):
        network_log.append(NetworkRequestRecord(url=f"https://example.com/{i}", status=200))
    assert [r.url for r in network_log.snapshot()] == ["https://example.com/2", "https://example.com/1"]


def test_measure_performance_logs_duration():
    store = LogStore()
    with measure_performance(store, "Image load"):
        pass
    entry = store.snapshot()[0]
    assert entry.message == "Performance: Image load"
    assert '"duration"' in entry.details and "ms" in entry.details


def test_measure_performance_disabled():
    store = LogStore()
    with measure_performance(store, "skipped", enabled=False):
        pass
    assert len(store) == 0


def test_log_text_newest_first():
    store = LogStore()
    store.add_log("first")
    store.add_log("second", LogType.ERROR, {"status": 500})
    lines = store.get_log_text().splitlines()
    assert lines[0].endswith("[ERROR] second")
    assert lines[-1].endswith("[INFO] first")
    assert '"status": 500' in store.get_log_text()
