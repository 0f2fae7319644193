# tests/test_store.py
import threading
from dataclasses import replace

import pytest

from correlator.event import Alert, Severity
from correlator.store import EventStore, ReadWriteLock

from conftest import BASE


@pytest.fixture
def base_log(normalizer):
    return normalizer.normalize("syslog", "h", "line")


def numbered_logs(base_log, count, start=0):
    return [replace(base_log, pid=i) for i in range(start, start + count)]


def make_alert(base_log, alert_id):
    return Alert(alert_id, "TEST", Severity.LOW, 0.1, f"alert {alert_id}", base_log, BASE)


def test_log_eviction_drops_oldest_chunk(base_log):
    store = EventStore()
    for log in numbered_logs(base_log, 10_000):
        store.append_log(log)
    assert store.log_count() == 10_000

    store.append_log(replace(base_log, pid=10_000))
    logs = store.snapshot_logs()
    assert len(logs) == 9_001
    assert [log.pid for log in logs] == list(range(1_000, 10_001))


def test_log_count_never_exceeds_cap(base_log):
    store = EventStore(max_logs=50, log_eviction_chunk=10)
    for log in numbered_logs(base_log, 200):
        store.append_log(log)
        assert store.log_count() <= 50
    assert store.snapshot_logs(1)[0].pid == 199


def test_alert_eviction(base_log):
    store = EventStore()
    store.append_alerts(make_alert(base_log, i) for i in range(1, 1_002))
    alerts = store.snapshot_alerts()
    assert len(alerts) == 901
    assert alerts[0].id == 101
    assert alerts[-1].id == 1_001


def test_snapshots_are_most_recent_oldest_first(base_log):
    store = EventStore()
    for log in numbered_logs(base_log, 10):
        store.append_log(log)
    assert [log.pid for log in store.snapshot_logs(3)] == [7, 8, 9]
    assert len(store.snapshot_logs(100)) == 10
    assert store.snapshot_logs(0) == []


def test_snapshot_is_a_copy(base_log):
    store = EventStore()
    store.append_log(base_log)
    snapshot = store.snapshot_logs()
    snapshot.clear()
    assert store.log_count() == 1


def test_empty_alert_batch_and_clear(base_log):
    store = EventStore()
    store.append_alerts([])
    assert store.alert_count() == 0
    store.append_log(base_log)
    store.append_alerts([make_alert(base_log, 1)])
    store.clear()
    assert (store.log_count(), store.alert_count()) == (0, 0)


def test_invalid_eviction_chunk():
    with pytest.raises(ValueError):
        EventStore(log_eviction_chunk=0)


def test_concurrent_writers_and_readers(base_log):
    store = EventStore(max_logs=500, log_eviction_chunk=50)
    errors = []

    def writer(offset):
        for log in numbered_logs(base_log, 300, start=offset):
            store.append_log(log)

    def reader():
        for _ in range(200):
            snapshot = store.snapshot_logs(100)
            if len(snapshot) > 100 or store.log_count() > 500:
                errors.append(len(snapshot))

    threads = [threading.Thread(target=writer, args=(i * 1000,)) for i in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert store.log_count() <= 500


def test_readers_share_the_lock_and_writers_exclude():
    lock = ReadWriteLock()
    inside = threading.Event()
    release = threading.Event()
    writer_done = threading.Event()

    def long_reader():
        with lock.read_locked():
            inside.set()
            release.wait(timeout=5)

    def writer():
        with lock.write_locked():
            writer_done.set()

    reader_thread = threading.Thread(target=long_reader)
    reader_thread.start()
    assert inside.wait(timeout=5)

    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    assert not writer_done.wait(timeout=0.2)

    release.set()
    reader_thread.join(timeout=5)
    writer_thread.join(timeout=5)
    assert writer_done.is_set()


def test_two_readers_hold_the_lock_together():
    lock = ReadWriteLock()
    with lock.read_locked():
        second = threading.Event()

        def other_reader():
            with lock.read_locked():
                second.set()

        t = threading.Thread(target=other_reader)
        t.start()
        assert second.wait(timeout=5)
        t.join(timeout=5)
