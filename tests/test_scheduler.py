"""Tests for the sync scheduler and its no-overlap guard."""

import threading

from bgg_sync.sync.scheduler import SyncScheduler

WAIT = 5.0


class BlockingSync:
    def __init__(self):
        self.runs = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        self.runs += 1
        self.started.set()
        assert self.release.wait(WAIT)
        return "done"


def test_concurrent_checks_run_a_single_sync():
    run_sync = BlockingSync()
    scheduler = SyncScheduler(run_sync, is_due=lambda: True)
    results = []

    worker = threading.Thread(target=lambda: results.append(scheduler.check_and_sync()))
    worker.start()
    assert run_sync.started.wait(WAIT)

    assert scheduler.is_syncing
    assert scheduler.check_and_sync() is False
    assert scheduler.trigger_sync() is None

    run_sync.release.set()
    worker.join(WAIT)

    assert results == [True]
    assert run_sync.runs == 1
    assert not scheduler.is_syncing


def test_guard_is_released_after_a_failed_sync():
    calls = []

    def failing_sync():
        calls.append("run")
        raise RuntimeError("BGG is down")

    scheduler = SyncScheduler(failing_sync, is_due=lambda: True)

    assert scheduler.check_and_sync() is False
    assert not scheduler.is_syncing
    assert scheduler.trigger_sync() is None
    assert calls == ["run", "run"]


def test_sync_not_due_is_skipped():
    calls = []
    scheduler = SyncScheduler(lambda: calls.append("run"), is_due=lambda: False)

    assert scheduler.check_and_sync() is False
    assert calls == []


def test_manual_trigger_ignores_schedule():
    scheduler = SyncScheduler(lambda: "scheduled", is_due=lambda: False)

    assert scheduler.trigger_sync() == "scheduled"
    assert scheduler.trigger_sync(lambda: "custom") == "custom"


def test_background_loop_checks_and_stops():
    checked = threading.Event()

    def is_due():
        checked.set()
        return False

    scheduler = SyncScheduler(lambda: None, is_due=is_due, interval_s=0.01, warmup_s=0)
    scheduler.start()
    try:
        assert scheduler.is_running
        assert checked.wait(WAIT)
    finally:
        scheduler.stop(timeout=WAIT)

    assert not scheduler.is_running


def test_stop_during_warmup_skips_first_check():
    calls = []
    scheduler = SyncScheduler(lambda: calls.append("run"), is_due=lambda: True,
                              interval_s=60, warmup_s=60)

    scheduler.start()
    scheduler.stop(timeout=WAIT)

    assert calls == []
    assert not scheduler.is_running


def test_reset_replaces_the_guard():
    run_sync = BlockingSync()
    scheduler = SyncScheduler(run_sync, is_due=lambda: True)
    worker = threading.Thread(target=scheduler.check_and_sync)
    worker.start()
    assert run_sync.started.wait(WAIT)

    scheduler.reset()

    assert not scheduler.is_syncing
    run_sync.release.set()
    worker.join(WAIT)
