# pylint: disable=missing-module-docstring,missing-function-docstring

import threading

from orchestrator.run_tracker import RunLease, RunTracker, acquire_lease


def test_reserve_then_release():
    tracker = RunTracker()

    assert tracker.is_running("alpha") is False
    assert tracker.try_reserve("alpha") is True
    assert tracker.is_running("alpha") is True

    tracker.release("alpha")
    assert tracker.is_running("alpha") is False


def test_second_reservation_fails_without_mutation():
    tracker = RunTracker()

    assert tracker.try_reserve("alpha") is True
    assert tracker.try_reserve("alpha") is False

    assert tracker.running() == frozenset({"alpha"})

    # One release is enough: the failed attempt added nothing
    tracker.release("alpha")
    assert tracker.running() == frozenset()


def test_release_is_idempotent_and_safe_when_absent():
    tracker = RunTracker()

    tracker.release("never-reserved")
    tracker.try_reserve("alpha")
    tracker.release("alpha")
    tracker.release("alpha")

    assert tracker.is_running("alpha") is False


def test_slugs_are_independent():
    tracker = RunTracker()

    assert tracker.try_reserve("alpha") is True
    assert tracker.try_reserve("beta") is True

    tracker.release("alpha")
    assert tracker.is_running("beta") is True


def test_concurrent_reservations_exactly_one_wins():
    tracker = RunTracker()
    workers = 16
    barrier = threading.Barrier(workers)
    results: list[bool] = []
    results_lock = threading.Lock()

    def contender() -> None:
        barrier.wait()
        won = tracker.try_reserve("alpha")
        with results_lock:
            results.append(won)

    threads = [threading.Thread(target=contender) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == workers - 1
    assert tracker.running() == frozenset({"alpha"})


# ---------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------

def test_lease_releases_exactly_once():
    tracker = RunTracker()

    lease = acquire_lease(tracker, "alpha")
    assert isinstance(lease, RunLease)
    assert lease.release() is True
    assert lease.release() is False
    assert lease.released is True


def test_stale_lease_does_not_free_a_newer_run():
    tracker = RunTracker()

    first = acquire_lease(tracker, "alpha")
    assert first is not None
    first.release()

    second = acquire_lease(tracker, "alpha")
    assert second is not None

    # Late cleanup from the first run must not drop the second reservation
    first.release()
    assert tracker.is_running("alpha") is True

    second.release()
    assert tracker.is_running("alpha") is False


def test_acquire_lease_returns_none_when_running():
    tracker = RunTracker()

    assert acquire_lease(tracker, "alpha") is not None
    assert acquire_lease(tracker, "alpha") is None
