import queue

from bouncer_cli.errors import TransportError
from bouncer_cli.reconciler import StatusReconciler


def test_refresh_posts_snapshot(gateway):
    gateway.add_game("g1")
    reconciler = StatusReconciler(gateway, "g1", interval=60)

    update = reconciler.refresh()

    assert update.snapshot.gameId == "g1"
    assert update.error is None
    assert reconciler.updates.get_nowait() == update


def test_refresh_failure_is_posted_not_raised(gateway):
    gateway.add_game("g1")
    gateway.status_failures.append(TransportError("Failed to get game status"))
    reconciler = StatusReconciler(gateway, "g1", interval=60)

    update = reconciler.refresh()

    assert update.snapshot is None
    assert str(update.error) == "Failed to get game status"


def test_invalidate_forces_a_fresh_read(gateway):
    gateway.add_game("g1")
    reconciler = StatusReconciler(gateway, "g1", interval=60)
    reconciler.start()
    try:
        first = reconciler.updates.get(timeout=5)
        gateway.admitted = 3
        reconciler.invalidate()
        second = reconciler.updates.get(timeout=5)
    finally:
        reconciler.stop(timeout=5)

    assert first.snapshot.admitted == 0
    assert second.snapshot.admitted == 3


def test_polls_on_interval(gateway):
    gateway.add_game("g1")
    reconciler = StatusReconciler(gateway, "g1", interval=0.05)
    reconciler.start()
    try:
        for _ in range(3):
            reconciler.updates.get(timeout=5)
    finally:
        reconciler.stop(timeout=5)

    assert len(gateway.status_calls) >= 3


def test_stop_ends_polling_and_drops_results(gateway):
    gateway.add_game("g1")
    updates = queue.Queue()
    reconciler = StatusReconciler(gateway, "g1", interval=60, updates=updates)
    reconciler.start()
    updates.get(timeout=5)

    reconciler.stop(timeout=5)

    assert not reconciler.running
    assert reconciler.refresh() is None
    assert updates.empty()


def test_unexpected_error_does_not_stop_polling(gateway):
    gateway.add_game("g1")
    gateway.status_failures.append(AttributeError("'list' object has no attribute 'get'"))
    reconciler = StatusReconciler(gateway, "g1", interval=0.05)
    reconciler.start()
    try:
        update = reconciler.updates.get(timeout=5)
        assert reconciler.running
    finally:
        reconciler.stop(timeout=5)

    assert update.snapshot.gameId == "g1"
    assert len(gateway.status_calls) >= 2


def test_on_update_sees_every_posted_update(gateway):
    gateway.add_game("g1")
    seen = []
    reconciler = StatusReconciler(gateway, "g1", interval=60, on_update=seen.append)

    first = reconciler.refresh()
    gateway.status_failures.append(TransportError("Failed to get game status"))
    second = reconciler.refresh()

    assert seen == [first, second]
