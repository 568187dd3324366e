import threading

from flashdeck.infrastructure.persistence import Debouncer, thread_timer


def test_schedule_replaces_previous_task(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)

    debouncer.schedule("k", lambda: calls.append(1))
    debouncer.schedule("k", lambda: calls.append(2))
    timers.fire_all()

    assert calls == [2]
    assert debouncer.pending_keys == []


def test_keys_are_independent(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)

    debouncer.schedule("a", lambda: calls.append("a"))
    debouncer.schedule("b", lambda: calls.append("b"))
    assert sorted(debouncer.pending_keys) == ["a", "b"]

    timers.fire_all()
    assert sorted(calls) == ["a", "b"]


def test_flush_runs_everything_once(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)
    debouncer.schedule("a", lambda: calls.append("a"))
    debouncer.schedule("b", lambda: calls.append("b"))

    assert debouncer.flush() == 2
    assert sorted(calls) == ["a", "b"]

    # Timers were cancelled, so nothing runs twice
    timers.fire_all()
    assert len(calls) == 2
    assert debouncer.flush() == 0


def test_cancel(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)
    debouncer.schedule("k", lambda: calls.append(1))

    assert debouncer.cancel("k")
    assert not debouncer.cancel("k")
    timers.fire_all()
    assert calls == []


def test_stale_timer_does_not_run_replaced_callback(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)
    debouncer.schedule("k", lambda: calls.append("old"))
    stale = timers.created[0]
    debouncer.schedule("k", lambda: calls.append("new"))

    # A timer that already started firing when it was cancelled
    stale.callback()
    assert calls == []

    timers.fire_all()
    assert calls == ["new"]


def test_callback_may_reschedule(timers):
    calls = []
    debouncer = Debouncer(0.1, timers)

    def first():
        calls.append("first")
        debouncer.schedule("k", lambda: calls.append("second"))

    debouncer.schedule("k", first)
    timers.fire_all()
    timers.fire_all()
    assert calls == ["first", "second"]


def test_thread_timer_fires():
    done = threading.Event()
    debouncer = Debouncer(0.01, thread_timer)
    debouncer.schedule("k", done.set)

    assert done.wait(timeout=2)
    assert debouncer.pending_keys == []
