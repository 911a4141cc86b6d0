import time

from services.sweeper import ExpirySweeper


def test_run_once_sweeps_expired(sessions, clock):
    sessions.create("old", "7")
    clock.advance(300001)
    sessions.create("fresh", "7")

    assert ExpirySweeper(sessions).run_once() == 1
    assert sessions.pending_count() == 1


def test_background_sweep_and_stop(sessions, clock):
    sessions.create("old", "7")
    clock.advance(300001)
    sweeper = ExpirySweeper(sessions, interval=0.01)

    sweeper.start()
    deadline = time.monotonic() + 2
    while sessions.pending_count() and time.monotonic() < deadline:
        time.sleep(0.01)
    sweeper.stop()

    assert sessions.pending_count() == 0
    assert not sweeper.running


def test_stop_is_prompt_with_long_interval(sessions):
    sweeper = ExpirySweeper(sessions, interval=3600)
    sweeper.start()

    started = time.monotonic()
    sweeper.stop()

    assert time.monotonic() - started < 1
