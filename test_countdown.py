from countdown import Countdown, ManualScheduler


def test_steps_then_finish():
    scheduler = ManualScheduler()
    steps = []
    finished = []
    countdown = Countdown(scheduler, on_step=steps.append, on_finished=lambda: finished.append(True))

    countdown.start()
    assert steps == [3]
    assert countdown.is_running()
    assert countdown.remaining() == 3

    scheduler.advance(0.5)
    assert steps == [3]
    scheduler.advance(0.5)
    assert steps == [3, 2]
    scheduler.advance(2.0)
    assert steps == [3, 2, 1]
    assert finished == [True]
    assert not countdown.is_running()
    assert scheduler.pending_count() == 0


def test_cancel_prevents_finish():
    scheduler = ManualScheduler()
    finished = []
    countdown = Countdown(scheduler, on_finished=lambda: finished.append(True))
    countdown.start()
    scheduler.advance(1.0)
    countdown.cancel()
    assert scheduler.pending_count() == 0
    scheduler.advance(10.0)
    assert finished == []


def test_restart_replaces_pending_step():
    scheduler = ManualScheduler()
    finished = []
    countdown = Countdown(scheduler, on_finished=lambda: finished.append(True), steps=2, interval_seconds=0.5)
    countdown.start()
    scheduler.advance(0.75)
    countdown.start()
    assert scheduler.pending_count() == 1
    scheduler.advance(0.5)
    assert finished == []
    scheduler.advance(0.5)
    assert finished == [True]
