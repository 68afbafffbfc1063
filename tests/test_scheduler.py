import threading

import pytest

from app.docflow.modules.workflow.scheduler import ManualScheduler, ThreadScheduler, scheduler_from_config


def test_manual_scheduler_drains_chained_callbacks():
    sched = ManualScheduler()
    ran = []

    def first():
        ran.append("first")
        sched.after(20, lambda: ran.append("second"))

    sched.after(10, first)
    assert sched.pending() == 1
    assert ran == []

    assert sched.run_pending() == 2
    assert ran == ["first", "second"]
    assert sched.history == [10, 20]
    assert sched.pending() == 0
    assert sched.run_next() is False


def test_manual_scheduler_shutdown_drops_queue():
    sched = ManualScheduler()
    sched.after(5, lambda: None)
    sched.shutdown()
    assert sched.pending() == 0


def test_thread_scheduler_runs_callback():
    sched = ThreadScheduler()
    done = threading.Event()
    sched.after(0, done.set)
    assert done.wait(5)
    sched.shutdown()


def test_thread_scheduler_survives_failing_callback():
    sched = ThreadScheduler()
    done = threading.Event()

    def boom():
        raise RuntimeError("boom")

    sched.after(0, boom)
    sched.after(10, done.set)
    assert done.wait(5)
    sched.shutdown()


def test_thread_scheduler_shutdown_cancels_pending():
    sched = ThreadScheduler()
    fired = threading.Event()
    sched.after(60_000, fired.set)
    assert sched.pending() == 1
    sched.shutdown()
    assert sched.pending() == 0

    sched.after(0, fired.set)
    assert not fired.wait(0.2)


def test_scheduler_from_config():
    assert isinstance(scheduler_from_config({"WORKFLOW_SCHEDULER": "manual"}), ManualScheduler)
    threaded = scheduler_from_config({})
    assert isinstance(threaded, ThreadScheduler)
    threaded.shutdown()
    with pytest.raises(RuntimeError):
        scheduler_from_config({"WORKFLOW_SCHEDULER": "celery"})
