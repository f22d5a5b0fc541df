import threading

from assetsync.cancellation import CancellationRegistry


def test_cancel_is_idempotent_and_monotonic():
    reg = CancellationRegistry()
    assert not reg.is_cancelled("j")

    reg.request_cancel("j")
    reg.request_cancel("j")
    for _ in range(3):
        assert reg.is_cancelled("j")
    assert len(reg) == 1


def test_cancel_is_scoped_to_one_job():
    reg = CancellationRegistry()
    reg.request_cancel("a")
    assert reg.is_cancelled("a")
    assert not reg.is_cancelled("b")


def test_release_forgets_finished_runs():
    reg = CancellationRegistry()
    reg.request_cancel("j")
    reg.release("j")
    reg.release("never-seen")
    assert not reg.is_cancelled("j")
    assert len(reg) == 0


def test_cancel_from_other_threads_is_visible():
    reg = CancellationRegistry()
    ids = [f"job-{i}" for i in range(50)]
    threads = [threading.Thread(target=reg.request_cancel, args=(jid,)) for jid in ids]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    assert all(reg.is_cancelled(jid) for jid in ids)
