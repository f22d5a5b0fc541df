import pytest
from conftest import SleepRecorder, phases

from assetsync.config import SyncSettings
from assetsync.exceptions import (
    CancelledError,
    RemoteError,
    RetriesExhaustedError,
    TransientRemoteError,
)
from assetsync.fileops import LocalFileOps
from assetsync.models import Family, Job, Phase
from assetsync.task import JobContext, JobOutcome, WorkflowRegistry


def make_ctx(bus, cancellations, client, **settings_kw):
    sleeper = SleepRecorder()
    settings = SyncSettings(**{"retry_backoff_seconds": 1.0, **settings_kw})
    ctx = JobContext(
        job=Job(id="job-r", family=Family.refresh),
        bus=bus,
        registry=cancellations,
        settings=settings,
        client=client,
        file_ops=LocalFileOps(),
        sleep=sleeper,
    )
    return ctx, sleeper


class Flaky:
    def __init__(self, failures, error=TransientRemoteError, on_call=None):
        self.failures = failures
        self.error = error
        self.on_call = on_call
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.on_call:
            self.on_call(self.calls)
        if self.calls <= self.failures:
            raise self.error(f"attempt {self.calls} failed")
        return "ok"


@pytest.mark.asyncio
@pytest.mark.parametrize("m", [0, 1, 3])
async def test_transient_failures_are_retried_with_fixed_backoff(bus, cancellations, client, m):
    ctx, sleeper = make_ctx(bus, cancellations, client)
    fn = Flaky(m)
    assert await ctx.retry_transient(fn, "manifest") == "ok"
    assert fn.calls == m + 1
    assert sleeper.calls == [1.0] * m


@pytest.mark.asyncio
async def test_retry_cap_raises_exhausted(bus, cancellations, client):
    ctx, sleeper = make_ctx(bus, cancellations, client, max_transient_retries=2)
    fn = Flaky(100)
    with pytest.raises(RetriesExhaustedError) as info:
        await ctx.retry_transient(fn, "manifest")
    assert fn.calls == 3
    assert info.value.attempts == 3
    assert isinstance(info.value.last_error, TransientRemoteError)
    assert isinstance(info.value, RemoteError)
    assert len(sleeper.calls) == 2


@pytest.mark.asyncio
async def test_other_remote_errors_are_not_retried(bus, cancellations, client):
    ctx, sleeper = make_ctx(bus, cancellations, client)
    fn = Flaky(1, error=RemoteError)
    with pytest.raises(RemoteError):
        await ctx.retry_transient(fn, "manifest")
    assert fn.calls == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
async def test_cancellation_interrupts_retry_loop(bus, cancellations, client):
    ctx, _ = make_ctx(bus, cancellations, client, max_transient_retries=None)

    def cancel_on_second(n):
        if n == 2:
            cancellations.request_cancel("job-r")

    fn = Flaky(100, on_call=cancel_on_second)
    with pytest.raises(CancelledError):
        await ctx.retry_transient(fn, "manifest")
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_enter_checks_cancellation_before_publishing(bus, cancellations, client):
    ctx, _ = make_ctx(bus, cancellations, client)
    await ctx.enter(Phase.refresh_start, "go")
    assert ctx.job.last_phase is Phase.refresh_start

    cancellations.request_cancel("job-r")
    with pytest.raises(CancelledError):
        await ctx.enter(Phase.refresh_library, "listing")
    assert phases(bus.subscribe("job-r").replay) == ["refresh:start"]


@pytest.mark.asyncio
async def test_pause_uses_item_delay(bus, cancellations, client):
    ctx, sleeper = make_ctx(bus, cancellations, client, item_delay_seconds=1.0)
    await ctx.pause()
    assert sleeper.calls == [1.0]


def test_workflow_registry():
    class Dummy:
        family = Family.download

        async def execute(self, job, ctx):
            return JobOutcome("ok")

    reg = WorkflowRegistry()
    d = Dummy()
    reg.add(d)
    assert reg.get(Family.download) is d
    assert reg.get(Family.create) is None
    assert reg.families() == [Family.download]
