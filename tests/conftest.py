# tests/conftest.py
import asyncio
import typing as t
from pathlib import Path

import pytest

from assetsync.bus import JobEventBus
from assetsync.cancellation import CancellationRegistry
from assetsync.clients import Account, AssetVersion, LibraryAsset, Manifest
from assetsync.config import SyncSettings
from assetsync.exceptions import RemoteError
from assetsync.manager import JobManager


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


class SleepRecorder:
    """Stands in for asyncio.sleep: records delays, yields once, never waits."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeLibraryClient:
    """Scripted library client.

    ``manifest_script`` maps artifact id -> list of outcomes consumed in
    order (the last one repeats). An outcome is an exception to raise or a
    list of manifests to return.
    """

    def __init__(
        self,
        *,
        account: Account | Exception | None = Account(id="acc-1", display_name="tester"),
        library: list[LibraryAsset] | None = None,
        manifest_script: dict[str, list] | None = None,
        failing_urls: t.Iterable[str] = (),
        files: dict[str, bytes] | None = None,
    ):
        self.account = account
        self.library = library if library is not None else []
        self.manifest_script = manifest_script or {}
        self.failing_urls = set(failing_urls)
        self.files = files if files is not None else {"Content/Mesh.uasset": b"mesh"}
        self.calls: list[tuple] = []
        self.download_hook: t.Callable[[], t.Awaitable[None]] | None = None
        self.manifest_hook: t.Callable[[str], t.Awaitable[None]] | None = None

    async def get_account(self):
        self.calls.append(("account",))
        if isinstance(self.account, Exception):
            raise self.account
        return self.account

    async def get_library(self, account):
        self.calls.append(("library", account.id))
        return self.library

    async def get_manifests(self, namespace, asset_id, artifact_id):
        self.calls.append(("manifest", artifact_id))
        if self.manifest_hook:
            await self.manifest_hook(artifact_id)
        script = self.manifest_script.get(artifact_id)
        if script is None:
            return [
                Manifest(
                    artifact_id=artifact_id,
                    distribution_urls=["https://cdn-a.example", "https://cdn-b.example"],
                    build_version="1.0",
                )
            ]
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def download(self, manifest, url, destination: Path, on_progress):
        self.calls.append(("download", url))
        if self.download_hook:
            await self.download_hook()
        if url in self.failing_urls:
            raise RemoteError(f"distribution point {url} unavailable")
        total = len(self.files)
        for i, (rel, data) in enumerate(sorted(self.files.items()), start=1):
            target = destination / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
            on_progress(i / total, f"{i} / {total}")


class MemoryCache:
    def __init__(self):
        self.saved: list[dict] = []

    async def save(self, library):
        self.saved.append(library)


def make_library(*artifacts: str) -> list[LibraryAsset]:
    return [
        LibraryAsset(
            namespace="ns",
            asset_id=f"asset-{artifact}",
            title=f"Asset {artifact}",
            versions=[AssetVersion(artifact_id=artifact, engine_versions=["5.3"])],
        )
        for artifact in artifacts
    ]


@pytest.fixture()
def settings(tmp_path: Path) -> SyncSettings:
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    return SyncSettings(
        downloads_dir=downloads,
        retry_backoff_seconds=0,
        item_delay_seconds=0,
        max_transient_retries=5,
    )


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def client() -> FakeLibraryClient:
    return FakeLibraryClient()


@pytest.fixture()
def bus() -> JobEventBus:
    return JobEventBus(buffer_size=32, subscriber_queue_size=128)


@pytest.fixture()
def cancellations() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture()
def manager(client, settings, sleeper) -> JobManager:
    return JobManager(client, settings=settings, sleep=sleeper)


def phases(events) -> list[str]:
    return [e.phase.value for e in events]


async def drain(sub) -> list:
    """Collect every pending live event of a subscription without waiting."""
    out = []
    while True:
        try:
            out.append(sub.get_nowait())
        except asyncio.QueueEmpty:
            return out


async def wait_for(
    predicate: t.Callable[[], t.Awaitable[bool]] | t.Callable[[], bool], timeout=2.0, interval=0.01
):
    end = asyncio.get_event_loop().time() + timeout
    while asyncio.get_event_loop().time() < end:
        res = await predicate() if asyncio.iscoroutinefunction(predicate) else predicate()
        if res:
            return True
        await asyncio.sleep(interval)
    return False
