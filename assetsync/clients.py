"""Interfaces of the external collaborators the workflows call into.

A library client raises :class:`~assetsync.exceptions.TransientRemoteError`
for upstream timeouts (retried) and :class:`~assetsync.exceptions.RemoteError`
for anything else (not retried).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

ProgressFn = Callable[[float, str], None]


@dataclass
class Account:
    id: str
    display_name: str | None = None


@dataclass
class AssetVersion:
    artifact_id: str
    engine_versions: list[str] = field(default_factory=list)


@dataclass
class LibraryAsset:
    namespace: str
    asset_id: str
    title: str
    versions: list[AssetVersion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "asset_id": self.asset_id,
            "title": self.title,
            "versions": [
                {"artifact_id": v.artifact_id, "engine_versions": list(v.engine_versions)}
                for v in self.versions
            ],
        }


@dataclass
class Manifest:
    """Asset manifest with the distribution points it can be fetched from."""

    artifact_id: str
    distribution_urls: list[str] = field(default_factory=list)
    build_version: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class LibraryClient(Protocol):
    """Remote library API (authentication is the client's concern)."""

    async def get_account(self) -> Account | None:
        """Return the logged-in account, or None when unavailable."""
        ...

    async def get_library(self, account: Account) -> list[LibraryAsset] | None:
        """List library assets for the account."""
        ...

    async def get_manifests(
        self, namespace: str, asset_id: str, artifact_id: str
    ) -> list[Manifest]:
        """Fetch manifests for one artifact version."""
        ...

    async def download(
        self,
        manifest: Manifest,
        url: str,
        destination: Path,
        on_progress: ProgressFn,
    ) -> None:
        """Download manifest contents from one distribution point.

        ``on_progress`` takes a fraction in [0, 1] and a message.
        """
        ...


class LibraryCache(Protocol):
    """On-disk library cache written after a refresh."""

    async def save(self, library: dict[str, Any]) -> None: ...
