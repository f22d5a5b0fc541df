from __future__ import annotations

import asyncio
import logging
import shutil
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .exceptions import CancelledError

logger = logging.getLogger("assetsync.fileops")

# Percent-of-files callback: (fraction, "copied / total")
CopyProgressFn = Callable[[float, str], None]


@dataclass
class CopyStats:
    copied: int = 0
    skipped: int = 0
    total: int = 0


class LocalFileOps:
    """Local filesystem operations used by the import and create workflows.

    Blocking calls run in worker threads; cancellation is polled between
    files.
    """

    async def copy_tree(
        self,
        src: Path,
        dst: Path,
        *,
        overwrite: bool = False,
        exclude: Iterable[str] = (),
        on_progress: CopyProgressFn | None = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> CopyStats:
        """Recursively copy ``src`` into ``dst``.

        Existing files are skipped unless ``overwrite``. Top-level names in
        ``exclude`` are left out. Progress is reported whenever the whole
        percentage changes.
        """
        if not src.is_dir():
            raise FileNotFoundError(f"source not found: {src}")

        excluded = {name.lower() for name in exclude}
        files = await asyncio.to_thread(_list_files, src, excluded)
        stats = CopyStats(total=len(files))
        last_percent = -1

        if on_progress:
            on_progress(0.0, f"0 / {stats.total}")

        for path in files:
            if is_cancelled and is_cancelled():
                raise CancelledError("Copy cancelled by user")
            target = dst / path.relative_to(src)
            if target.exists() and not overwrite:
                stats.skipped += 1
            else:
                await asyncio.to_thread(_copy_file, path, target)
                stats.copied += 1

            done = stats.copied + stats.skipped
            percent = done * 100 // stats.total
            if on_progress and percent != last_percent:
                last_percent = percent
                on_progress(percent / 100, f"{done} / {stats.total}")

        logger.info(f"Copied {src} -> {dst}: {stats.copied} copied, {stats.skipped} skipped")
        return stats

    async def remove_tree(self, path: Path) -> None:
        """Remove a directory tree, logging instead of raising on failure."""
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Cleanup failed for {path}: {e}")

    async def find_file(self, root: Path, suffix: str, max_depth: int = 4) -> Path | None:
        """Breadth-first search for the shallowest file ending in ``suffix``."""
        return await asyncio.to_thread(_find_bfs, root, suffix.lower(), max_depth)


def _list_files(src: Path, excluded: set[str]) -> list[Path]:
    out = []
    for path in sorted(src.rglob("*")):
        rel = path.relative_to(src)
        if rel.parts and rel.parts[0].lower() in excluded:
            continue
        if path.is_file():
            out.append(path)
    return out


def _copy_file(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)


def _find_bfs(root: Path, suffix: str, max_depth: int) -> Path | None:
    if not root.is_dir():
        return None
    queue: deque[tuple[Path, int]] = deque([(root, 0)])
    while queue:
        directory, depth = queue.popleft()
        try:
            children = sorted(directory.iterdir())
        except OSError:
            continue
        for child in children:
            if child.is_file() and child.name.lower().endswith(suffix):
                return child
        if depth < max_depth:
            queue.extend((c, depth + 1) for c in children if c.is_dir())
    return None


def sanitize_folder_name(title: str) -> str:
    """Make an asset title safe to use as a folder name."""
    for ch in '/\\:*?"<>|':
        title = title.replace(ch, "_")
    return title.strip().strip(".")
