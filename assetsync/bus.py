from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from .events import ProgressEvent

logger = logging.getLogger("assetsync.bus")


class Subscription:
    """One subscriber's view of a job: a replay snapshot plus a live queue.

    Every event returned by :meth:`get` was published after ``replay`` was
    taken. ``get`` returns ``None`` once the bus has been closed.
    """

    def __init__(
        self,
        bus: JobEventBus,
        job_id: str,
        replay: list[ProgressEvent],
        maxsize: int,
    ):
        self.job_id = job_id
        self.replay = replay
        self.dropped = 0
        self._bus = bus
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(maxsize)
        self._closed = False
        self._finished = any(ev.is_terminal() for ev in replay)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        """True once the terminal event was handed out (replay or live)."""
        return self._finished

    def pending(self) -> int:
        return self._queue.qsize()

    def _deliver(self, event: ProgressEvent | None) -> None:
        # Called by the bus with the entry lock held
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.debug(f"Subscriber lagging on {self.job_id}, dropped oldest live event")
        self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent | None:
        """Wait for the next live event."""
        event = await self._queue.get()
        if event is not None and event.is_terminal():
            self._finished = True
        return event

    def get_nowait(self) -> ProgressEvent | None:
        """Next live event; raises asyncio.QueueEmpty when none is pending."""
        event = self._queue.get_nowait()
        if event is not None and event.is_terminal():
            self._finished = True
        return event

    def close(self) -> None:
        """Detach from the bus. Safe to call more than once."""
        if not self._closed:
            self._closed = True
            self._bus._unsubscribe(self)

    def _shutdown(self) -> None:
        self._closed = True
        self._deliver(None)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        """Iterate live events, stopping after the terminal one."""
        if self._finished:
            raise StopAsyncIteration
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class _Entry:
    """Replay buffer and subscriber set for one job id."""

    __slots__ = ("lock", "buffer", "subscribers", "terminal_at", "last_event")

    def __init__(self, capacity: int):
        self.lock = threading.Lock()
        self.buffer: deque[ProgressEvent] = deque(maxlen=capacity)
        self.subscribers: set[Subscription] = set()
        self.terminal_at: float | None = None
        self.last_event: ProgressEvent | None = None


class JobEventBus:
    """Per-job broadcast channel with a bounded replay buffer.

    ``publish`` never waits on subscribers. Entries are created on first use
    and reclaimed once terminal and ``grace_seconds`` old, checked whenever
    another terminal event is published. The map lock is only held for
    lookup; buffer and subscribers are guarded per job.
    """

    def __init__(
        self,
        buffer_size: int = 32,
        subscriber_queue_size: int = 128,
        grace_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._buffer_size = buffer_size
        self._queue_size = subscriber_queue_size
        self._grace = grace_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _entry(self, job_id: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                entry = _Entry(self._buffer_size)
                self._entries[job_id] = entry
                logger.debug(f"Created bus entry for {job_id}")
            return entry

    def publish(self, event: ProgressEvent) -> bool:
        """Buffer and broadcast an event.

        Returns False (and drops the event) if the job already published a
        terminal phase. Expired entries are reaped when a terminal event is
        published, so ordinary events never scan the whole map.
        """
        if event.is_terminal():
            self.sweep()
        entry = self._entry(event.job_id)
        with entry.lock:
            if entry.terminal_at is not None:
                logger.debug(
                    f"Dropping {event.phase.value} for {event.job_id}: job already terminal"
                )
                return False
            entry.buffer.append(event)
            entry.last_event = event
            if event.is_terminal():
                entry.terminal_at = self._clock()
            for sub in entry.subscribers:
                sub._deliver(event)
            receivers = len(entry.subscribers)

        logger.debug(
            f"[emit] job_id={event.job_id} phase={event.phase.value} "
            f"progress={event.progress} receivers={receivers} msg={event.message}"
        )
        return True

    def subscribe(self, job_id: str) -> Subscription:
        """Snapshot the replay buffer and attach a live queue atomically."""
        entry = self._entry(job_id)
        with entry.lock:
            sub = Subscription(self, job_id, list(entry.buffer), self._queue_size)
            if entry.terminal_at is None:
                entry.subscribers.add(sub)
            else:
                sub._closed = True
        logger.debug(f"Subscribed to {job_id} with {len(sub.replay)} buffered events")
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            entry = self._entries.get(sub.job_id)
        if entry is None:
            return
        with entry.lock:
            entry.subscribers.discard(sub)

    def last_event(self, job_id: str) -> ProgressEvent | None:
        with self._lock:
            entry = self._entries.get(job_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.last_event

    def is_terminal(self, job_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(job_id)
        if entry is None:
            return False
        with entry.lock:
            return entry.terminal_at is not None

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            entry = self._entries.get(job_id)
        if entry is None:
            return 0
        with entry.lock:
            return len(entry.subscribers)

    def reset(self, job_id: str) -> bool:
        """Discard a finished job's entry so the id can be reused.

        A non-terminal entry is kept: it may hold subscribers that connected
        before the job started.
        """
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                return False
            with entry.lock:
                if entry.terminal_at is None:
                    return False
            del self._entries[job_id]
        logger.debug(f"Reset bus entry for {job_id}")
        return True

    def sweep(self) -> int:
        """Remove terminal entries older than the grace period."""
        now = self._clock()
        removed = 0
        with self._lock:
            for job_id, entry in list(self._entries.items()):
                with entry.lock:
                    expired = entry.terminal_at is not None and now - entry.terminal_at >= self._grace
                if expired:
                    del self._entries[job_id]
                    removed += 1
        if removed:
            logger.debug(f"Reclaimed {removed} finished bus entries")
        return removed

    def close(self) -> None:
        """Drop every entry and wake all subscribers with end-of-stream."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            with entry.lock:
                for sub in entry.subscribers:
                    sub._shutdown()
                entry.subscribers.clear()
        logger.info(f"Event bus closed ({len(entries)} entries dropped)")

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
