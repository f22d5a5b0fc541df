from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .models import DEFAULT_JOB_ID


@dataclass
class SyncSettings:
    """Tunables for the event bus, the retry loop and the workflows."""

    downloads_dir: Path = field(default_factory=lambda: Path("downloads"))

    # Event bus
    replay_buffer_size: int = 32
    subscriber_queue_size: int = 128
    terminal_grace_seconds: float = 300.0

    # Remote calls
    retry_backoff_seconds: float = 1.0
    max_transient_retries: int | None = 30  # None = retry until success or cancel
    item_delay_seconds: float = 1.0

    default_job_id: str = DEFAULT_JOB_ID

    def __post_init__(self) -> None:
        self.downloads_dir = Path(self.downloads_dir)
        if self.replay_buffer_size < 1:
            raise ValueError("replay_buffer_size must be at least 1")
        if self.subscriber_queue_size < 1:
            raise ValueError("subscriber_queue_size must be at least 1")
        if self.max_transient_retries is not None and self.max_transient_retries < 0:
            raise ValueError("max_transient_retries must be >= 0 or None")
