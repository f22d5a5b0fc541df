from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

DEFAULT_JOB_ID = "default"


class Family(str, Enum):
    """Workflow families."""

    refresh = "refresh"
    download = "download"
    import_ = "import"
    create = "create"

    @property
    def start(self) -> Phase:
        return _FAMILY_PHASES[self][0]

    @property
    def complete(self) -> Phase:
        return _FAMILY_PHASES[self][1]

    @property
    def error(self) -> Phase:
        return _FAMILY_PHASES[self][2]


class Phase(str, Enum):
    """Job lifecycle phases; values are the wire names."""

    refresh_start = "refresh:start"
    refresh_library = "refresh:library"
    refresh_manifest = "refresh:manifest"
    refresh_item_error = "refresh:item_error"
    refresh_complete = "refresh:complete"
    refresh_error = "refresh:error"

    download_start = "download:start"
    download_progress = "download:progress"
    download_complete = "download:complete"
    download_error = "download:error"

    import_start = "import:start"
    import_copying = "import:copying"
    import_complete = "import:complete"
    import_error = "import:error"

    create_start = "create:start"
    create_downloading = "create:downloading"
    create_copying = "create:copying"
    create_complete = "create:complete"
    create_error = "create:error"

    cancel = "cancel"
    cancelled = "cancelled"

    @classmethod
    def from_wire(cls, name: str) -> Phase:
        """Look up a phase by wire name, raising ValueError for unknown names."""
        try:
            return _WIRE_TABLE[name]
        except KeyError:
            raise ValueError(f"Unknown phase: {name!r}") from None

    @property
    def family(self) -> Family | None:
        """Owning family, or None for the universal phases."""
        return _PHASE_FAMILY.get(self)

    def is_terminal(self) -> bool:
        """Check if no further events may follow this phase."""
        return self in _TERMINAL

    def __str__(self) -> str:
        return self.value


# (start, complete, error) per family
_FAMILY_PHASES: dict[Family, tuple[Phase, Phase, Phase]] = {
    Family.refresh: (Phase.refresh_start, Phase.refresh_complete, Phase.refresh_error),
    Family.download: (Phase.download_start, Phase.download_complete, Phase.download_error),
    Family.import_: (Phase.import_start, Phase.import_complete, Phase.import_error),
    Family.create: (Phase.create_start, Phase.create_complete, Phase.create_error),
}

_WIRE_TABLE: dict[str, Phase] = {p.value: p for p in Phase}

_PHASE_FAMILY: dict[Phase, Family] = {
    p: f for f in Family for p in Phase if p.value.split(":", 1)[0] == f.value
}

_TERMINAL = frozenset(
    [phase for phases in _FAMILY_PHASES.values() for phase in phases[1:]] + [Phase.cancelled]
)


@dataclass
class Job:
    """One run of a workflow under a job id."""

    id: str
    family: Family
    params: dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None

    last_phase: Phase | None = None
    last_message: str | None = None

    @property
    def running(self) -> bool:
        return self.started_at is not None and self.finished_at is None
