from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .models import Phase


@dataclass(frozen=True)
class ProgressEvent:
    """Progress message published for a job.

    ``progress`` is a fraction in ``[0, 1]``. ``details`` is copied into a
    read-only mapping so a published event cannot change under subscribers.
    """

    job_id: str
    phase: Phase
    message: str
    progress: float | None = None
    details: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.progress is not None:
            if not 0.0 <= self.progress <= 1.0:
                raise ValueError(f"progress must be within [0, 1], got {self.progress}")
            object.__setattr__(self, "progress", float(self.progress))
        if self.details is not None:
            object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    def is_terminal(self) -> bool:
        return self.phase.is_terminal()

    def to_dict(self) -> dict[str, Any]:
        """Wire form; absent progress/details are omitted."""
        d: dict[str, Any] = {
            "job_id": self.job_id,
            "phase": self.phase.value,
            "message": self.message,
        }
        if self.progress is not None:
            d["progress"] = self.progress
        if self.details is not None:
            d["details"] = dict(self.details)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressEvent:
        return cls(
            job_id=data["job_id"],
            phase=Phase.from_wire(data["phase"]),
            message=data.get("message", ""),
            progress=data.get("progress"),
            details=data.get("details"),
        )
