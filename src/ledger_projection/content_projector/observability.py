"""Content projector run counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

_REQUIRED_COUNTERS = (
    "blocks_seen",
    "blocks_below_start",
    "operations_ignored",
    "writes_applied",
    "writes_noop",
    "writes_failed",
)


@dataclass
class ProjectorRunMetrics:
    profile_id: str
    counters: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in _REQUIRED_COUNTERS:
            self.counters.setdefault(key, 0)

    def bump(self, key: str, delta: int = 1) -> None:
        if key not in self.counters:
            raise ValueError(f"unsupported metric counter: {key}")
        self.counters[key] = int(self.counters.get(key, 0)) + int(delta)

    def snapshot(self) -> dict[str, Any]:
        return {
            "generated_at_utc": datetime.now(tz=timezone.utc).isoformat(),
            "profile_id": self.profile_id,
            "metrics": dict(self.counters),
        }
