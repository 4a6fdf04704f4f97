from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from footprint.core.network_monitor import ActivityEvent


@dataclass
class TimelineEvent:
    phase: str
    ts: str
    metadata: dict[str, Any] = field(default_factory=dict)


class Telemetry:
    """Phase timeline and counters for one analysis run."""

    def __init__(self) -> None:
        self._start = time.perf_counter()
        self._timeline: list[TimelineEvent] = []
        self._counters: dict[str, int] = {
            "request_count": 0,
            "response_count": 0,
            "finished_count": 0,
            "failed_count": 0,
        }

    def event(self, phase: str, metadata: dict[str, Any] | None = None) -> None:
        self._timeline.append(
            TimelineEvent(
                phase=phase,
                ts=datetime.now(tz=timezone.utc).isoformat(),
                metadata=metadata or {},
            )
        )

    def incr(self, counter: str, value: int = 1) -> None:
        self._counters[counter] = self._counters.get(counter, 0) + value

    def on_activity(self, event: ActivityEvent) -> None:
        self.incr(f"{event.kind}_count")

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)

    def snapshot(self) -> dict[str, Any]:
        return {
            "elapsed_ms": self.elapsed_ms,
            "counters": dict(self._counters),
            "timeline": [
                {"phase": event.phase, "ts": event.ts, "metadata": event.metadata}
                for event in self._timeline
            ],
        }
