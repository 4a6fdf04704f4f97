from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ResourceState(str, Enum):
    REQUESTED = "requested"
    RESPONDED = "responded"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ResourceState.FINISHED, ResourceState.FAILED)


class ResourceType(str, Enum):
    DOCUMENT = "document"
    STYLE = "style"
    SCRIPT = "script"
    MEDIA = "media"
    FONT = "font"
    OTHER = "other"


@dataclass
class ResourceRecord:
    """One observed network transfer.

    Mutated only by the monitor's dispatcher while the transfer is in flight;
    once ``state`` is terminal the record is frozen via ``seal``.
    """

    request_id: str
    url: str
    method: str = "GET"
    state: ResourceState = ResourceState.REQUESTED
    content_type: str = ""
    resource_type: ResourceType = ResourceType.OTHER
    status: int | None = None
    transfer_size: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    error_text: str | None = None
    started_at: float = 0.0
    finished_at: float | None = None
    _sealed: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_sealed", False):
            raise AttributeError(f"ResourceRecord {self.request_id} is immutable after its terminal event")
        object.__setattr__(self, name, value)

    def seal(self) -> None:
        object.__setattr__(self, "_sealed", True)

    @property
    def billable(self) -> bool:
        """Only finished transfers below 400 count towards byte totals."""
        if self.state != ResourceState.FINISHED:
            return False
        return self.status is None or self.status < 400

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "url": self.url,
            "method": self.method,
            "state": self.state.value,
            "content_type": self.content_type,
            "resource_type": self.resource_type.value,
            "status": self.status,
            "transfer_size": self.transfer_size,
            "error_text": self.error_text,
        }


@dataclass(frozen=True)
class Geometry:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class ElementDescriptor:
    selector: str
    tag: str
    kind: str
    text: str = ""
    role: str = ""
    element_id: str = ""
    class_name: str = ""
    aria_label: str = ""
    data_attributes: str = ""
    geometry: Geometry = field(default_factory=lambda: Geometry(0.0, 0.0, 0.0, 0.0))
    visible: bool = False
    disabled: bool = False
    has_click_handler: bool = False
    interactive: bool = False
    confidence: float = 0.0

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return (self.selector, self.text)

    @property
    def has_stable_id(self) -> bool:
        return bool(self.element_id) and self.selector.startswith("#")

    @property
    def has_valid_center(self) -> bool:
        x, y = self.geometry.center
        return self.visible and x > 0 and y > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "tag": self.tag,
            "kind": self.kind,
            "text": self.text,
            "role": self.role,
            "visible": self.visible,
            "disabled": self.disabled,
            "has_click_handler": self.has_click_handler,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class InteractionOutcome:
    success: bool
    strategy: str | None = None
    error: str | None = None
    elapsed_ms: int = 0
    network_activity: bool = False
    timed_out: bool = False
    attempts: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
            "network_activity": self.network_activity,
            "timed_out": self.timed_out,
            "attempts": [list(item) for item in self.attempts],
        }


@dataclass(frozen=True)
class TypeTally:
    bytes: int = 0
    count: int = 0


@dataclass(frozen=True)
class ResourceTally:
    by_type: dict[ResourceType, TypeTally]
    total_bytes: int
    resource_count: int
    excluded_count: int = 0
    duplicate_count: int = 0

    def __getitem__(self, resource_type: ResourceType | str) -> TypeTally:
        return self.by_type.get(ResourceType(resource_type), TypeTally())

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_bytes": self.total_bytes,
            "resource_count": self.resource_count,
            "excluded_count": self.excluded_count,
            "duplicate_count": self.duplicate_count,
            "by_type": {
                resource_type.value: {"bytes": tally.bytes, "count": tally.count}
                for resource_type, tally in self.by_type.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ResourceTally":
        by_type = {
            ResourceType(key): TypeTally(bytes=int(value.get("bytes", 0)), count=int(value.get("count", 0)))
            for key, value in (payload.get("by_type") or {}).items()
        }
        return cls(
            by_type=by_type,
            total_bytes=int(payload.get("total_bytes", 0)),
            resource_count=int(payload.get("resource_count", 0)),
            excluded_count=int(payload.get("excluded_count", 0)),
            duplicate_count=int(payload.get("duplicate_count", 0)),
        )


@dataclass(frozen=True)
class StepResult:
    """Outcome of one best-effort behavior sub-step."""

    name: str
    ok: bool
    reason: str | None = None


@dataclass(frozen=True)
class BehaviorReport:
    behavior: str
    steps: tuple[StepResult, ...] = ()

    @property
    def attempted(self) -> int:
        return len(self.steps)

    @property
    def succeeded(self) -> int:
        return sum(1 for step in self.steps if step.ok)

    @property
    def failures(self) -> tuple[StepResult, ...]:
        return tuple(step for step in self.steps if not step.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "behavior": self.behavior,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failures": [{"name": step.name, "reason": step.reason} for step in self.failures],
        }


@dataclass(frozen=True)
class GreenHostingResult:
    url: str
    green: bool
    hosted_by: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "green": self.green,
            "hosted_by": self.hosted_by,
            "duration_ms": self.duration_ms,
        }


@dataclass
class AnalysisResult:
    url: str
    timestamp: str
    options: dict[str, Any]
    duration_ms: int
    tally: ResourceTally
    resources: list[dict[str, Any]] = field(default_factory=list)
    green_hosting: GreenHostingResult | None = None
    g_co2e: float = 0.0
    fingerprint: str = ""
    cached: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "timestamp": self.timestamp,
            "options": self.options,
            "duration_ms": self.duration_ms,
            "tally": self.tally.to_dict(),
            "resources": self.resources,
            "green_hosting": self.green_hosting.to_dict() if self.green_hosting else None,
            "g_co2e": self.g_co2e,
            "fingerprint": self.fingerprint,
            "cached": self.cached,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AnalysisResult":
        green = payload.get("green_hosting")
        return cls(
            url=payload["url"],
            timestamp=payload["timestamp"],
            options=payload.get("options", {}),
            duration_ms=int(payload.get("duration_ms", 0)),
            tally=ResourceTally.from_dict(payload.get("tally", {})),
            resources=payload.get("resources", []),
            green_hosting=GreenHostingResult(
                url=green["url"],
                green=bool(green.get("green", False)),
                hosted_by=green.get("hosted_by"),
                duration_ms=int(green.get("duration_ms", 0)),
            )
            if green
            else None,
            g_co2e=float(payload.get("g_co2e", 0.0)),
            fingerprint=payload.get("fingerprint", ""),
            cached=bool(payload.get("cached", False)),
            metadata=payload.get("metadata", {}),
        )
