# coordination/models.py
"""
Event and subscription types for the cycle event coordinator.

Every model is frozen: once an event is dispatched, subscribers get their
own deep copy and cannot affect what other subscribers see.
"""
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coordination.extractors import CycleId


class NotificationKind(str, Enum):
    """Notification kinds raised by the system's own sources."""
    ACTIVE_CYCLE_CHANGED = "active-cycle-changed"
    CYCLE_CHANGED = "cycle-changed"
    CYCLE_SELECTED = "cycle-selected"
    SYNC_CYCLE = "sync-cycle"
    ACADEMIC_CYCLE_CHANGE = "academic-cycle-change"
    CYCLE_STATE_CHANGED = "cycle-state-changed"


def kind_name(kind: Any) -> str:
    """Plain string form of a notification kind."""
    if isinstance(kind, Enum):
        return str(kind.value)
    return str(kind)


class SubmitOutcome(str, Enum):
    """What happened to a submitted notification."""
    QUEUED = "QUEUED"
    # Same cycle was dispatched moments ago; the raiser should stop propagating it
    DUPLICATE = "DUPLICATE"
    # No cycle id could be extracted from the payload
    IGNORED = "IGNORED"


class CycleChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    cycle_id: CycleId
    payload: dict[str, Any] = Field(default_factory=dict)
    arrived_at: float
    # Submission order, breaks ties between equal clock readings
    sequence: int = 0


class ConsolidatedEvent(BaseModel):
    """The single event published for one cycle in one batch."""
    model_config = ConfigDict(frozen=True)

    cycle_id: CycleId
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    dispatched_at: float


class DispatchMarker(BaseModel):
    model_config = ConfigDict(frozen=True)

    cycle_id: CycleId
    kind: str
    dispatched_at: float


class SubscriptionFilter(BaseModel):
    """Restricts a subscription by notification kind and/or cycle id."""
    model_config = ConfigDict(frozen=True)

    kinds: frozenset[str] | None = None
    cycle_id: CycleId | None = None

    @field_validator("kinds", mode="before")
    @classmethod
    def _plain_kinds(cls, value: Any) -> Any:
        if value is None:
            return value
        if isinstance(value, str):
            return frozenset({kind_name(value)})
        return frozenset(kind_name(kind) for kind in value)

    def matches(self, event: ConsolidatedEvent) -> bool:
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.cycle_id is not None and self.cycle_id != event.cycle_id:
            return False
        return True


class Subscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    callback: Callable[[ConsolidatedEvent], Any]
    filters: SubscriptionFilter = Field(default_factory=SubscriptionFilter)


class CoordinatorStats(BaseModel):
    last_dispatched: DispatchMarker | None = None
    queue_length: int = 0
    subscriber_count: int = 0
    draining: bool = False
