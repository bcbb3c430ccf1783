from coordination.coordinator import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_DUPLICATE_WINDOW_SECONDS,
    CycleEventCoordinator,
    consolidate,
)
from coordination.extractors import extract_cycle_id
from coordination.models import (
    ConsolidatedEvent,
    CoordinatorStats,
    CycleChangeEvent,
    DispatchMarker,
    NotificationKind,
    SubmitOutcome,
    SubscriptionFilter,
)

__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_DUPLICATE_WINDOW_SECONDS",
    "CycleEventCoordinator",
    "consolidate",
    "extract_cycle_id",
    "ConsolidatedEvent",
    "CoordinatorStats",
    "CycleChangeEvent",
    "DispatchMarker",
    "NotificationKind",
    "SubmitOutcome",
    "SubscriptionFilter",
]
