# coordination/coordinator.py
"""
Debounced, de-duplicating fan-out of "cycle changed" notifications.

Many unrelated sources report the same underlying change within a few
milliseconds of each other. The coordinator queues those notifications,
waits for a quiet period (trailing-edge debounce), keeps only the latest
notification per cycle and publishes that one event to its subscribers.
A cycle that was dispatched less than ``duplicate_window_seconds`` ago is
not queued again.

The coordinator is driven from a single event loop. The ``_draining`` flag
is enough to keep drains from overlapping only because nothing preempts a
running drain; do not share an instance across threads.
"""
import itertools
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from coordination.extractors import (
    DEFAULT_EXTRACTORS,
    CycleId,
    Extractor,
    extract_cycle_id,
)
from coordination.models import (
    ConsolidatedEvent,
    CoordinatorStats,
    CycleChangeEvent,
    DispatchMarker,
    SubmitOutcome,
    Subscription,
    SubscriptionFilter,
    kind_name,
)
from coordination.timers import (
    Clock,
    Scheduler,
    TimerHandle,
    asyncio_scheduler,
    monotonic_clock,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.2
DEFAULT_DUPLICATE_WINDOW_SECONDS = 0.5


def consolidate(events: Iterable[CycleChangeEvent]) -> list[CycleChangeEvent]:
    """Keep the most recent event for each cycle id."""
    latest: dict[CycleId, CycleChangeEvent] = {}
    for event in events:
        current = latest.get(event.cycle_id)
        if current is None or (event.arrived_at, event.sequence) >= (
            current.arrived_at,
            current.sequence,
        ):
            latest[event.cycle_id] = event
    return list(latest.values())


class CycleEventCoordinator:
    def __init__(
        self,
        *,
        clock: Clock = monotonic_clock,
        scheduler: Scheduler = asyncio_scheduler,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        duplicate_window_seconds: float = DEFAULT_DUPLICATE_WINDOW_SECONDS,
        extractors: tuple[Extractor, ...] = DEFAULT_EXTRACTORS,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self._debounce_seconds = debounce_seconds
        self._duplicate_window_seconds = duplicate_window_seconds
        self._extractors = extractors

        self._queue: list[CycleChangeEvent] = []
        self._subscriptions: dict[int, Subscription] = {}
        self._subscription_ids = itertools.count(1)
        self._sequence = itertools.count()
        self._timer: TimerHandle | None = None
        self._last_dispatched: DispatchMarker | None = None
        self._draining = False

    # ---------- intake ----------

    def submit(self, kind: Any, payload: Mapping[str, Any] | None) -> SubmitOutcome:
        """
        Offer a raw notification to the coordinator.

        Returns IGNORED when the payload carries no cycle id and DUPLICATE
        when the same cycle was dispatched within the duplicate window; in
        the DUPLICATE case the raiser should not let its own signal travel
        any further.
        """
        kind = kind_name(kind)
        cycle_id = extract_cycle_id(payload, self._extractors)
        if cycle_id is None:
            logger.debug("Ignoring %s notification without a cycle id", kind)
            return SubmitOutcome.IGNORED

        if self._is_recent_dispatch(cycle_id):
            logger.debug("Suppressed duplicate %s notification for cycle %s", kind, cycle_id)
            return SubmitOutcome.DUPLICATE

        self._queue.append(
            CycleChangeEvent(
                kind=kind,
                cycle_id=cycle_id,
                payload=dict(payload),
                arrived_at=self._clock(),
                sequence=next(self._sequence),
            )
        )
        self._restart_timer()
        logger.debug(
            "Queued %s notification for cycle %s (queue=%d)",
            kind, cycle_id, len(self._queue),
        )
        return SubmitOutcome.QUEUED

    def _is_recent_dispatch(self, cycle_id: CycleId) -> bool:
        marker = self._last_dispatched
        if marker is None or marker.cycle_id != cycle_id:
            return False
        return self._clock() - marker.dispatched_at < self._duplicate_window_seconds

    # ---------- debounce ----------

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler(self._debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.drain()

    def drain(self) -> list[ConsolidatedEvent]:
        """
        Publish the queued batch, one event per cycle id.

        A no-op while another drain is running. Notifications submitted by
        subscribers during the drain are kept for the next batch.
        """
        if self._draining or not self._queue:
            return []

        self._draining = True
        batch, self._queue = self._queue, []
        dispatched: list[ConsolidatedEvent] = []
        try:
            batch_time = self._clock()
            for event in consolidate(batch):
                dispatched.append(self._dispatch(event, batch_time))
        finally:
            self._draining = False
            if self._queue and self._timer is None:
                self._restart_timer()

        logger.debug("Drained %d notifications into %d events", len(batch), len(dispatched))
        return dispatched

    # ---------- dispatch ----------

    def _dispatch(self, event: CycleChangeEvent, batch_time: float) -> ConsolidatedEvent:
        self._last_dispatched = DispatchMarker(
            cycle_id=event.cycle_id,
            kind=event.kind,
            dispatched_at=batch_time,
        )
        consolidated = ConsolidatedEvent(
            cycle_id=event.cycle_id,
            kind=event.kind,
            payload=event.payload,
            dispatched_at=batch_time,
        )
        notified = self._notify(consolidated)
        logger.info(
            "Dispatched %s event for cycle %s to %d subscriber(s)",
            consolidated.kind, consolidated.cycle_id, notified,
        )
        return consolidated

    def _copy_for_subscriber(self, event: ConsolidatedEvent) -> ConsolidatedEvent:
        try:
            return event.model_copy(deep=True)
        except Exception:
            # Payload holds something deepcopy refuses; share nested values instead
            logger.exception(
                "Could not deep-copy event for cycle %s; delivering a shallow copy",
                event.cycle_id,
            )
            return event.model_copy(update={"payload": dict(event.payload)})

    def _notify(self, event: ConsolidatedEvent) -> int:
        notified = 0
        # Callbacks may subscribe or unsubscribe while we iterate
        for subscription in list(self._subscriptions.values()):
            if not subscription.filters.matches(event):
                continue
            delivered = self._copy_for_subscriber(event)
            try:
                subscription.callback(delivered)
            except Exception:
                logger.exception(
                    "Subscriber %s failed handling event for cycle %s",
                    subscription.id, event.cycle_id,
                )
                continue
            notified += 1
        return notified

    # ---------- subscriptions ----------

    def subscribe(
        self,
        callback: Callable[[ConsolidatedEvent], Any],
        filters: SubscriptionFilter | None = None,
    ) -> Callable[[], None]:
        """Register ``callback``; call the returned function to unsubscribe."""
        subscription = Subscription(
            id=next(self._subscription_ids),
            callback=callback,
            filters=filters or SubscriptionFilter(),
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug("Added subscriber %s", subscription.id)

        def cancel() -> None:
            if self._subscriptions.pop(subscription.id, None) is not None:
                logger.debug("Removed subscriber %s", subscription.id)

        return cancel

    # ---------- diagnostics ----------

    def stats(self) -> CoordinatorStats:
        return CoordinatorStats(
            last_dispatched=self._last_dispatched,
            queue_length=len(self._queue),
            subscriber_count=len(self._subscriptions),
            draining=self._draining,
        )

    def reset(self) -> None:
        """Drop pending work and dispatch history. Subscriptions are kept."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._queue = []
        self._last_dispatched = None
        self._draining = False
        logger.debug("Coordinator state cleared")
