"""Domain events and the observer list that carries them out of the core.

Core components never perform I/O themselves; after a mutation succeeds
they emit a ``DomainEvent`` and every subscribed observer is called in
turn. The HTTP layer subscribes a relay that forwards events to webhooks,
and the oracle fulfiller subscribes to pick up new data requests.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    POLICY_CREATED = "policy.created"
    POLICY_CANCELLED = "policy.cancelled"
    POLICY_EXPIRED = "policy.expired"
    CLAIM_INITIATED = "claim.initiated"
    CLAIM_PROCESSED = "claim.processed"
    WEATHER_REQUESTED = "weather.requested"
    WEATHER_FULFILLED = "weather.fulfilled"
    WEATHER_RECORDED = "weather.recorded"
    TREASURY_FUNDED = "treasury.funded"
    TREASURY_WITHDRAWN = "treasury.withdrawn"
    REFUND_WITHDRAWN = "refund.withdrawn"


@dataclass(frozen=True)
class DomainEvent:
    event_type: EventType
    occurred_at: int
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)


Observer = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def emit(self, event_type: EventType, occurred_at: int, **payload: Any) -> DomainEvent:
        event = DomainEvent(event_type=event_type, occurred_at=occurred_at, payload=payload)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception(
                    "Event observer %r failed on %s (%s)",
                    observer, event.event_type.value, event.event_id,
                )
        return event
