"""In-memory webhook registration store.

The interface is register, list, get, remove, so the route layer does
not care about the backing store.
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone

from weathershield.models.schemas import WebhookRegistration
from weathershield.services.events import EventType


class WebhookStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._webhooks: dict[str, WebhookRegistration] = {}
        # webhook_id -> shared secret (kept separate from the public registration)
        self._secrets: dict[str, str] = {}

    def register(
        self,
        owner: str,
        callback_url: str,
        events: list[EventType],
        secret: str | None = None,
    ) -> WebhookRegistration:
        hook_id = uuid.uuid4().hex[:16]
        reg = WebhookRegistration(
            id=hook_id,
            owner=owner,
            callback_url=callback_url,
            events=events,
            created_at=datetime.now(timezone.utc),
            active=True,
        )
        with self._lock:
            self._webhooks[hook_id] = reg
            if secret:
                self._secrets[hook_id] = secret
        return reg

    def get(self, hook_id: str) -> WebhookRegistration | None:
        return self._webhooks.get(hook_id)

    def get_secret(self, hook_id: str) -> str | None:
        return self._secrets.get(hook_id)

    def remove(self, hook_id: str) -> bool:
        with self._lock:
            removed = self._webhooks.pop(hook_id, None) is not None
            self._secrets.pop(hook_id, None)
        return removed

    def list_all(self, owner: str | None = None) -> list[WebhookRegistration]:
        with self._lock:
            return [r for r in self._webhooks.values() if owner is None or r.owner == owner]

    def list_for_event(self, event_type: EventType) -> list[WebhookRegistration]:
        """Return all active registrations subscribed to this event type."""
        with self._lock:
            return [
                reg for reg in self._webhooks.values()
                if reg.active and event_type in reg.events
            ]
