"""Async webhook dispatcher. Fires domain events to registered callbacks.

Each delivery includes:
- JSON body matching the WebhookEvent schema
- X-WeatherShield-Event header with the event type
- X-WeatherShield-Signature header with HMAC-SHA256 if a shared secret was provided
- X-WeatherShield-Delivery header with the event_id for idempotency

Retries on transient failures (5xx, timeouts) with exponential backoff.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import threading
from datetime import datetime, timezone

import httpx

from weathershield.core.config import settings
from weathershield.models.schemas import WebhookEvent, WebhookRegistration
from weathershield.services.events import DomainEvent
from weathershield.services.webhook_store import WebhookStore

logger = logging.getLogger(__name__)


def sign_payload(payload_bytes: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()


def _headers(
    store: WebhookStore, reg: WebhookRegistration, event: WebhookEvent, body: bytes
) -> dict:
    headers = {
        "Content-Type": "application/json",
        "X-WeatherShield-Event": event.event_type.value,
        "X-WeatherShield-Delivery": event.event_id,
    }
    secret = store.get_secret(reg.id)
    if secret:
        headers["X-WeatherShield-Signature"] = f"sha256={sign_payload(body, secret)}"
    return headers


async def _deliver(
    client: httpx.AsyncClient,
    reg: WebhookRegistration,
    event: WebhookEvent,
    body: bytes,
    headers: dict,
) -> bool:
    """POST one event to one callback, retrying 5xx and network errors."""
    attempts = settings.webhook_max_retries
    delay = 1.0
    for attempt in range(1, attempts + 1):
        try:
            resp = await client.post(reg.callback_url, content=body, headers=headers)
        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            logger.warning(
                "Webhook %s unreachable (attempt %d/%d): %s", reg.id, attempt, attempts, exc
            )
        else:
            if resp.is_success:
                logger.info(
                    "Webhook %s accepted %s on attempt %d",
                    reg.id, event.event_type.value, attempt,
                )
                return True
            if resp.status_code < 500:
                logger.warning(
                    "Webhook %s refused %s with %d: %s",
                    reg.id, event.event_type.value, resp.status_code, resp.text[:200],
                )
                return False
            logger.warning(
                "Webhook %s answered %d (attempt %d/%d)",
                reg.id, resp.status_code, attempt, attempts,
            )

        if attempt < attempts:
            await asyncio.sleep(delay)
            delay = min(delay * 2, 30.0)

    logger.error("Giving up on webhook %s for event %s", reg.id, event.event_id)
    return False


async def dispatch(
    store: WebhookStore,
    domain_event: DomainEvent,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Send a domain event to every subscribed webhook.

    Returns how many callbacks accepted it.
    """
    registrations = store.list_for_event(domain_event.event_type)
    if not registrations:
        return 0

    event = WebhookEvent(
        event_id=domain_event.event_id,
        event_type=domain_event.event_type,
        timestamp=datetime.now(timezone.utc),
        occurred_at=domain_event.occurred_at,
        data=domain_event.payload,
    )
    body = json.dumps(event.model_dump(mode="json"), default=str).encode()

    async with httpx.AsyncClient(
        timeout=settings.webhook_timeout_seconds, transport=transport
    ) as client:
        results = await asyncio.gather(
            *(
                _deliver(client, reg, event, body, _headers(store, reg, event, body))
                for reg in registrations
            ),
            return_exceptions=True,
        )
    return sum(1 for r in results if r is True)


class WebhookRelay:
    """Event-bus observer that buffers events until the HTTP layer drains them.

    Core operations emit synchronously under the platform lock; delivery
    happens afterwards, outside the lock, from a background task.
    """

    def __init__(self, store: WebhookStore):
        self.store = store
        self._lock = threading.Lock()
        self._pending: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        if not self.store.list_for_event(event.event_type):
            return
        with self._lock:
            self._pending.append(event)

    def drain(self) -> list[DomainEvent]:
        with self._lock:
            events, self._pending = self._pending, []
        return events

    async def flush(self, transport: httpx.AsyncBaseTransport | None = None) -> int:
        delivered = 0
        for event in self.drain():
            delivered += await dispatch(self.store, event, transport)
        return delivered
