"""Background oracle fulfiller. Bridges the weather provider into the broker.

1. Subscribes to weather.requested events and queues the request ids.
2. Fulfills queued requests whose location is monitored, using the
   weather provider (synthetic fallback included).
3. Keeps requests for unknown locations pending for manual fulfillment.
4. Periodically records a reading for every monitored location.
5. Delivers the webhooks its own events raised after every pass.

Runs as an asyncio background task managed by FastAPI's lifespan.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from weathershield.core.errors import InsuranceError, RequestNotFound
from weathershield.core.hashing import location_id, source_id
from weathershield.services import weather_provider
from weathershield.services.events import DomainEvent, EventType
from weathershield.services.oracle_broker import OracleBroker
from weathershield.services.weather_provider import ProviderReading
from weathershield.services.weather_store import WeatherHistory
from weathershield.services.webhook_dispatcher import WebhookRelay

logger = logging.getLogger(__name__)

Fetcher = Callable[[float, float], Awaitable[ProviderReading]]


@dataclass
class MonitoredLocation:
    name: str
    lat: float
    lon: float
    interval_seconds: int = 3600
    last_update: int | None = None

    @property
    def location_id(self) -> str:
        return location_id(self.lat, self.lon)


# Major farming regions
DEFAULT_LOCATIONS: list[tuple[str, float, float]] = [
    ("Iowa, USA", 41.9, -93.1),
    ("Punjab, India", 31.1, 75.3),
    ("Queensland, Australia", -27.5, 153.0),
    ("Mato Grosso, Brazil", -12.6, -55.9),
    ("Ukraine", 49.8, 30.5),
]


class OracleFulfiller:
    def __init__(
        self,
        oracle: OracleBroker,
        history: WeatherHistory,
        account: str,
        fetch: Fetcher | None = None,
        clock: Callable[[], int] | None = None,
        relay: WebhookRelay | None = None,
    ):
        self.oracle = oracle
        self.history = history
        self.account = account
        self.fetch = fetch or weather_provider.get_current_reading
        self.clock = clock or (lambda: int(time.time()))
        self.relay = relay
        self.locations: dict[str, MonitoredLocation] = {}
        self.unmatched: dict[str, str] = {}  # request id -> location id
        self._queue: list[str] = []
        self._running = False

        if not oracle.config.is_authorized_provider(account):
            logger.warning("Oracle account %s is not an authorized provider", account)

    def add_location(
        self, name: str, lat: float, lon: float, interval_seconds: int = 3600
    ) -> str:
        location = MonitoredLocation(name, lat, lon, interval_seconds)
        self.locations[location.location_id] = location
        logger.info("Monitoring %s (%s, %s)", name, lat, lon)
        return location.location_id

    def on_event(self, event: DomainEvent) -> None:
        if event.event_type == EventType.WEATHER_REQUESTED:
            self._queue.append(event.payload["request_id"])

    # ── Work ──────────────────────────────────────────────────────────────────

    async def fulfill_pending(self) -> int:
        """Fulfill queued and previously unmatched requests for monitored locations.

        Requests that could not be fulfilled on this pass, including those
        left unvisited when the provider raises, are queued for the next one.
        """
        queued, self._queue = self._queue, []
        candidates = list(dict.fromkeys(list(self.unmatched) + queued))
        retry: list[str] = []

        fulfilled = 0
        try:
            while candidates:
                request_id = candidates[0]
                try:
                    done = await self._fulfill_one(request_id)
                except InsuranceError as exc:
                    logger.warning(
                        "Could not fulfill request %s, will retry: %s", request_id, exc.message
                    )
                    retry.append(request_id)
                    done = False
                candidates.pop(0)
                if done:
                    fulfilled += 1
        finally:
            self._queue = [r for r in retry + candidates if r not in self.unmatched] + self._queue

        if fulfilled:
            logger.info("Fulfilled %d oracle requests", fulfilled)
        return fulfilled

    async def _fulfill_one(self, request_id: str) -> bool:
        try:
            request = self.oracle.get_request(request_id)
        except RequestNotFound:
            logger.warning("Dropping unknown oracle request %s", request_id)
            return False
        if request.verified:
            self.unmatched.pop(request_id, None)
            return False
        location = self.locations.get(request.location_id)
        if location is None:
            if request_id not in self.unmatched:
                logger.info(
                    "Request %s is for an unknown location, left for manual fulfillment",
                    request_id,
                )
            self.unmatched[request_id] = request.location_id
            return False

        reading = await self.fetch(location.lat, location.lon)
        self.oracle.fulfill(
            request_id,
            reading.temperature,
            reading.rainfall,
            reading.humidity,
            reading.wind_speed,
            submitter=self.account,
            source_id=source_id(reading.source),
        )
        self.unmatched.pop(request_id, None)
        return True

    async def record_monitored(self) -> int:
        """Record a fresh reading for every monitored location that is due."""
        now = self.clock()
        recorded = 0
        for loc_id, location in self.locations.items():
            if location.last_update is not None and now - location.last_update < location.interval_seconds:
                continue
            reading = await self.fetch(location.lat, location.lon)
            try:
                self.history.record_reading(
                    loc_id,
                    reading.temperature,
                    reading.rainfall,
                    reading.humidity,
                    reading.wind_speed,
                    source=reading.source,
                    submitter=self.account,
                )
            except InsuranceError as exc:
                logger.warning("Could not record weather for %s: %s", location.name, exc.message)
                continue
            location.last_update = now
            recorded += 1
        return recorded

    async def tick(self) -> tuple[int, int]:
        fulfilled = await self.fulfill_pending()
        recorded = await self.record_monitored()
        return fulfilled, recorded

    async def run_loop(self, interval: int) -> None:
        """Main loop. Runs until stopped or cancelled."""
        self._running = True
        logger.info("Oracle fulfiller started (interval=%ds)", interval)

        while self._running:
            try:
                await self.tick()
                if self.relay is not None:
                    await self.relay.flush()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Oracle fulfiller tick failed unexpectedly")

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

        logger.info("Oracle fulfiller stopped")

    def stop(self) -> None:
        self._running = False
