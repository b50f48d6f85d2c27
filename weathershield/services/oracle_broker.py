"""Oracle request broker.

Every claim opens a request for a reading at the policy's location. An
authorized provider fulfills it exactly once:

    requested ──fulfill──▶ fulfilled (terminal)

A request that nobody fulfills stays pending; there is no expiry. The
fulfilled reading is also appended to the location's history, which
updates the running averages and the latest-reading pointer.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from typing import Callable

from weathershield.core.admin import AdminConfig
from weathershield.core.errors import AlreadyFulfilled, NotAuthorized, RequestNotFound
from weathershield.core.hashing import source_id as make_source_id
from weathershield.models.weather import OracleRequest, WeatherReading
from weathershield.services.events import EventBus, EventType
from weathershield.services.weather_store import WeatherHistory, require_location

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "manual"


class OracleBroker:
    def __init__(
        self,
        config: AdminConfig,
        history: WeatherHistory,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
        lock: threading.RLock | None = None,
    ):
        self.config = config
        self.history = history
        self.events = events or history.events
        self.clock = clock or history.clock
        self.lock = lock or config.lock
        self._requests: dict[str, OracleRequest] = {}

    def request_reading(self, location_id: str, timestamp: int | None = None) -> str:
        require_location(location_id)
        with self.lock:
            request_id = uuid.uuid4().hex
            while request_id in self._requests:
                request_id = uuid.uuid4().hex
            ts = self.clock() if timestamp is None else timestamp
            self._requests[request_id] = OracleRequest(
                id=request_id, location_id=location_id, timestamp=ts
            )

        logger.info("Opened oracle request %s for %s...", request_id, location_id[:12])
        self.events.emit(
            EventType.WEATHER_REQUESTED,
            ts,
            request_id=request_id,
            location_id=location_id,
        )
        return request_id

    def fulfill(
        self,
        request_id: str,
        temperature: int,
        rainfall: int,
        humidity: int,
        wind_speed: int,
        submitter: str,
        source_id: str | None = None,
    ) -> WeatherReading:
        """Attach a verified reading to a pending request.

        Raises:
            RequestNotFound: unknown request id.
            AlreadyFulfilled: the request already carries a verified reading.
            NotAuthorized: submitter is not on the provider allow-list.
        """
        with self.lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RequestNotFound(request_id=request_id)
            if request.verified:
                raise AlreadyFulfilled(request_id=request_id)
            if not self.config.is_authorized_provider(submitter):
                raise NotAuthorized(submitter=submitter)

            reading = WeatherReading(
                timestamp=self.clock(),
                temperature=temperature,
                rainfall=rainfall,
                humidity=humidity,
                wind_speed=wind_speed,
                source_id=source_id or make_source_id(MANUAL_SOURCE),
            )
            self.history.append(request.location_id, reading)
            request.reading = reading
            request.verified = True
            location_id = request.location_id

        logger.info(
            "Fulfilled oracle request %s by %s (temp=%d rain=%d wind=%d)",
            request_id, submitter, temperature, rainfall, wind_speed,
        )
        self.events.emit(
            EventType.WEATHER_FULFILLED,
            reading.timestamp,
            request_id=request_id,
            location_id=location_id,
            submitter=submitter,
            synthetic=reading.is_synthetic,
        )
        return reading

    # ── Reads ─────────────────────────────────────────────────────────────────

    def is_available(self, request_id: str) -> tuple[bool, bool]:
        """(exists, verified) for a request id."""
        with self.lock:
            request = self._requests.get(request_id)
            if request is None:
                return False, False
            return True, request.verified

    def get_request(self, request_id: str) -> OracleRequest:
        with self.lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RequestNotFound(request_id=request_id)
            return copy.copy(request)

    def get_reading(self, request_id: str) -> WeatherReading | None:
        return self.get_request(request_id).reading

    def pending_requests(self) -> list[OracleRequest]:
        with self.lock:
            return [copy.copy(r) for r in self._requests.values() if not r.verified]

    def latest_reading(self, location_id: str) -> WeatherReading | None:
        return self.history.latest(location_id)
