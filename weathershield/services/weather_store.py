"""Append-only weather history per location, with running averages.

Readings arrive either through a fulfilled oracle request or through a
direct recording by an authorized provider. Both paths go through
``append``, which is the only place history and averages change.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Callable

from weathershield.core.admin import AdminConfig
from weathershield.core.errors import InvalidAmount, InvalidLocation, NotAuthorized
from weathershield.core.hashing import source_id
from weathershield.models.policy import TriggerType
from weathershield.models.weather import RunningAverages, WeatherReading
from weathershield.services.events import EventBus, EventType
from weathershield.services.triggers import is_triggered

logger = logging.getLogger(__name__)

RISK_SAMPLE_SIZE = 100
NEUTRAL_RISK_SCORE = 50


def require_location(location_id: str) -> None:
    if not location_id or not location_id.strip("0"):
        raise InvalidLocation(location_id=location_id)


class WeatherHistory:
    def __init__(
        self,
        config: AdminConfig,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
        lock: threading.RLock | None = None,
    ):
        self.config = config
        self.events = events or EventBus()
        self.clock = clock or (lambda: int(time.time()))
        self.lock = lock or config.lock
        self._readings: dict[str, list[WeatherReading]] = {}
        self._averages: dict[str, RunningAverages] = {}

    def append(self, location_id: str, reading: WeatherReading) -> None:
        """Store a reading and fold it into the location's running averages."""
        require_location(location_id)
        with self.lock:
            self._readings.setdefault(location_id, []).append(reading)
            self._averages.setdefault(location_id, RunningAverages()).update(reading)

    def record_reading(
        self,
        location_id: str,
        temperature: int,
        rainfall: int,
        humidity: int,
        wind_speed: int,
        source: str,
        submitter: str,
    ) -> WeatherReading:
        """Direct recording by an authorized provider, no oracle request involved."""
        require_location(location_id)
        if not self.config.is_authorized_provider(submitter):
            raise NotAuthorized(submitter=submitter)
        with self.lock:
            reading = WeatherReading(
                timestamp=self.clock(),
                temperature=temperature,
                rainfall=rainfall,
                humidity=humidity,
                wind_speed=wind_speed,
                source_id=source_id(source),
            )
            self.append(location_id, reading)
            count = len(self._readings[location_id])

        logger.info(
            "Recorded %s reading #%d for %s... (temp=%d rain=%d)",
            source, count, location_id[:12], temperature, rainfall,
        )
        self.events.emit(
            EventType.WEATHER_RECORDED,
            reading.timestamp,
            location_id=location_id,
            source=source,
            temperature=temperature,
            rainfall=rainfall,
            humidity=humidity,
            wind_speed=wind_speed,
        )
        return reading

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_history(
        self, location_id: str, start: int = 0, count: int | None = None
    ) -> list[WeatherReading]:
        if start < 0 or (count is not None and count < 0):
            raise InvalidAmount("History window must not be negative")
        with self.lock:
            readings = self._readings.get(location_id, [])
            end = len(readings) if count is None else start + count
            return list(readings[start:end])

    def history_count(self, location_id: str) -> int:
        with self.lock:
            return len(self._readings.get(location_id, []))

    def latest(self, location_id: str) -> WeatherReading | None:
        with self.lock:
            readings = self._readings.get(location_id)
            return readings[-1] if readings else None

    def averages(self, location_id: str) -> RunningAverages:
        with self.lock:
            return copy.copy(self._averages.get(location_id, RunningAverages()))

    def location_ids(self) -> list[str]:
        with self.lock:
            return list(self._readings)

    def calculate_risk_score(
        self, location_id: str, trigger_type: TriggerType, threshold: int
    ) -> int:
        """Percentage of the most recent readings that would have triggered the rule.

        Looks at the last ``min(100, len(history))`` readings and returns
        ``hits * 100 // sample``. A location with no history scores 50.
        """
        with self.lock:
            readings = self._readings.get(location_id, [])
            sample = readings[-RISK_SAMPLE_SIZE:]
        if not sample:
            return NEUTRAL_RISK_SCORE
        hits = sum(1 for r in sample if is_triggered(trigger_type, threshold, r))
        return hits * 100 // len(sample)
