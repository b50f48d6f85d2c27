"""Weather readings, per-location running averages, and oracle requests.

All measurements are integers scaled by 100:
  temperature  °C × 100 (signed)
  rainfall     mm × 100
  humidity     %  × 100
  wind_speed   km/h × 100
"""

import enum
from dataclasses import dataclass

from weathershield.core.errors import InvalidReading
from weathershield.core.hashing import source_id

SYNTHETIC_SOURCE = "synthetic"
SYNTHETIC_SOURCE_ID = source_id(SYNTHETIC_SOURCE)


def trunc_div(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero (not floor) for signed values."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


@dataclass(frozen=True)
class WeatherReading:
    """A single attested observation. Immutable once stored."""

    timestamp: int
    temperature: int
    rainfall: int
    humidity: int
    wind_speed: int
    source_id: str
    verified: bool = True

    def __post_init__(self) -> None:
        if self.rainfall < 0 or self.humidity < 0 or self.wind_speed < 0:
            raise InvalidReading(
                rainfall=self.rainfall, humidity=self.humidity, wind_speed=self.wind_speed
            )

    @property
    def is_synthetic(self) -> bool:
        return self.source_id == SYNTHETIC_SOURCE_ID


@dataclass
class RunningAverages:
    """Streaming mean per location: avg' = (avg * count + value) / (count + 1)."""

    avg_temperature: int = 0
    avg_rainfall: int = 0
    avg_humidity: int = 0
    avg_wind_speed: int = 0
    count: int = 0
    last_updated: int = 0

    def update(self, reading: WeatherReading) -> None:
        n = self.count
        self.avg_temperature = trunc_div(self.avg_temperature * n + reading.temperature, n + 1)
        self.avg_rainfall = (self.avg_rainfall * n + reading.rainfall) // (n + 1)
        self.avg_humidity = (self.avg_humidity * n + reading.humidity) // (n + 1)
        self.avg_wind_speed = (self.avg_wind_speed * n + reading.wind_speed) // (n + 1)
        self.count = n + 1
        self.last_updated = reading.timestamp


class RequestStatus(str, enum.Enum):
    REQUESTED = "requested"
    FULFILLED = "fulfilled"  # terminal


@dataclass
class OracleRequest:
    id: str
    location_id: str
    timestamp: int
    reading: WeatherReading | None = None
    verified: bool = False

    @property
    def status(self) -> RequestStatus:
        return RequestStatus.FULFILLED if self.verified else RequestStatus.REQUESTED

    def __repr__(self) -> str:
        return f"<OracleRequest {self.id[:12]}... loc={self.location_id[:12]}... {self.status.value}>"
