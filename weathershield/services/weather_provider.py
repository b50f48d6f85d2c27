"""OpenWeatherMap current-conditions client, scaled to the integer reading format.

1. Calls the OpenWeatherMap current-weather endpoint for (lat, lon).
2. Scales °C, mm (last hour of rain, 0 when absent), % and wind (m/s
   converted to km/h) by 100, rounding halves up.

Without an API key, or when the API fails for any reason, falls back to a
synthetic latitude/season estimate. Synthetic readings carry the source
name ``synthetic`` so they are never mistaken for observed data.
"""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from weathershield.core.config import settings
from weathershield.models.weather import SYNTHETIC_SOURCE

logger = logging.getLogger(__name__)

OPENWEATHER_SOURCE = "OpenWeatherMap"
MS_TO_KMH = 3.6


@dataclass(frozen=True)
class ProviderReading:
    temperature: int
    rainfall: int
    humidity: int
    wind_speed: int
    source: str  # "OpenWeatherMap" or "synthetic"
    location_name: str | None = None
    timestamp: int | None = None

    @property
    def is_synthetic(self) -> bool:
        return self.source == SYNTHETIC_SOURCE


def scale(value: float) -> int:
    """Multiply by 100 and round halves up."""
    return int(math.floor(value * 100 + 0.5))


async def get_current_reading(
    lat: float,
    lon: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderReading:
    """Return current conditions for (lat, lon), synthetic if the API is unavailable."""
    if not settings.openweather_api_key:
        logger.warning("No OpenWeatherMap API key configured, using synthetic data")
        return synthetic_reading(lat, lon)

    try:
        return await _fetch_openweather(lat, lon, transport)
    except Exception:
        logger.warning(
            "OpenWeatherMap call failed for (%s, %s), falling back", lat, lon, exc_info=True
        )
    return synthetic_reading(lat, lon)


async def _fetch_openweather(
    lat: float,
    lon: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderReading:
    async with httpx.AsyncClient(
        timeout=settings.weather_request_timeout,
        transport=transport,
    ) as client:
        resp = await client.get(
            f"{settings.openweather_base_url}/weather",
            params={
                "lat": lat,
                "lon": lon,
                "appid": settings.openweather_api_key,
                "units": "metric",
            },
        )
        resp.raise_for_status()
        return parse_openweather(resp.json())


def parse_openweather(data: dict) -> ProviderReading:
    main = data["main"]
    rain = (data.get("rain") or {}).get("1h", 0)
    return ProviderReading(
        temperature=scale(main["temp"]),
        rainfall=scale(rain),
        humidity=scale(main["humidity"]),
        wind_speed=scale(data["wind"]["speed"] * MS_TO_KMH),
        source=OPENWEATHER_SOURCE,
        location_name=data.get("name"),
        timestamp=data.get("dt"),
    )


def synthetic_reading(
    lat: float,
    lon: float,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> ProviderReading:
    """Latitude/season estimate used when no observed data is available.

    - Base temperature falls by 0.5°C per degree of latitude from 30°C.
    - A sinusoidal seasonal term swings ±10°C over the year.
    - Rain falls on roughly 30% of draws, up to 30mm.
    """
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()

    base_temp = 30 - abs(lat) * 0.5
    # Month is zero-based here so the seasonal peak lands in mid-year.
    seasonal = math.sin((now.month - 1 - 3) * math.pi / 6) * 10

    temperature = base_temp + seasonal + (rng.random() * 10 - 5)
    rainfall = rng.random() * 30 if rng.random() > 0.7 else 0.0
    humidity = 50 + rng.random() * 40
    wind_kmh = 5 + rng.random() * 25

    return ProviderReading(
        temperature=scale(temperature),
        rainfall=scale(rainfall),
        humidity=scale(humidity),
        wind_speed=scale(wind_kmh),
        source=SYNTHETIC_SOURCE,
        location_name=None,
        timestamp=int(time.time()),
    )
