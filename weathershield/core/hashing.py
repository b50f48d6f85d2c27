"""Deterministic identifiers for locations and weather data sources.

A location is identified by a digest over its integer microdegree
coordinates, so the same (lat, lon) pair always maps to the same id no
matter which component computes it. Policies, oracle requests and the
weather history all join on this id.
"""

import hashlib
import json
import math
from datetime import datetime
from typing import Any

from weathershield.core.errors import InvalidCoordinates

MICRODEGREES = 1_000_000


def canonical_json(data: dict[str, Any]) -> str:
    """Produce a deterministic JSON string (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_json_default)


def _json_default(obj: Any) -> str:
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def digest(payload: dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON payload.

    Stored location and source ids depend on this algorithm never changing.
    """
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def to_microdegrees(degrees: float) -> int:
    """Round a coordinate to integer microdegrees, halves away from zero."""
    if not math.isfinite(degrees):
        raise InvalidCoordinates(f"Coordinate {degrees} is not a finite number")
    scaled = abs(degrees) * MICRODEGREES
    rounded = int(math.floor(scaled + 0.5))
    return -rounded if degrees < 0 else rounded


def location_id_from_micro(lat_micro: int, lon_micro: int) -> str:
    """Location id for coordinates already expressed in microdegrees."""
    if not -90 * MICRODEGREES <= lat_micro <= 90 * MICRODEGREES:
        raise InvalidCoordinates(f"Latitude {lat_micro / MICRODEGREES} outside [-90, 90]")
    if not -180 * MICRODEGREES <= lon_micro <= 180 * MICRODEGREES:
        raise InvalidCoordinates(f"Longitude {lon_micro / MICRODEGREES} outside [-180, 180]")
    return digest({"lat": lat_micro, "lon": lon_micro})


def location_id(latitude: float, longitude: float) -> str:
    """Location id for a (lat, lon) pair in decimal degrees."""
    return location_id_from_micro(to_microdegrees(latitude), to_microdegrees(longitude))


def source_id(source: str) -> str:
    """Stable id for a named weather data source (e.g. "OpenWeatherMap")."""
    return digest({"source": source})
