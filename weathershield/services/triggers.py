"""Trigger rules: which reading field a policy watches and when it fires.

Comparisons are strict. A reading exactly at the threshold never
triggers, in either direction.
"""

from __future__ import annotations

from weathershield.models.policy import TriggerType
from weathershield.models.weather import WeatherReading


def observed_value(trigger_type: TriggerType, reading: WeatherReading) -> int:
    """Return the reading field that the trigger type is evaluated against."""
    if trigger_type in (TriggerType.RAINFALL_BELOW, TriggerType.RAINFALL_ABOVE):
        return reading.rainfall
    if trigger_type in (TriggerType.TEMPERATURE_BELOW, TriggerType.TEMPERATURE_ABOVE):
        return reading.temperature
    if trigger_type == TriggerType.WIND_SPEED_ABOVE:
        return reading.wind_speed
    raise ValueError(f"Unknown trigger type: {trigger_type!r}")


def is_triggered(trigger_type: TriggerType, threshold: int, reading: WeatherReading) -> bool:
    value = observed_value(trigger_type, reading)
    if trigger_type in (TriggerType.RAINFALL_BELOW, TriggerType.TEMPERATURE_BELOW):
        return value < threshold
    return value > threshold
