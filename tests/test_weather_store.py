"""Tests for weather history, running averages and risk scoring."""

import pytest

from weathershield.core.errors import InvalidLocation, InvalidReading, NotAuthorized
from weathershield.core.hashing import source_id
from weathershield.models.policy import TriggerType
from weathershield.models.weather import RunningAverages, trunc_div
from weathershield.services.weather_store import WeatherHistory
from tests.conftest import FARMER, IOWA, OWNER, PROVIDER, PUNJAB, make_config, make_reading


def _history() -> WeatherHistory:
    config = make_config()
    config.providers.add(PROVIDER)
    return WeatherHistory(config, clock=lambda: 1_000)


# ═══════════════════════════════════════════════════════════════════════════════
# Running averages
# ═══════════════════════════════════════════════════════════════════════════════


class TestRunningAverages:
    """Test the incremental mean avg' = (avg * n + x) // (n + 1)."""

    def test_ten_twenty_thirty(self):
        """Three sequential readings of 10, 20, 30 average to exactly 20."""
        avg = RunningAverages()
        for value in (10, 20, 30):
            avg.update(make_reading(temperature=value, rainfall=value, humidity=value, wind_speed=value))
        assert avg.avg_temperature == 20
        assert avg.avg_rainfall == 20
        assert avg.avg_humidity == 20
        assert avg.avg_wind_speed == 20
        assert avg.count == 3

    def test_truncation_bias_is_reproduced(self):
        """Each step truncates: 1, 2 gives (1*1 + 2) // 2 = 1, not 1.5."""
        avg = RunningAverages()
        avg.update(make_reading(rainfall=1))
        avg.update(make_reading(rainfall=2))
        assert avg.avg_rainfall == 1

    def test_negative_temperature_truncates_toward_zero(self):
        avg = RunningAverages()
        avg.update(make_reading(temperature=-5))
        avg.update(make_reading(temperature=-10))
        assert avg.avg_temperature == -7

    def test_last_updated_tracks_reading_time(self):
        avg = RunningAverages()
        avg.update(make_reading(timestamp=42))
        assert avg.last_updated == 42

    def test_trunc_div(self):
        assert trunc_div(7, 2) == 3
        assert trunc_div(-7, 2) == -3
        assert trunc_div(-6, 3) == -2


# ═══════════════════════════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════════════════════════


class TestHistory:
    """Test append-only history and reads."""

    def test_append_updates_count_latest_and_averages(self):
        history = _history()
        history.append(IOWA, make_reading(temperature=1000))
        history.append(IOWA, make_reading(temperature=3000))
        assert history.history_count(IOWA) == 2
        assert history.latest(IOWA).temperature == 3000
        assert history.averages(IOWA).avg_temperature == 2000

    def test_locations_are_independent(self):
        history = _history()
        history.append(IOWA, make_reading())
        assert history.history_count(PUNJAB) == 0
        assert history.latest(PUNJAB) is None
        assert history.averages(PUNJAB).count == 0

    def test_get_history_window(self):
        history = _history()
        for i in range(5):
            history.append(IOWA, make_reading(temperature=i))
        assert [r.temperature for r in history.get_history(IOWA)] == [0, 1, 2, 3, 4]
        assert [r.temperature for r in history.get_history(IOWA, 1, 2)] == [1, 2]
        assert [r.temperature for r in history.get_history(IOWA, 3, 10)] == [3, 4]
        assert history.get_history(IOWA, 10, 2) == []

    def test_averages_returns_a_copy(self):
        history = _history()
        history.append(IOWA, make_reading(temperature=1000))
        snapshot = history.averages(IOWA)
        snapshot.avg_temperature = 999_999
        assert history.averages(IOWA).avg_temperature == 1000

    @pytest.mark.parametrize("bad", ["", "0000"])
    def test_empty_location_rejected(self, bad):
        with pytest.raises(InvalidLocation):
            _history().append(bad, make_reading())

    def test_negative_rainfall_rejected(self):
        with pytest.raises(InvalidReading):
            make_reading(rainfall=-1)


class TestRecordReading:
    """Test direct recording by providers."""

    def test_provider_records(self):
        history = _history()
        reading = history.record_reading(IOWA, 2200, 8000, 6500, 1500, "OpenWeatherMap", PROVIDER)
        assert reading.timestamp == 1_000
        assert reading.source_id == source_id("OpenWeatherMap")
        assert reading.verified
        assert not reading.is_synthetic
        assert history.history_count(IOWA) == 1

    def test_owner_is_always_a_provider(self):
        history = _history()
        history.record_reading(IOWA, 2200, 8000, 6500, 1500, "manual", OWNER)
        assert history.history_count(IOWA) == 1

    def test_unauthorized_submitter_rejected(self):
        history = _history()
        with pytest.raises(NotAuthorized):
            history.record_reading(IOWA, 2200, 8000, 6500, 1500, "manual", FARMER)
        assert history.history_count(IOWA) == 0

    def test_synthetic_source_flagged(self):
        history = _history()
        reading = history.record_reading(IOWA, 2200, 0, 6500, 1500, "synthetic", PROVIDER)
        assert reading.is_synthetic

    def test_emits_recorded_event(self):
        history = _history()
        seen = []
        history.events.subscribe(seen.append)
        history.record_reading(IOWA, 2200, 8000, 6500, 1500, "manual", PROVIDER)
        assert [e.event_type.value for e in seen] == ["weather.recorded"]
        assert seen[0].payload["location_id"] == IOWA


# ═══════════════════════════════════════════════════════════════════════════════
# Risk score
# ═══════════════════════════════════════════════════════════════════════════════


class TestRiskScore:
    """Test historical trigger frequency."""

    def test_empty_history_is_neutral(self):
        assert _history().calculate_risk_score(IOWA, TriggerType.RAINFALL_BELOW, 5000) == 50

    def test_fraction_of_triggering_readings(self):
        history = _history()
        for rain in (1000, 6000, 3000, 8000):
            history.append(IOWA, make_reading(rainfall=rain))
        assert history.calculate_risk_score(IOWA, TriggerType.RAINFALL_BELOW, 5000) == 50
        assert history.calculate_risk_score(IOWA, TriggerType.RAINFALL_ABOVE, 5000) == 50
        assert history.calculate_risk_score(IOWA, TriggerType.RAINFALL_ABOVE, 7000) == 25

    def test_integer_division(self):
        history = _history()
        for rain in (1000, 9000, 9000):
            history.append(IOWA, make_reading(rainfall=rain))
        assert history.calculate_risk_score(IOWA, TriggerType.RAINFALL_BELOW, 5000) == 33

    def test_threshold_itself_does_not_count(self):
        history = _history()
        history.append(IOWA, make_reading(wind_speed=8000))
        assert history.calculate_risk_score(IOWA, TriggerType.WIND_SPEED_ABOVE, 8000) == 0

    def test_only_last_hundred_readings(self):
        history = _history()
        for _ in range(50):
            history.append(IOWA, make_reading(temperature=-500))
        for _ in range(100):
            history.append(IOWA, make_reading(temperature=2000))
        assert history.calculate_risk_score(IOWA, TriggerType.TEMPERATURE_BELOW, 0) == 0

    def test_all_triggering(self):
        history = _history()
        for _ in range(3):
            history.append(IOWA, make_reading(temperature=4000))
        assert history.calculate_risk_score(IOWA, TriggerType.TEMPERATURE_ABOVE, 3500) == 100
