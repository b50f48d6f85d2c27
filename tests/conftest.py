"""Shared test fixtures for the WeatherShield test suite.

The core runs entirely in memory, so every test gets a fresh platform
with a controllable clock and a transfer rail that records payments and
can be told to fail.
"""

from __future__ import annotations

import pytest

from weathershield.core import auth
from weathershield.core.admin import AdminConfig
from weathershield.core.config import DAY_SECONDS, UNIT
from weathershield.core.hashing import location_id
from weathershield.models.policy import TriggerType
from weathershield.models.weather import WeatherReading
from weathershield.services.platform import InsurancePlatform
from weathershield.services.pricing import calculate_premium
from weathershield.services.treasury import InMemoryTransferRail

OWNER = "owner"
TREASURY = "treasury"
FARMER = "farmer-1"
OTHER_FARMER = "farmer-2"
PROVIDER = "provider-1"

START_TIME = 1_750_000_000

IOWA = location_id(41.9, -93.1)
PUNJAB = location_id(31.1, 75.3)


class FakeClock:
    """Callable clock returning integer unix seconds, advanced by hand."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# ── Factory helpers ───────────────────────────────────────────────────────────


def make_config(**overrides) -> AdminConfig:
    """Create an AdminConfig with the production defaults."""
    values = dict(
        owner=OWNER,
        treasury_account=TREASURY,
        base_premium_rate_bps=500,
        minimum_premium=UNIT // 1000,
        min_coverage=UNIT // 100,
        max_coverage=100 * UNIT,
        min_duration=7 * DAY_SECONDS,
        max_duration=365 * DAY_SECONDS,
    )
    values.update(overrides)
    return AdminConfig(**values)


def make_platform(
    clock: FakeClock | None = None,
    rail: InMemoryTransferRail | None = None,
    **config_overrides,
) -> InsurancePlatform:
    config = make_config(**config_overrides)
    config.providers.add(PROVIDER)
    return InsurancePlatform(config, rail or InMemoryTransferRail(), clock or FakeClock())


def make_reading(
    temperature: int = 2000,
    rainfall: int = 5000,
    humidity: int = 6000,
    wind_speed: int = 1500,
    timestamp: int = START_TIME,
    source_id: str = "test",
) -> WeatherReading:
    return WeatherReading(
        timestamp=timestamp,
        temperature=temperature,
        rainfall=rainfall,
        humidity=humidity,
        wind_speed=wind_speed,
        source_id=source_id,
    )


def make_policy(
    platform: InsurancePlatform,
    holder: str = FARMER,
    location: str = IOWA,
    trigger_type: TriggerType = TriggerType.RAINFALL_BELOW,
    threshold: int = 5000,
    coverage_amount: int = UNIT,
    duration: int = 30 * DAY_SECONDS,
    crop_type: str = "Wheat",
    farm_size: int = 30000,
    paid_amount: int | None = None,
) -> int:
    """Create a policy, paying exactly the premium unless told otherwise."""
    if paid_amount is None:
        paid_amount = calculate_premium(coverage_amount, duration, trigger_type, platform.config)
    return platform.policies.create_policy(
        holder=holder,
        location_id=location,
        trigger_type=trigger_type,
        threshold=threshold,
        coverage_amount=coverage_amount,
        duration=duration,
        crop_type=crop_type,
        farm_size=farm_size,
        paid_amount=paid_amount,
    )


def fulfill_claim(
    platform: InsurancePlatform,
    claim_id: int,
    temperature: int = 2000,
    rainfall: int = 5000,
    humidity: int = 6000,
    wind_speed: int = 1500,
) -> None:
    """Fulfill the oracle request behind a claim as the test provider."""
    request_id = platform.claims.get_claim(claim_id).oracle_request_id
    platform.oracle.fulfill(
        request_id, temperature, rainfall, humidity, wind_speed, submitter=PROVIDER
    )


class EventRecorder:
    """Event-bus observer that keeps every event it sees."""

    def __init__(self):
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rail() -> InMemoryTransferRail:
    return InMemoryTransferRail()


@pytest.fixture
def platform(clock, rail) -> InsurancePlatform:
    """A fresh platform with an empty treasury."""
    return make_platform(clock=clock, rail=rail)


@pytest.fixture
def funded_platform(platform) -> InsurancePlatform:
    """A platform whose treasury can cover several full payouts."""
    platform.treasury.fund(10 * UNIT, OWNER)
    return platform


@pytest.fixture
def recorder(platform) -> EventRecorder:
    rec = EventRecorder()
    platform.events.subscribe(rec)
    return rec


@pytest.fixture(autouse=True)
def _reset_api_keys():
    auth.keyring.clear()
    yield
    auth.keyring.clear()
