"""Tests for claim initiation and settlement."""

import dataclasses

import pytest

from weathershield.core.config import DAY_SECONDS, UNIT
from weathershield.core.errors import (
    AlreadyProcessed,
    ClaimNotFound,
    InsufficientReserve,
    NotPolicyholder,
    PolicyExpired,
    PolicyNotActive,
    PolicyNotStarted,
    TransferFailed,
    WeatherDataNotReady,
)
from weathershield.models.policy import ClaimOutcome, PolicyStatus, TriggerType
from tests.conftest import (
    FARMER,
    IOWA,
    OTHER_FARMER,
    START_TIME,
    fulfill_claim,
    make_policy,
)

THIRTY_DAYS = 30 * DAY_SECONDS


# ═══════════════════════════════════════════════════════════════════════════════
# Initiation
# ═══════════════════════════════════════════════════════════════════════════════


class TestInitiateClaim:
    """Test filing claims against active policies."""

    def test_opens_oracle_request(self, platform, clock):
        policy_id = make_policy(platform)
        clock.advance(DAY_SECONDS)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)

        claim = platform.claims.get_claim(claim_id)
        assert claim_id == 1
        assert claim.policy_id == policy_id
        assert claim.filed_at == START_TIME + DAY_SECONDS
        assert claim.outcome == ClaimOutcome.PENDING

        request = platform.oracle.get_request(claim.oracle_request_id)
        assert request.location_id == IOWA
        assert request.timestamp == START_TIME + DAY_SECONDS
        assert not request.verified

    def test_not_policyholder(self, platform):
        policy_id = make_policy(platform)
        with pytest.raises(NotPolicyholder):
            platform.claims.initiate_claim(policy_id, OTHER_FARMER)
        assert platform.claims.claim_count() == 0
        assert platform.oracle.pending_requests() == []

    def test_policy_not_active(self, platform):
        policy_id = make_policy(platform)
        platform.policies.cancel_policy(policy_id, FARMER)
        with pytest.raises(PolicyNotActive):
            platform.claims.initiate_claim(policy_id, FARMER)

    def test_policy_not_started(self, platform):
        policy_id = make_policy(platform)
        policy = platform.policies.get_policy(policy_id)
        platform.policies.restore(
            dataclasses.replace(policy, start_time=START_TIME + 10, end_time=START_TIME + THIRTY_DAYS)
        )
        with pytest.raises(PolicyNotStarted):
            platform.claims.initiate_claim(policy_id, FARMER)

    def test_policy_window_over(self, platform, clock):
        policy_id = make_policy(platform)
        clock.advance(THIRTY_DAYS + 1)
        with pytest.raises(PolicyExpired):
            platform.claims.initiate_claim(policy_id, FARMER)

    def test_last_second_of_window_allowed(self, platform, clock):
        policy_id = make_policy(platform)
        clock.advance(THIRTY_DAYS)
        assert platform.claims.initiate_claim(policy_id, FARMER) == 1

    def test_emits_initiated_event(self, platform, recorder):
        policy_id = make_policy(platform)
        platform.claims.initiate_claim(policy_id, FARMER)
        assert recorder.types() == ["policy.created", "weather.requested", "claim.initiated"]


# ═══════════════════════════════════════════════════════════════════════════════
# Processing
# ═══════════════════════════════════════════════════════════════════════════════


class TestProcessClaim:
    """Test settlement against verified readings."""

    def test_drought_pays_full_coverage(self, funded_platform, rail):
        """Rainfall of 30mm under a 50mm drought threshold pays 1 unit."""
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)

        balance_before = platform.treasury.balance
        assert platform.claims.process_claim(claim_id) == UNIT

        claim = platform.claims.get_claim(claim_id)
        assert claim.processed
        assert claim.actual_value == 3000
        assert claim.payout_amount == UNIT
        assert claim.outcome == ClaimOutcome.PAID
        assert platform.policies.get_policy(policy_id).status == PolicyStatus.CLAIM_PAID
        assert rail.total_paid_to(FARMER) == UNIT
        assert platform.treasury.balance == balance_before - UNIT
        assert platform.treasury.total_claims_paid == UNIT

    def test_denied_claim_keeps_policy_active(self, funded_platform, rail):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=8000)

        assert platform.claims.process_claim(claim_id) == 0
        claim = platform.claims.get_claim(claim_id)
        assert claim.processed
        assert claim.actual_value == 8000
        assert claim.outcome == ClaimOutcome.DENIED
        assert platform.policies.get_policy(policy_id).status == PolicyStatus.ACTIVE
        assert rail.payments == []

        # The holder may claim again while the window is open.
        second = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, second, rainfall=1000)
        assert platform.claims.process_claim(second) == UNIT
        assert platform.claims.get_claims_by_policy(policy_id) == [claim_id, second]

    def test_processing_twice_pays_once(self, funded_platform, rail):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        platform.claims.process_claim(claim_id)
        with pytest.raises(AlreadyProcessed):
            platform.claims.process_claim(claim_id)
        assert rail.total_paid_to(FARMER) == UNIT

    def test_paid_policy_cannot_be_claimed_again(self, funded_platform):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        platform.claims.process_claim(claim_id)
        with pytest.raises(PolicyNotActive):
            platform.claims.initiate_claim(policy_id, FARMER)

    def test_weather_not_ready(self, funded_platform):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        with pytest.raises(WeatherDataNotReady):
            platform.claims.process_claim(claim_id)
        assert not platform.claims.get_claim(claim_id).processed

    def test_cancelled_before_processing(self, funded_platform):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        platform.policies.cancel_policy(policy_id, FARMER)
        with pytest.raises(PolicyNotActive):
            platform.claims.process_claim(claim_id)

    def test_unknown_claim(self, platform):
        with pytest.raises(ClaimNotFound):
            platform.claims.process_claim(7)

    def test_unfunded_pool_changes_nothing(self, platform, rail):
        """Only the premium is in the pool, which cannot cover a full payout."""
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        balance = platform.treasury.balance

        with pytest.raises(InsufficientReserve):
            platform.claims.process_claim(claim_id)
        assert not platform.claims.get_claim(claim_id).processed
        assert platform.policies.get_policy(policy_id).status == PolicyStatus.ACTIVE
        assert platform.treasury.balance == balance
        assert rail.payments == []

        platform.treasury.fund(UNIT, FARMER)
        assert platform.claims.process_claim(claim_id) == UNIT

    def test_failed_transfer_rolls_back(self, funded_platform, rail):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        balance = platform.treasury.balance

        rail.fail = True
        with pytest.raises(TransferFailed):
            platform.claims.process_claim(claim_id)
        claim = platform.claims.get_claim(claim_id)
        assert not claim.processed
        assert claim.payout_amount == 0
        assert platform.policies.get_policy(policy_id).status == PolicyStatus.ACTIVE
        assert platform.treasury.balance == balance
        assert platform.treasury.total_claims_paid == 0

        rail.fail = False
        assert platform.claims.process_claim(claim_id) == UNIT

    def test_emits_processed_event(self, funded_platform, recorder):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=3000)
        platform.claims.process_claim(claim_id)
        event = recorder.events[-1]
        assert event.event_type.value == "claim.processed"
        assert event.payload["triggered"] is True
        assert event.payload["payout_amount"] == UNIT


class TestTriggerBoundaries:
    """Comparisons are strict: a reading equal to the threshold never pays."""

    @pytest.mark.parametrize(
        "trigger_type, threshold, reading, pays",
        [
            (TriggerType.RAINFALL_BELOW, 5000, {"rainfall": 4999}, True),
            (TriggerType.RAINFALL_BELOW, 5000, {"rainfall": 5000}, False),
            (TriggerType.RAINFALL_ABOVE, 20000, {"rainfall": 20001}, True),
            (TriggerType.RAINFALL_ABOVE, 20000, {"rainfall": 20000}, False),
            (TriggerType.TEMPERATURE_BELOW, 0, {"temperature": -1}, True),
            (TriggerType.TEMPERATURE_BELOW, 0, {"temperature": 0}, False),
            (TriggerType.TEMPERATURE_ABOVE, 3500, {"temperature": 3501}, True),
            (TriggerType.TEMPERATURE_ABOVE, 3500, {"temperature": 3500}, False),
            (TriggerType.WIND_SPEED_ABOVE, 8000, {"wind_speed": 8001}, True),
            (TriggerType.WIND_SPEED_ABOVE, 8000, {"wind_speed": 8000}, False),
        ],
    )
    def test_trigger(self, funded_platform, trigger_type, threshold, reading, pays):
        platform = funded_platform
        policy_id = make_policy(platform, trigger_type=trigger_type, threshold=threshold)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, **reading)
        assert platform.claims.process_claim(claim_id) == (UNIT if pays else 0)
        assert platform.claims.get_claim(claim_id).actual_value == next(iter(reading.values()))


class TestPendingClaimsAndExpiry:

    def test_pending_claim_blocks_expiry(self, funded_platform, clock):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        clock.advance(THIRTY_DAYS + 1)

        assert platform.expire_policies() == []
        fulfill_claim(platform, claim_id, rainfall=3000)
        assert platform.claims.process_claim(claim_id) == UNIT

    def test_expires_once_claim_settled(self, funded_platform, clock):
        platform = funded_platform
        policy_id = make_policy(platform)
        claim_id = platform.claims.initiate_claim(policy_id, FARMER)
        fulfill_claim(platform, claim_id, rainfall=8000)
        platform.claims.process_claim(claim_id)
        clock.advance(THIRTY_DAYS + 1)
        assert platform.expire_policies() == [policy_id]
