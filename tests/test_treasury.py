"""Tests for the treasury and the transfer rail."""

import pytest

from weathershield.core.config import UNIT
from weathershield.core.errors import (
    InsufficientReserve,
    InvalidAmount,
    NotOwner,
    TransferFailed,
)
from weathershield.services.treasury import Treasury
from tests.conftest import FARMER, OWNER, TREASURY, make_config


class RaisingRail:
    def pay(self, account, amount):
        raise ConnectionError("rail offline")


class TestFunding:

    def test_fund_increases_balance(self, platform):
        assert platform.treasury.fund(UNIT, FARMER) == UNIT
        assert platform.treasury.fund(UNIT, OWNER) == 2 * UNIT
        assert platform.treasury.balance == 2 * UNIT

    @pytest.mark.parametrize("amount", [0, -1])
    def test_fund_requires_positive_amount(self, platform, amount):
        with pytest.raises(InvalidAmount):
            platform.treasury.fund(amount, OWNER)

    def test_emits_funded_event(self, platform, recorder):
        platform.treasury.fund(UNIT, OWNER)
        assert recorder.types() == ["treasury.funded"]


class TestWithdraw:
    """Test owner withdrawals to the treasury account."""

    def test_withdraw_pays_treasury_account(self, platform, rail):
        platform.treasury.fund(3 * UNIT, OWNER)
        assert platform.treasury.withdraw(UNIT, OWNER) == 2 * UNIT
        assert rail.total_paid_to(TREASURY) == UNIT

    def test_only_owner(self, platform):
        platform.treasury.fund(UNIT, OWNER)
        with pytest.raises(NotOwner):
            platform.treasury.withdraw(UNIT, FARMER)
        assert platform.treasury.balance == UNIT

    def test_cannot_overdraw(self, platform):
        platform.treasury.fund(UNIT, OWNER)
        with pytest.raises(InsufficientReserve):
            platform.treasury.withdraw(UNIT + 1, OWNER)
        assert platform.treasury.balance == UNIT

    def test_failed_transfer_restores_balance(self, platform, rail):
        platform.treasury.fund(UNIT, OWNER)
        rail.fail = True
        with pytest.raises(TransferFailed):
            platform.treasury.withdraw(UNIT, OWNER)
        assert platform.treasury.balance == UNIT
        assert rail.payments == []

    def test_rail_exception_is_a_transfer_failure(self):
        treasury = Treasury(make_config(), rail=RaisingRail())
        treasury.fund(UNIT, OWNER)
        with pytest.raises(TransferFailed):
            treasury.withdraw(UNIT, OWNER)
        assert treasury.balance == UNIT


class TestRefunds:
    """Test overpayment credits."""

    def test_overpayment_is_credited_not_pooled(self, platform):
        platform.treasury.collect_premium(FARMER, premium=100, paid_amount=130)
        assert platform.treasury.balance == 100
        assert platform.treasury.total_premiums_collected == 100
        assert platform.treasury.refundable(FARMER) == 30

    def test_withdraw_refund(self, platform, rail, recorder):
        platform.treasury.collect_premium(FARMER, premium=100, paid_amount=130)
        assert platform.treasury.withdraw_refund(FARMER) == 30
        assert platform.treasury.refundable(FARMER) == 0
        assert rail.total_paid_to(FARMER) == 30
        assert recorder.types() == ["refund.withdrawn"]

    def test_nothing_to_refund(self, platform):
        with pytest.raises(InvalidAmount):
            platform.treasury.withdraw_refund(FARMER)

    def test_failed_refund_keeps_credit(self, platform, rail):
        platform.treasury.collect_premium(FARMER, premium=100, paid_amount=130)
        rail.fail = True
        with pytest.raises(TransferFailed):
            platform.treasury.withdraw_refund(FARMER)
        assert platform.treasury.refundable(FARMER) == 30


class TestSnapshots:

    def test_restore_round_trip(self, platform):
        platform.treasury.fund(UNIT, OWNER)
        saved = platform.treasury.snapshot()
        platform.treasury.record_payout(UNIT // 2)
        assert platform.treasury.total_claims_paid == UNIT // 2
        platform.treasury.restore(saved)
        assert platform.treasury.balance == UNIT
        assert platform.treasury.total_claims_paid == 0
