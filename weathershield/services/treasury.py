"""Pooled fund backing payouts, and the rail that moves value out of it.

Premiums and funding increase the balance; refunds, payouts and owner
withdrawals decrease it. Overpaid premiums are not part of the pool: they
are credited to the payer and drained with ``withdraw_refund``.

Every outbound payment goes through ``transfer``. If the rail reports a
failure, the caller-supplied rollback restores whatever the operation had
already changed and ``TransferFailed`` propagates.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

from weathershield.core.admin import AdminConfig
from weathershield.core.errors import (
    InsufficientReserve,
    InvalidAccount,
    InvalidAmount,
    TransferFailed,
)
from weathershield.services.events import EventBus, EventType

logger = logging.getLogger(__name__)


class TransferRail(Protocol):
    def pay(self, account: str, amount: int) -> bool:
        """Move ``amount`` base units to ``account``. Return False on failure."""
        ...


@dataclass
class Payment:
    account: str
    amount: int


class InMemoryTransferRail:
    """Rail that records every successful payment. Set ``fail`` to reject them."""

    def __init__(self) -> None:
        self.payments: list[Payment] = []
        self.fail = False

    def pay(self, account: str, amount: int) -> bool:
        if self.fail:
            return False
        self.payments.append(Payment(account, amount))
        return True

    def total_paid_to(self, account: str) -> int:
        return sum(p.amount for p in self.payments if p.account == account)


@dataclass
class TreasuryState:
    balance: int = 0
    total_premiums_collected: int = 0
    total_claims_paid: int = 0
    refundable: dict[str, int] = field(default_factory=dict)


class Treasury:
    def __init__(
        self,
        config: AdminConfig,
        rail: TransferRail | None = None,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
        lock: threading.RLock | None = None,
    ):
        self.config = config
        self.rail = rail or InMemoryTransferRail()
        self.events = events or EventBus()
        self.clock = clock or (lambda: int(time.time()))
        self.lock = lock or config.lock
        self._state = TreasuryState()

    # ── Reads ─────────────────────────────────────────────────────────────────

    @property
    def balance(self) -> int:
        with self.lock:
            return self._state.balance

    @property
    def total_premiums_collected(self) -> int:
        with self.lock:
            return self._state.total_premiums_collected

    @property
    def total_claims_paid(self) -> int:
        with self.lock:
            return self._state.total_claims_paid

    def refundable(self, account: str) -> int:
        with self.lock:
            return self._state.refundable.get(account, 0)

    def snapshot(self) -> TreasuryState:
        with self.lock:
            return TreasuryState(
                balance=self._state.balance,
                total_premiums_collected=self._state.total_premiums_collected,
                total_claims_paid=self._state.total_claims_paid,
                refundable=dict(self._state.refundable),
            )

    def restore(self, state: TreasuryState) -> None:
        with self.lock:
            self._state = TreasuryState(
                balance=state.balance,
                total_premiums_collected=state.total_premiums_collected,
                total_claims_paid=state.total_claims_paid,
                refundable=dict(state.refundable),
            )

    # ── Internal movements (called by the ledger and claim evaluator) ─────────

    def collect_premium(self, payer: str, premium: int, paid_amount: int) -> None:
        with self.lock:
            self._state.balance += premium
            self._state.total_premiums_collected += premium
            overpayment = paid_amount - premium
            if overpayment > 0:
                self._state.refundable[payer] = self._state.refundable.get(payer, 0) + overpayment
                logger.info("Credited overpayment of %d to %s", overpayment, payer)

    def debit(self, amount: int) -> None:
        with self.lock:
            if amount > self._state.balance:
                raise InsufficientReserve(balance=self._state.balance, required=amount)
            self._state.balance -= amount

    def record_payout(self, amount: int) -> None:
        with self.lock:
            self.debit(amount)
            self._state.total_claims_paid += amount

    def transfer(
        self, account: str, amount: int, rollback: Callable[[], None] | None = None
    ) -> None:
        """Pay ``account`` through the rail, rolling back on failure."""
        try:
            ok = self.rail.pay(account, amount)
        except Exception:
            logger.exception("Transfer rail raised while paying %d to %s", amount, account)
            ok = False
        if ok:
            return
        if rollback is not None:
            rollback()
        logger.error("Transfer of %d to %s failed, operation rolled back", amount, account)
        raise TransferFailed(account=account, amount=amount)

    # ── Public operations ─────────────────────────────────────────────────────

    def fund(self, amount: int, caller: str) -> int:
        if not caller:
            raise InvalidAccount()
        if amount <= 0:
            raise InvalidAmount()
        with self.lock:
            self._state.balance += amount
            balance = self._state.balance
        logger.info("Treasury funded with %d by %s (balance=%d)", amount, caller, balance)
        self.events.emit(
            EventType.TREASURY_FUNDED, self.clock(),
            funder=caller, amount=amount, balance=balance,
        )
        return balance

    def withdraw(self, amount: int, caller: str) -> int:
        """Owner-only withdrawal to the configured treasury account."""
        self.config.require_owner(caller)
        if amount <= 0:
            raise InvalidAmount()
        with self.lock:
            before = self.snapshot()
            self.debit(amount)
            self.transfer(
                self.config.treasury_account, amount, rollback=lambda: self.restore(before)
            )
            balance = self._state.balance
        logger.info(
            "Withdrew %d from treasury to %s (balance=%d)",
            amount, self.config.treasury_account, balance,
        )
        self.events.emit(
            EventType.TREASURY_WITHDRAWN, self.clock(),
            recipient=self.config.treasury_account, amount=amount, balance=balance,
        )
        return balance

    def withdraw_refund(self, caller: str) -> int:
        """Pay out the caller's accumulated overpayment credit."""
        with self.lock:
            amount = self._state.refundable.get(caller, 0)
            if amount <= 0:
                raise InvalidAmount("No refundable balance", account=caller)
            before = self.snapshot()
            del self._state.refundable[caller]
            self.transfer(caller, amount, rollback=lambda: self.restore(before))
        logger.info("Refunded overpayment of %d to %s", amount, caller)
        self.events.emit(
            EventType.REFUND_WITHDRAWN, self.clock(), account=caller, amount=amount,
        )
        return amount
