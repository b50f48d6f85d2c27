"""Policy ledger: creation, cancellation, expiry and lookups.

Lifecycle:
    active ──cancel──▶ cancelled (terminal)
    active ──claim paid──▶ claim_paid (terminal)
    active ──window ended──▶ expired

A denied claim leaves the policy active, so it can be claimed again while
its window is open.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Callable, Iterable

from weathershield.core.admin import AdminConfig
from weathershield.core.errors import (
    ContractPaused,
    CoverageOutOfRange,
    DurationOutOfRange,
    EmptyCropType,
    InsufficientPremium,
    InvalidAccount,
    InvalidFarmSize,
    NotPolicyholder,
    PolicyExpired,
    PolicyNotActive,
    PolicyNotFound,
)
from weathershield.models.policy import Policy, PolicyStatus, TriggerType
from weathershield.services.events import EventBus, EventType
from weathershield.services.pricing import calculate_premium
from weathershield.services.treasury import Treasury
from weathershield.services.weather_store import require_location

logger = logging.getLogger(__name__)

CANCELLATION_FEE_DIVISOR = 10  # 10% of the prorated refund


def cancellation_refund(premium: int, start_time: int, end_time: int, now: int) -> int:
    """Prorated refund for the unused window, less the cancellation fee."""
    total = end_time - start_time
    elapsed = max(0, now - start_time)
    refund = premium * (total - elapsed) // total
    fee = refund // CANCELLATION_FEE_DIVISOR
    return refund - fee


class PolicyLedger:
    def __init__(
        self,
        config: AdminConfig,
        treasury: Treasury,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
        lock: threading.RLock | None = None,
    ):
        self.config = config
        self.treasury = treasury
        self.events = events or treasury.events
        self.clock = clock or (lambda: int(time.time()))
        self.lock = lock or config.lock
        self._policies: dict[int, Policy] = {}
        self._by_holder: dict[str, list[int]] = {}
        self._next_id = 1

    def create_policy(
        self,
        holder: str,
        location_id: str,
        trigger_type: TriggerType,
        threshold: int,
        coverage_amount: int,
        duration: int,
        crop_type: str,
        farm_size: int,
        paid_amount: int,
    ) -> int:
        """Price, validate and store a new active policy. Returns its id.

        Overpayment beyond the premium is credited to the holder and can be
        withdrawn from the treasury later.
        """
        trigger_type = TriggerType(trigger_type)
        with self.lock:
            if self.config.paused:
                raise ContractPaused()
            if not holder:
                raise InvalidAccount()
            require_location(location_id)
            if not self.config.min_coverage <= coverage_amount <= self.config.max_coverage:
                raise CoverageOutOfRange(
                    coverage_amount=coverage_amount,
                    min_coverage=self.config.min_coverage,
                    max_coverage=self.config.max_coverage,
                )
            if not self.config.min_duration <= duration <= self.config.max_duration:
                raise DurationOutOfRange(
                    duration=duration,
                    min_duration=self.config.min_duration,
                    max_duration=self.config.max_duration,
                )
            if not crop_type or not crop_type.strip():
                raise EmptyCropType()
            if farm_size <= 0:
                raise InvalidFarmSize(farm_size=farm_size)

            premium = calculate_premium(coverage_amount, duration, trigger_type, self.config)
            if paid_amount < premium:
                raise InsufficientPremium(required=premium, paid=paid_amount)

            now = self.clock()
            policy = Policy(
                id=self._next_id,
                holder=holder,
                location_id=location_id,
                trigger_type=trigger_type,
                trigger_threshold=threshold,
                premium=premium,
                coverage_amount=coverage_amount,
                start_time=now,
                end_time=now + duration,
                status=PolicyStatus.ACTIVE,
                crop_type=crop_type,
                farm_size=farm_size,
            )
            self._next_id += 1
            self._policies[policy.id] = policy
            self._by_holder.setdefault(holder, []).append(policy.id)
            self.treasury.collect_premium(holder, premium, paid_amount)

        logger.info(
            "Created policy %d for %s: %s %d cover=%d premium=%d",
            policy.id, holder, trigger_type.value, threshold, coverage_amount, premium,
        )
        self.events.emit(
            EventType.POLICY_CREATED,
            now,
            policy_id=policy.id,
            holder=holder,
            location_id=location_id,
            trigger_type=trigger_type.value,
            trigger_threshold=threshold,
            coverage_amount=coverage_amount,
            premium=premium,
            end_time=policy.end_time,
        )
        return policy.id

    def cancel_policy(self, policy_id: int, caller: str) -> int:
        """Cancel an active policy and pay the prorated refund. Returns the refund."""
        with self.lock:
            policy = self._get(policy_id)
            if policy.holder != caller:
                raise NotPolicyholder(policy_id=policy_id, caller=caller)
            if policy.status != PolicyStatus.ACTIVE:
                raise PolicyNotActive(policy_id=policy_id, status=policy.status.value)
            now = self.clock()
            if now > policy.end_time:
                raise PolicyExpired(policy_id=policy_id, end_time=policy.end_time)

            refund = cancellation_refund(policy.premium, policy.start_time, policy.end_time, now)
            saved_policy = copy.copy(policy)
            saved_treasury = self.treasury.snapshot()

            def rollback() -> None:
                self.restore(saved_policy)
                self.treasury.restore(saved_treasury)

            if refund > 0:
                self.treasury.debit(refund)
            policy.status = PolicyStatus.CANCELLED
            if refund > 0:
                self.treasury.transfer(caller, refund, rollback=rollback)

        logger.info("Cancelled policy %d, refunded %d to %s", policy_id, refund, caller)
        self.events.emit(
            EventType.POLICY_CANCELLED, now, policy_id=policy_id, holder=caller, refund=refund,
        )
        return refund

    def expire_policies(self, now: int | None = None, exclude: Iterable[int] = ()) -> list[int]:
        """Move active policies whose window has ended to expired."""
        skip = set(exclude)
        expired: list[int] = []
        with self.lock:
            now = self.clock() if now is None else now
            for policy in self._policies.values():
                if policy.status != PolicyStatus.ACTIVE or policy.id in skip:
                    continue
                if now > policy.end_time:
                    policy.status = PolicyStatus.EXPIRED
                    expired.append(policy.id)

        for policy_id in expired:
            self.events.emit(EventType.POLICY_EXPIRED, now, policy_id=policy_id)
        if expired:
            logger.info("Expired %d policies: %s", len(expired), expired)
        return expired

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_policy(self, policy_id: int) -> Policy:
        with self.lock:
            return copy.copy(self._get(policy_id))

    def get_policies_by_holder(self, holder: str) -> list[int]:
        with self.lock:
            return list(self._by_holder.get(holder, []))

    def policy_count(self) -> int:
        with self.lock:
            return len(self._policies)

    def active_policy_count(self) -> int:
        with self.lock:
            return sum(1 for p in self._policies.values() if p.status == PolicyStatus.ACTIVE)

    # ── Internal mutations (claim settlement) ─────────────────────────────────

    def update_status(self, policy_id: int, status: PolicyStatus) -> None:
        with self.lock:
            self._get(policy_id).status = status

    def restore(self, policy: Policy) -> None:
        with self.lock:
            self._policies[policy.id] = copy.copy(policy)

    def _get(self, policy_id: int) -> Policy:
        policy = self._policies.get(policy_id)
        if policy is None:
            raise PolicyNotFound(policy_id=policy_id)
        return policy
