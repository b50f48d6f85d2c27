"""Claim evaluator.

    initiated ──process──▶ processed (paid | denied), terminal

Filing a claim opens an oracle request for the policy's location. Once a
provider fulfills that request the claim can be processed: if the reading
crosses the policy's trigger, the full coverage is paid and the policy
becomes claim_paid. Otherwise the claim is denied and the policy stays
active.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Callable

from weathershield.core.errors import (
    AlreadyProcessed,
    ClaimNotFound,
    NotPolicyholder,
    PolicyExpired,
    PolicyNotActive,
    PolicyNotStarted,
    WeatherDataNotReady,
)
from weathershield.models.policy import Claim, PolicyStatus
from weathershield.services.events import EventBus, EventType
from weathershield.services.oracle_broker import OracleBroker
from weathershield.services.policy_ledger import PolicyLedger
from weathershield.services.treasury import Treasury
from weathershield.services.triggers import is_triggered, observed_value

logger = logging.getLogger(__name__)


class ClaimEvaluator:
    def __init__(
        self,
        ledger: PolicyLedger,
        oracle: OracleBroker,
        treasury: Treasury,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
        lock: threading.RLock | None = None,
    ):
        self.ledger = ledger
        self.oracle = oracle
        self.treasury = treasury
        self.events = events or ledger.events
        self.clock = clock or ledger.clock
        self.lock = lock or ledger.lock
        self._claims: dict[int, Claim] = {}
        self._by_policy: dict[int, list[int]] = {}
        self._next_id = 1

    def initiate_claim(self, policy_id: int, caller: str) -> int:
        with self.lock:
            policy = self.ledger.get_policy(policy_id)
            if policy.holder != caller:
                raise NotPolicyholder(policy_id=policy_id, caller=caller)
            if policy.status != PolicyStatus.ACTIVE:
                raise PolicyNotActive(policy_id=policy_id, status=policy.status.value)
            now = self.clock()
            if now < policy.start_time:
                raise PolicyNotStarted(policy_id=policy_id, start_time=policy.start_time)
            if now > policy.end_time:
                raise PolicyExpired(policy_id=policy_id, end_time=policy.end_time)

            request_id = self.oracle.request_reading(policy.location_id, now)
            claim = Claim(
                id=self._next_id,
                policy_id=policy_id,
                filed_at=now,
                oracle_request_id=request_id,
            )
            self._next_id += 1
            self._claims[claim.id] = claim
            self._by_policy.setdefault(policy_id, []).append(claim.id)

        logger.info(
            "Claim %d filed on policy %d by %s (oracle request %s)",
            claim.id, policy_id, caller, request_id,
        )
        self.events.emit(
            EventType.CLAIM_INITIATED,
            now,
            claim_id=claim.id,
            policy_id=policy_id,
            oracle_request_id=request_id,
        )
        return claim.id

    def process_claim(self, claim_id: int) -> int:
        """Settle a claim against its verified reading. Returns the payout (0 if denied)."""
        with self.lock:
            claim = self._get(claim_id)
            if claim.processed:
                raise AlreadyProcessed(claim_id=claim_id)
            policy = self.ledger.get_policy(claim.policy_id)
            if policy.status != PolicyStatus.ACTIVE:
                raise PolicyNotActive(policy_id=policy.id, status=policy.status.value)
            exists, verified = self.oracle.is_available(claim.oracle_request_id)
            if not (exists and verified):
                raise WeatherDataNotReady(
                    claim_id=claim_id, oracle_request_id=claim.oracle_request_id
                )

            reading = self.oracle.get_reading(claim.oracle_request_id)
            actual_value = observed_value(policy.trigger_type, reading)
            triggered = is_triggered(policy.trigger_type, policy.trigger_threshold, reading)
            payout = policy.coverage_amount if triggered else 0

            if triggered:
                saved_claim = copy.copy(claim)
                saved_treasury = self.treasury.snapshot()

                def rollback() -> None:
                    self._claims[claim_id] = saved_claim
                    self.ledger.restore(policy)
                    self.treasury.restore(saved_treasury)

                self.treasury.record_payout(payout)
                self.ledger.update_status(policy.id, PolicyStatus.CLAIM_PAID)
                claim.actual_value = actual_value
                claim.payout_amount = payout
                claim.processed = True
                self.treasury.transfer(policy.holder, payout, rollback=rollback)
            else:
                claim.actual_value = actual_value
                claim.processed = True

        logger.info(
            "Claim %d on policy %d %s: %s=%d threshold=%d payout=%d",
            claim_id, policy.id, "paid" if triggered else "denied",
            policy.trigger_type.value, actual_value, policy.trigger_threshold, payout,
        )
        self.events.emit(
            EventType.CLAIM_PROCESSED,
            self.clock(),
            claim_id=claim_id,
            policy_id=policy.id,
            holder=policy.holder,
            actual_value=actual_value,
            payout_amount=payout,
            triggered=triggered,
        )
        return payout

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_claim(self, claim_id: int) -> Claim:
        with self.lock:
            return copy.copy(self._get(claim_id))

    def get_claims_by_policy(self, policy_id: int) -> list[int]:
        with self.lock:
            return list(self._by_policy.get(policy_id, []))

    def claim_count(self) -> int:
        with self.lock:
            return len(self._claims)

    def pending_policy_ids(self) -> set[int]:
        """Policies that still have an unprocessed claim."""
        with self.lock:
            return {c.policy_id for c in self._claims.values() if not c.processed}

    def _get(self, claim_id: int) -> Claim:
        claim = self._claims.get(claim_id)
        if claim is None:
            raise ClaimNotFound(claim_id=claim_id)
        return claim
