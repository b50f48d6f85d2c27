"""Policy and claim records.

A policy pays its full coverage when an oracle-attested reading at the
policy's location crosses the trigger threshold:
  "Will <trigger field> at <location> be <below|above> <threshold>
   when a claim is filed between <start_time> and <end_time>?"
"""

import enum
from dataclasses import dataclass


class TriggerType(str, enum.Enum):
    RAINFALL_BELOW = "rainfall_below"        # drought
    RAINFALL_ABOVE = "rainfall_above"        # flood
    TEMPERATURE_BELOW = "temperature_below"  # frost
    TEMPERATURE_ABOVE = "temperature_above"  # heat wave
    WIND_SPEED_ABOVE = "wind_speed_above"    # storm


TRIGGER_LABELS: dict[TriggerType, str] = {
    TriggerType.RAINFALL_BELOW: "Drought Protection",
    TriggerType.RAINFALL_ABOVE: "Flood Protection",
    TriggerType.TEMPERATURE_BELOW: "Frost Protection",
    TriggerType.TEMPERATURE_ABOVE: "Heat Wave Protection",
    TriggerType.WIND_SPEED_ABOVE: "Storm Protection",
}


class PolicyStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CLAIM_PAID = "claim_paid"  # terminal
    CANCELLED = "cancelled"    # terminal


class ClaimOutcome(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    DENIED = "denied"


@dataclass
class Policy:
    id: int
    holder: str
    location_id: str
    trigger_type: TriggerType
    trigger_threshold: int
    premium: int
    coverage_amount: int
    start_time: int
    end_time: int
    status: PolicyStatus
    crop_type: str
    farm_size: int

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    @property
    def is_terminal(self) -> bool:
        return self.status in (PolicyStatus.CLAIM_PAID, PolicyStatus.CANCELLED)

    def __repr__(self) -> str:
        return (
            f"<Policy {self.id} | {self.trigger_type.value} {self.trigger_threshold} "
            f"cover={self.coverage_amount} holder={self.holder} {self.status.value}>"
        )


@dataclass
class Claim:
    id: int
    policy_id: int
    filed_at: int
    oracle_request_id: str
    actual_value: int = 0
    payout_amount: int = 0
    processed: bool = False

    @property
    def outcome(self) -> ClaimOutcome:
        if not self.processed:
            return ClaimOutcome.PENDING
        return ClaimOutcome.PAID if self.payout_amount > 0 else ClaimOutcome.DENIED

    def __repr__(self) -> str:
        return (
            f"<Claim {self.id} | policy={self.policy_id} {self.outcome.value} "
            f"payout={self.payout_amount}>"
        )
