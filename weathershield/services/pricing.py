"""Premium pricing: fixed-point basis-point arithmetic over integer base units.

    premium = coverage * base_rate_bps / 10000
    premium = premium * (duration * 100 / seconds_per_year) / 100
    premium = premium * risk_multiplier / 100
    premium = max(premium, minimum_premium)

Every step truncates before the next one. The order of operations is part
of the pricing contract: reordering the multiplications and divisions
changes results at the margin, so quotes would no longer match premiums
already paid.
"""

from __future__ import annotations

from dataclasses import dataclass

from weathershield.core.admin import AdminConfig
from weathershield.models.policy import TriggerType

SECONDS_PER_YEAR = 365 * 24 * 60 * 60
BPS_DENOMINATOR = 10_000

# Percent-scaled risk loading per trigger type.
RISK_MULTIPLIERS: dict[TriggerType, int] = {
    TriggerType.RAINFALL_BELOW: 120,
    TriggerType.RAINFALL_ABOVE: 150,
    TriggerType.TEMPERATURE_BELOW: 110,
    TriggerType.TEMPERATURE_ABOVE: 130,
    TriggerType.WIND_SPEED_ABOVE: 140,
}


@dataclass(frozen=True)
class PremiumQuote:
    coverage_amount: int
    duration_seconds: int
    trigger_type: TriggerType
    base_premium: int
    duration_multiplier: int
    risk_multiplier: int
    premium: int
    minimum_applied: bool


def quote_premium(
    coverage_amount: int,
    duration_seconds: int,
    trigger_type: TriggerType,
    base_rate_bps: int,
    minimum_premium: int,
) -> PremiumQuote:
    """Price a policy and keep the intermediate factors for display."""
    base_premium = coverage_amount * base_rate_bps // BPS_DENOMINATOR
    duration_multiplier = duration_seconds * 100 // SECONDS_PER_YEAR
    premium = base_premium * duration_multiplier // 100

    risk_multiplier = RISK_MULTIPLIERS[TriggerType(trigger_type)]
    premium = premium * risk_multiplier // 100

    minimum_applied = premium < minimum_premium
    return PremiumQuote(
        coverage_amount=coverage_amount,
        duration_seconds=duration_seconds,
        trigger_type=TriggerType(trigger_type),
        base_premium=base_premium,
        duration_multiplier=duration_multiplier,
        risk_multiplier=risk_multiplier,
        premium=max(premium, minimum_premium),
        minimum_applied=minimum_applied,
    )


def calculate_premium(
    coverage_amount: int,
    duration_seconds: int,
    trigger_type: TriggerType,
    config: AdminConfig,
) -> int:
    """Premium owed for a policy under the current admin configuration."""
    return quote_premium(
        coverage_amount,
        duration_seconds,
        trigger_type,
        base_rate_bps=config.base_premium_rate_bps,
        minimum_premium=config.minimum_premium,
    ).premium
