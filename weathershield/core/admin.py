"""Owner-held configuration shared by the policy ledger and oracle broker.

Rates, limits, the pause switch and the weather-provider allow-list all
live on one ``AdminConfig`` instance that is handed to each component at
construction. Every setter requires the owner identity.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from weathershield.core.config import Settings
from weathershield.core.errors import InvalidAccount, InvalidAmount, InvalidLimits, NotOwner

logger = logging.getLogger(__name__)

MAX_RATE_BPS = 10_000


@dataclass
class AdminConfig:
    owner: str
    treasury_account: str
    base_premium_rate_bps: int
    minimum_premium: int
    min_coverage: int
    max_coverage: int
    min_duration: int
    max_duration: int
    paused: bool = False
    providers: set[str] = field(default_factory=set)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def __post_init__(self) -> None:
        # The owner can always submit weather data.
        self.providers.add(self.owner)

    @classmethod
    def from_settings(cls, settings: Settings) -> AdminConfig:
        return cls(
            owner=settings.owner_account,
            treasury_account=settings.treasury_account,
            base_premium_rate_bps=settings.base_premium_rate_bps,
            minimum_premium=settings.minimum_premium,
            min_coverage=settings.min_coverage,
            max_coverage=settings.max_coverage,
            min_duration=settings.min_duration_seconds,
            max_duration=settings.max_duration_seconds,
            providers=set(settings.authorized_providers),
        )

    def require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotOwner(caller=caller)

    # ── Pricing and limits ────────────────────────────────────────────────────

    def set_base_premium_rate(self, rate_bps: int, caller: str) -> None:
        self.require_owner(caller)
        if not 0 < rate_bps <= MAX_RATE_BPS:
            raise InvalidAmount(f"Premium rate must be in (0, {MAX_RATE_BPS}] bps")
        with self.lock:
            self.base_premium_rate_bps = rate_bps
        logger.info("Base premium rate set to %d bps", rate_bps)

    def set_minimum_premium(self, amount: int, caller: str) -> None:
        self.require_owner(caller)
        if amount < 0:
            raise InvalidAmount("Minimum premium must not be negative")
        with self.lock:
            self.minimum_premium = amount
        logger.info("Minimum premium set to %d", amount)

    def set_coverage_limits(self, min_coverage: int, max_coverage: int, caller: str) -> None:
        self.require_owner(caller)
        if min_coverage <= 0 or min_coverage > max_coverage:
            raise InvalidLimits("Coverage limits require 0 < min <= max")
        with self.lock:
            self.min_coverage = min_coverage
            self.max_coverage = max_coverage
        logger.info("Coverage limits set to [%d, %d]", min_coverage, max_coverage)

    def set_duration_limits(self, min_duration: int, max_duration: int, caller: str) -> None:
        self.require_owner(caller)
        if min_duration <= 0 or min_duration > max_duration:
            raise InvalidLimits("Duration limits require 0 < min <= max")
        with self.lock:
            self.min_duration = min_duration
            self.max_duration = max_duration
        logger.info("Duration limits set to [%ds, %ds]", min_duration, max_duration)

    # ── Pause switch ──────────────────────────────────────────────────────────

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        with self.lock:
            self.paused = True
        logger.info("Policy creation paused")

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        with self.lock:
            self.paused = False
        logger.info("Policy creation resumed")

    # ── Provider allow-list ───────────────────────────────────────────────────

    def authorize_provider(self, account: str, caller: str) -> None:
        self.require_owner(caller)
        if not account:
            raise InvalidAccount()
        with self.lock:
            self.providers.add(account)
        logger.info("Authorized weather provider %s", account)

    def revoke_provider(self, account: str, caller: str) -> None:
        self.require_owner(caller)
        with self.lock:
            self.providers.discard(account)
        logger.info("Revoked weather provider %s", account)

    def is_authorized_provider(self, account: str) -> bool:
        with self.lock:
            return account in self.providers
