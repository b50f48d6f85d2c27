"""Wires the insurance core into one platform instance.

All components share the admin config's re-entrant lock, one clock and
one event bus. The FastAPI app builds a single platform at startup and
stores it on ``app.state.platform``.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import Request

from weathershield.core.admin import AdminConfig
from weathershield.core.config import Settings
from weathershield.services.claim_evaluator import ClaimEvaluator
from weathershield.services.events import EventBus
from weathershield.services.oracle_broker import OracleBroker
from weathershield.services.oracle_fulfiller import DEFAULT_LOCATIONS, OracleFulfiller
from weathershield.services.policy_ledger import PolicyLedger
from weathershield.services.templates import TemplateCatalog
from weathershield.services.treasury import InMemoryTransferRail, TransferRail, Treasury
from weathershield.services.weather_store import WeatherHistory
from weathershield.services.webhook_dispatcher import WebhookRelay
from weathershield.services.webhook_store import WebhookStore

logger = logging.getLogger(__name__)


class InsurancePlatform:
    def __init__(
        self,
        config: AdminConfig,
        rail: TransferRail | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.config = config
        self.lock = config.lock
        self.clock = clock or (lambda: int(time.time()))
        self.events = EventBus()

        self.history = WeatherHistory(config, self.events, self.clock, self.lock)
        self.oracle = OracleBroker(config, self.history, self.events, self.clock, self.lock)
        self.treasury = Treasury(config, rail, self.events, self.clock, self.lock)
        self.policies = PolicyLedger(config, self.treasury, self.events, self.clock, self.lock)
        self.claims = ClaimEvaluator(
            self.policies, self.oracle, self.treasury, self.events, self.clock, self.lock
        )
        self.templates = TemplateCatalog(config, self.policies)

        self.webhooks = WebhookStore()
        self.relay = WebhookRelay(self.webhooks)
        self.events.subscribe(self.relay)

        self.fulfiller: OracleFulfiller | None = None

    def expire_policies(self) -> list[int]:
        """Expire ended policies, except those with a claim still awaiting processing."""
        with self.lock:
            return self.policies.expire_policies(exclude=self.claims.pending_policy_ids())

    def attach_fulfiller(self, account: str, monitor_defaults: bool = True) -> OracleFulfiller:
        fulfiller = OracleFulfiller(
            self.oracle, self.history, account, clock=self.clock, relay=self.relay
        )
        if monitor_defaults:
            for name, lat, lon in DEFAULT_LOCATIONS:
                fulfiller.add_location(name, lat, lon)
        self.events.subscribe(fulfiller.on_event)
        self.fulfiller = fulfiller
        return fulfiller


def build_platform(
    settings: Settings,
    rail: TransferRail | None = None,
    clock: Callable[[], int] | None = None,
) -> InsurancePlatform:
    config = AdminConfig.from_settings(settings)
    # The fulfiller submits readings under its own account.
    config.providers.add(settings.oracle_account)

    platform = InsurancePlatform(config, rail or InMemoryTransferRail(), clock)
    platform.attach_fulfiller(
        settings.oracle_account, monitor_defaults=settings.oracle_monitor_default_locations
    )
    logger.info(
        "Platform ready: owner=%s rate=%dbps providers=%d templates=%d",
        config.owner, config.base_premium_rate_bps, len(config.providers),
        platform.templates.template_count(),
    )
    return platform


def get_platform(request: Request) -> InsurancePlatform:
    return request.app.state.platform
