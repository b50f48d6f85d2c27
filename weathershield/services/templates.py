"""Pre-configured policy templates.

A template fixes the trigger, threshold and duration of a common cover
(drought, flood, frost, heat wave, storm). The buyer supplies a location,
a base coverage and their farm details; the template scales the base
coverage by its multiplier (percent) before pricing.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from weathershield.core.admin import AdminConfig
from weathershield.core.config import DAY_SECONDS
from weathershield.core.errors import (
    InvalidAmount,
    TemplateInactive,
    TemplateNotFound,
)
from weathershield.models.policy import TriggerType
from weathershield.services.policy_ledger import PolicyLedger
from weathershield.services.pricing import calculate_premium

logger = logging.getLogger(__name__)


@dataclass
class PolicyTemplate:
    id: int
    name: str
    description: str
    trigger_type: TriggerType
    trigger_threshold: int
    coverage_multiplier: int  # percent of base coverage
    duration: int
    is_active: bool = True


DEFAULT_TEMPLATES: list[tuple[str, str, TriggerType, int, int, int]] = [
    (
        "Drought Protection",
        "Pays out when rainfall drops below 50mm",
        TriggerType.RAINFALL_BELOW, 5000, 100, 90 * DAY_SECONDS,
    ),
    (
        "Flood Protection",
        "Pays out when rainfall exceeds 200mm",
        TriggerType.RAINFALL_ABOVE, 20000, 100, 90 * DAY_SECONDS,
    ),
    (
        "Frost Protection",
        "Pays out when temperature drops below 0°C",
        TriggerType.TEMPERATURE_BELOW, 0, 100, 60 * DAY_SECONDS,
    ),
    (
        "Heat Wave Protection",
        "Pays out when temperature exceeds 35°C",
        TriggerType.TEMPERATURE_ABOVE, 3500, 100, 60 * DAY_SECONDS,
    ),
    (
        "Storm Protection",
        "Pays out when wind speed exceeds 80 km/h",
        TriggerType.WIND_SPEED_ABOVE, 8000, 100, 30 * DAY_SECONDS,
    ),
]


class TemplateCatalog:
    def __init__(self, config: AdminConfig, ledger: PolicyLedger, load_defaults: bool = True):
        self.config = config
        self.ledger = ledger
        self.lock = config.lock
        self._templates: dict[int, PolicyTemplate] = {}
        self._next_id = 1
        if load_defaults:
            for name, description, trigger, threshold, multiplier, duration in DEFAULT_TEMPLATES:
                self._add(name, description, trigger, threshold, multiplier, duration)

    def _add(
        self,
        name: str,
        description: str,
        trigger_type: TriggerType,
        threshold: int,
        coverage_multiplier: int,
        duration: int,
    ) -> PolicyTemplate:
        with self.lock:
            template = PolicyTemplate(
                id=self._next_id,
                name=name,
                description=description,
                trigger_type=TriggerType(trigger_type),
                trigger_threshold=threshold,
                coverage_multiplier=coverage_multiplier,
                duration=duration,
            )
            self._templates[template.id] = template
            self._next_id += 1
        return template

    def add_template(
        self,
        name: str,
        description: str,
        trigger_type: TriggerType,
        threshold: int,
        coverage_multiplier: int,
        duration: int,
        caller: str,
    ) -> PolicyTemplate:
        self.config.require_owner(caller)
        if coverage_multiplier <= 0:
            raise InvalidAmount("Coverage multiplier must be positive")
        template = self._add(name, description, trigger_type, threshold, coverage_multiplier, duration)
        logger.info("Added policy template %d (%s)", template.id, name)
        return copy.copy(template)

    def set_template_active(self, template_id: int, active: bool, caller: str) -> None:
        self.config.require_owner(caller)
        with self.lock:
            self._get(template_id).is_active = active
        logger.info("Template %d %s", template_id, "activated" if active else "deactivated")

    def get(self, template_id: int) -> PolicyTemplate:
        with self.lock:
            return copy.copy(self._get(template_id))

    def active_templates(self) -> list[PolicyTemplate]:
        with self.lock:
            return [copy.copy(t) for t in self._templates.values() if t.is_active]

    def template_count(self) -> int:
        with self.lock:
            return len(self._templates)

    @staticmethod
    def coverage_for(template: PolicyTemplate, base_coverage: int) -> int:
        return base_coverage * template.coverage_multiplier // 100

    def estimate_premium(self, template_id: int, base_coverage: int) -> int:
        template = self.get(template_id)
        coverage = self.coverage_for(template, base_coverage)
        return calculate_premium(coverage, template.duration, template.trigger_type, self.config)

    def create_policy_from_template(
        self,
        template_id: int,
        holder: str,
        location_id: str,
        base_coverage: int,
        crop_type: str,
        farm_size: int,
        paid_amount: int,
    ) -> int:
        with self.lock:
            template = self._get(template_id)
            if not template.is_active:
                raise TemplateInactive(template_id=template_id)
            return self.ledger.create_policy(
                holder=holder,
                location_id=location_id,
                trigger_type=template.trigger_type,
                threshold=template.trigger_threshold,
                coverage_amount=self.coverage_for(template, base_coverage),
                duration=template.duration,
                crop_type=crop_type,
                farm_size=farm_size,
                paid_amount=paid_amount,
            )

    def _get(self, template_id: int) -> PolicyTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id=template_id)
        return template
