"""Pydantic schemas for the insurance API.

Monetary amounts are integers in base units (10^18 per coin). Weather
values and thresholds are integers scaled by 100.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from weathershield.models.policy import ClaimOutcome, PolicyStatus, TriggerType
from weathershield.models.weather import RequestStatus
from weathershield.services.events import EventType


# ── Locations ─────────────────────────────────────────────────────────────────


class LocationRequest(BaseModel):
    lat: float = Field(
        allow_inf_nan=False,
        description="Latitude in decimal degrees", examples=[41.9],
    )
    lon: float = Field(
        allow_inf_nan=False,
        description="Longitude in decimal degrees", examples=[-93.1],
    )


class LocationResponse(BaseModel):
    location_id: str = Field(description="Deterministic id for the microdegree coordinates")
    lat_micro: int
    lon_micro: int


# ── Pricing ───────────────────────────────────────────────────────────────────


class PremiumQuoteResponse(BaseModel):
    coverage_amount: int
    duration_seconds: int
    trigger_type: TriggerType
    base_rate_bps: int
    base_premium: int
    duration_multiplier: int = Field(description="Duration as a percent of a year, truncated")
    risk_multiplier: int = Field(description="Percent-scaled risk loading for the trigger type")
    premium: int
    minimum_applied: bool


# ── Policies ──────────────────────────────────────────────────────────────────


class PolicyCreateRequest(BaseModel):
    location_id: str
    trigger_type: TriggerType
    trigger_threshold: int = Field(description="Threshold scaled by 100, e.g. 5000 = 50mm")
    coverage_amount: int
    duration_seconds: int
    crop_type: str
    farm_size: int = Field(description="Farm size scaled by 100 (hectares)")
    paid_amount: int = Field(description="Amount paid; any excess over the premium is refundable")

    model_config = {"json_schema_extra": {"example": {
        "location_id": "3f1c...",
        "trigger_type": "rainfall_below",
        "trigger_threshold": 5000,
        "coverage_amount": 10**18,
        "duration_seconds": 30 * 86400,
        "crop_type": "Wheat",
        "farm_size": 10000,
        "paid_amount": 10**16,
    }}}


class PolicyResponse(BaseModel):
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


class PolicyListResponse(BaseModel):
    policies: list[PolicyResponse]
    total: int


class CancelResponse(BaseModel):
    policy_id: int
    refund: int
    status: PolicyStatus


# ── Claims ────────────────────────────────────────────────────────────────────


class ClaimCreateRequest(BaseModel):
    policy_id: int


class ClaimResponse(BaseModel):
    id: int
    policy_id: int
    filed_at: int
    oracle_request_id: str
    actual_value: int
    payout_amount: int
    processed: bool
    outcome: ClaimOutcome


class ClaimListResponse(BaseModel):
    claims: list[ClaimResponse]
    total: int


# ── Weather ───────────────────────────────────────────────────────────────────


class WeatherReadingSchema(BaseModel):
    timestamp: int
    temperature: int
    rainfall: int
    humidity: int
    wind_speed: int
    source_id: str
    verified: bool
    synthetic: bool = Field(description="True when the reading is a fallback estimate")


class WeatherRecordRequest(BaseModel):
    location_id: str
    temperature: int
    rainfall: int
    humidity: int
    wind_speed: int
    source: str = Field(default="manual", description="Name of the data source")


class WeatherHistoryResponse(BaseModel):
    location_id: str
    total: int
    start: int
    readings: list[WeatherReadingSchema]


class AveragesResponse(BaseModel):
    location_id: str
    avg_temperature: int
    avg_rainfall: int
    avg_humidity: int
    avg_wind_speed: int
    count: int
    last_updated: int


class RiskScoreResponse(BaseModel):
    location_id: str
    trigger_type: TriggerType
    threshold: int
    risk_score: int = Field(ge=0, le=100, description="Percent of recent readings that triggered")
    sample_size: int


# ── Oracle requests ───────────────────────────────────────────────────────────


class OracleRequestCreate(BaseModel):
    location_id: str


class FulfillRequest(BaseModel):
    temperature: int
    rainfall: int
    humidity: int
    wind_speed: int
    source: str | None = Field(default=None, description="Data source name (defaults to manual)")


class OracleRequestResponse(BaseModel):
    id: str
    location_id: str
    timestamp: int
    status: RequestStatus
    verified: bool
    reading: WeatherReadingSchema | None = None


class OracleRequestListResponse(BaseModel):
    requests: list[OracleRequestResponse]
    total: int


# ── Templates ─────────────────────────────────────────────────────────────────


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: str
    trigger_type: TriggerType
    trigger_threshold: int
    coverage_multiplier: int
    duration: int
    is_active: bool


class TemplateListResponse(BaseModel):
    templates: list[TemplateResponse]
    total: int


class TemplateEstimateResponse(BaseModel):
    template_id: int
    base_coverage: int
    coverage_amount: int
    premium: int


class TemplatePolicyRequest(BaseModel):
    location_id: str
    base_coverage: int
    crop_type: str
    farm_size: int
    paid_amount: int


class TemplateCreateRequest(BaseModel):
    name: str
    description: str = ""
    trigger_type: TriggerType
    trigger_threshold: int
    coverage_multiplier: int = 100
    duration_seconds: int


class TemplateActiveRequest(BaseModel):
    active: bool


# ── Treasury ──────────────────────────────────────────────────────────────────


class AmountRequest(BaseModel):
    amount: int


class TreasuryResponse(BaseModel):
    balance: int
    total_premiums_collected: int
    total_claims_paid: int
    refundable: int = Field(description="Overpayment credit held for the caller")


class RefundResponse(BaseModel):
    account: str
    amount: int


class StatsResponse(BaseModel):
    policy_count: int
    active_policies: int
    claim_count: int
    pending_oracle_requests: int
    template_count: int
    treasury_balance: int
    total_premiums_collected: int
    total_claims_paid: int
    paused: bool


# ── Admin ─────────────────────────────────────────────────────────────────────


class RateRequest(BaseModel):
    rate_bps: int = Field(description="Annual base premium rate in basis points")


class LimitsRequest(BaseModel):
    minimum: int
    maximum: int


class ProviderRequest(BaseModel):
    account: str


class AdminConfigResponse(BaseModel):
    owner: str
    treasury_account: str
    base_premium_rate_bps: int
    minimum_premium: int
    min_coverage: int
    max_coverage: int
    min_duration: int
    max_duration: int
    paused: bool
    providers: list[str]


class ExpireResponse(BaseModel):
    expired: list[int]
    total: int


class OracleTickResponse(BaseModel):
    fulfilled: int
    recorded: int


# ── Webhooks ─────────────────────────────────────────────────────────────────


ALL_EVENTS: list[EventType] = list(EventType)


class WebhookCreateRequest(BaseModel):
    callback_url: str = Field(
        description="HTTPS URL that will receive POST notifications",
        examples=["https://platform.example.com/hooks/weathershield"],
    )
    events: list[EventType] = Field(
        default_factory=lambda: list(ALL_EVENTS),
        description="Event types to subscribe to (defaults to all events)",
    )
    secret: str | None = Field(
        default=None,
        description="Shared secret for HMAC-SHA256 signature verification on payloads",
    )


class WebhookRegistration(BaseModel):
    id: str = Field(description="Unique webhook registration ID")
    owner: str = Field(description="Account that registered the webhook")
    callback_url: str
    events: list[EventType]
    created_at: datetime
    active: bool = True


class WebhookListResponse(BaseModel):
    webhooks: list[WebhookRegistration]
    total: int


class WebhookEvent(BaseModel):
    """Payload delivered to the registered callback URL."""
    event_id: str = Field(description="Unique event ID for idempotency")
    event_type: EventType
    timestamp: datetime
    occurred_at: int = Field(description="Ledger time of the event, unix seconds")
    data: dict[str, Any]


# ── API keys ──────────────────────────────────────────────────────────────────


class APIKeyCreateRequest(BaseModel):
    name: str
    account: str = Field(description="Account identity the key acts as")


class APIKeyCreateResponse(BaseModel):
    id: str
    name: str
    account: str
    key: str = Field(description="Raw API key, shown only once")
    prefix: str
    created_at: datetime


class APIKeyInfo(BaseModel):
    id: str
    name: str
    account: str
    prefix: str
    created_at: datetime
    active: bool
    total_requests: int = 0


class APIKeyListResponse(BaseModel):
    keys: list[APIKeyInfo]
    total: int


class HealthResponse(BaseModel):
    status: str
    version: str
    policies: int
    treasury_balance: int
