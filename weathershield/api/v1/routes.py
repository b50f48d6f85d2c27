"""Policyholder- and provider-facing insurance API, v1 routes.

Every request acts as the account bound to its API key: that account is
the policyholder when buying or cancelling, the claimant when filing, and
the submitter when providing weather data.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from weathershield.core import hashing
from weathershield.core.auth import APIKey, require_api_key
from weathershield.models.policy import Claim, Policy, TriggerType
from weathershield.models.schemas import (
    AmountRequest,
    AveragesResponse,
    CancelResponse,
    ClaimCreateRequest,
    ClaimListResponse,
    ClaimResponse,
    FulfillRequest,
    LocationRequest,
    LocationResponse,
    OracleRequestCreate,
    OracleRequestListResponse,
    OracleRequestResponse,
    PolicyCreateRequest,
    PolicyListResponse,
    PolicyResponse,
    PremiumQuoteResponse,
    RefundResponse,
    RiskScoreResponse,
    StatsResponse,
    TemplateEstimateResponse,
    TemplateListResponse,
    TemplatePolicyRequest,
    TemplateResponse,
    TreasuryResponse,
    WeatherHistoryResponse,
    WeatherReadingSchema,
    WeatherRecordRequest,
    WebhookCreateRequest,
    WebhookListResponse,
    WebhookRegistration,
)
from weathershield.models.weather import OracleRequest, WeatherReading
from weathershield.services.platform import InsurancePlatform, get_platform
from weathershield.services.pricing import quote_premium
from weathershield.services.templates import PolicyTemplate
from weathershield.services.weather_store import RISK_SAMPLE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["insurance"], dependencies=[Depends(require_api_key)])


# ── Helpers ───────────────────────────────────────────────────────────────────


def _flush_webhooks(background: BackgroundTasks, platform: InsurancePlatform) -> None:
    background.add_task(platform.relay.flush)


def _policy_response(policy: Policy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        holder=policy.holder,
        location_id=policy.location_id,
        trigger_type=policy.trigger_type,
        trigger_threshold=policy.trigger_threshold,
        premium=policy.premium,
        coverage_amount=policy.coverage_amount,
        start_time=policy.start_time,
        end_time=policy.end_time,
        status=policy.status,
        crop_type=policy.crop_type,
        farm_size=policy.farm_size,
    )


def _claim_response(claim: Claim) -> ClaimResponse:
    return ClaimResponse(
        id=claim.id,
        policy_id=claim.policy_id,
        filed_at=claim.filed_at,
        oracle_request_id=claim.oracle_request_id,
        actual_value=claim.actual_value,
        payout_amount=claim.payout_amount,
        processed=claim.processed,
        outcome=claim.outcome,
    )


def _reading_schema(reading: WeatherReading) -> WeatherReadingSchema:
    return WeatherReadingSchema(
        timestamp=reading.timestamp,
        temperature=reading.temperature,
        rainfall=reading.rainfall,
        humidity=reading.humidity,
        wind_speed=reading.wind_speed,
        source_id=reading.source_id,
        verified=reading.verified,
        synthetic=reading.is_synthetic,
    )


def _request_response(request: OracleRequest) -> OracleRequestResponse:
    return OracleRequestResponse(
        id=request.id,
        location_id=request.location_id,
        timestamp=request.timestamp,
        status=request.status,
        verified=request.verified,
        reading=_reading_schema(request.reading) if request.reading else None,
    )


def _template_response(template: PolicyTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        trigger_type=template.trigger_type,
        trigger_threshold=template.trigger_threshold,
        coverage_multiplier=template.coverage_multiplier,
        duration=template.duration,
        is_active=template.is_active,
    )


# ── Locations & pricing ───────────────────────────────────────────────────────


@router.post(
    "/locations",
    response_model=LocationResponse,
    summary="Derive a location id",
    description="Rounds coordinates to integer microdegrees and returns their deterministic id.",
)
async def create_location(body: LocationRequest) -> LocationResponse:
    return LocationResponse(
        location_id=hashing.location_id(body.lat, body.lon),
        lat_micro=hashing.to_microdegrees(body.lat),
        lon_micro=hashing.to_microdegrees(body.lon),
    )


@router.get(
    "/premium",
    response_model=PremiumQuoteResponse,
    summary="Quote a premium",
    description="Prices a policy under the current rate without creating it.",
)
async def get_premium_quote(
    coverage_amount: int = Query(description="Payout if the trigger fires, in base units"),
    duration_seconds: int = Query(description="Coverage window length in seconds"),
    trigger_type: TriggerType = Query(description="Weather condition that triggers payout"),
    platform: InsurancePlatform = Depends(get_platform),
) -> PremiumQuoteResponse:
    config = platform.config
    quote = quote_premium(
        coverage_amount,
        duration_seconds,
        trigger_type,
        base_rate_bps=config.base_premium_rate_bps,
        minimum_premium=config.minimum_premium,
    )
    return PremiumQuoteResponse(
        coverage_amount=quote.coverage_amount,
        duration_seconds=quote.duration_seconds,
        trigger_type=quote.trigger_type,
        base_rate_bps=config.base_premium_rate_bps,
        base_premium=quote.base_premium,
        duration_multiplier=quote.duration_multiplier,
        risk_multiplier=quote.risk_multiplier,
        premium=quote.premium,
        minimum_applied=quote.minimum_applied,
    )


# ── Policies ──────────────────────────────────────────────────────────────────


@router.post(
    "/policies",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy a policy",
    description=(
        "Creates an active policy for the caller.  `paid_amount` must cover the "
        "premium; any excess is credited and can be withdrawn via /v1/treasury/refund."
    ),
)
async def create_policy(
    body: PolicyCreateRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> PolicyResponse:
    policy_id = platform.policies.create_policy(
        holder=api_key.account,
        location_id=body.location_id,
        trigger_type=body.trigger_type,
        threshold=body.trigger_threshold,
        coverage_amount=body.coverage_amount,
        duration=body.duration_seconds,
        crop_type=body.crop_type,
        farm_size=body.farm_size,
        paid_amount=body.paid_amount,
    )
    _flush_webhooks(background, platform)
    return _policy_response(platform.policies.get_policy(policy_id))


@router.get(
    "/policies",
    response_model=PolicyListResponse,
    summary="List the caller's policies",
)
async def list_policies(
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> PolicyListResponse:
    ids = platform.policies.get_policies_by_holder(api_key.account)
    policies = [_policy_response(platform.policies.get_policy(i)) for i in ids]
    return PolicyListResponse(policies=policies, total=len(policies))


@router.get(
    "/policies/{policy_id}",
    response_model=PolicyResponse,
    summary="Get a policy",
)
async def get_policy(
    policy_id: int,
    platform: InsurancePlatform = Depends(get_platform),
) -> PolicyResponse:
    return _policy_response(platform.policies.get_policy(policy_id))


@router.post(
    "/policies/{policy_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a policy",
    description=(
        "Refunds the premium prorated for the unused window, less a 10% "
        "cancellation fee.  Only the policyholder can cancel."
    ),
)
async def cancel_policy(
    policy_id: int,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> CancelResponse:
    refund = platform.policies.cancel_policy(policy_id, api_key.account)
    _flush_webhooks(background, platform)
    policy = platform.policies.get_policy(policy_id)
    return CancelResponse(policy_id=policy_id, refund=refund, status=policy.status)


@router.get(
    "/policies/{policy_id}/claims",
    response_model=ClaimListResponse,
    summary="List claims filed on a policy",
)
async def list_policy_claims(
    policy_id: int,
    platform: InsurancePlatform = Depends(get_platform),
) -> ClaimListResponse:
    platform.policies.get_policy(policy_id)
    claims = [
        _claim_response(platform.claims.get_claim(i))
        for i in platform.claims.get_claims_by_policy(policy_id)
    ]
    return ClaimListResponse(claims=claims, total=len(claims))


# ── Claims ────────────────────────────────────────────────────────────────────


@router.post(
    "/claims",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a claim",
    description=(
        "Opens an oracle request for the policy's location.  Once a provider "
        "fulfills it, process the claim via `POST /v1/claims/{id}/process`."
    ),
)
async def initiate_claim(
    body: ClaimCreateRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> ClaimResponse:
    claim_id = platform.claims.initiate_claim(body.policy_id, api_key.account)
    _flush_webhooks(background, platform)
    return _claim_response(platform.claims.get_claim(claim_id))


@router.get(
    "/claims/{claim_id}",
    response_model=ClaimResponse,
    summary="Get a claim",
)
async def get_claim(
    claim_id: int,
    platform: InsurancePlatform = Depends(get_platform),
) -> ClaimResponse:
    return _claim_response(platform.claims.get_claim(claim_id))


@router.post(
    "/claims/{claim_id}/process",
    response_model=ClaimResponse,
    summary="Process a claim",
    description=(
        "Evaluates the verified reading against the policy trigger.  Pays the "
        "full coverage if triggered; otherwise the claim is denied and the "
        "policy stays active."
    ),
)
async def process_claim(
    claim_id: int,
    background: BackgroundTasks,
    platform: InsurancePlatform = Depends(get_platform),
) -> ClaimResponse:
    platform.claims.process_claim(claim_id)
    _flush_webhooks(background, platform)
    return _claim_response(platform.claims.get_claim(claim_id))


# ── Templates ─────────────────────────────────────────────────────────────────


@router.get(
    "/templates",
    response_model=TemplateListResponse,
    summary="List active policy templates",
)
async def list_templates(
    platform: InsurancePlatform = Depends(get_platform),
) -> TemplateListResponse:
    templates = [_template_response(t) for t in platform.templates.active_templates()]
    return TemplateListResponse(templates=templates, total=len(templates))


@router.get(
    "/templates/{template_id}",
    response_model=TemplateResponse,
    summary="Get a policy template",
)
async def get_template(
    template_id: int,
    platform: InsurancePlatform = Depends(get_platform),
) -> TemplateResponse:
    return _template_response(platform.templates.get(template_id))


@router.get(
    "/templates/{template_id}/estimate",
    response_model=TemplateEstimateResponse,
    summary="Estimate the premium for a template",
)
async def estimate_template_premium(
    template_id: int,
    base_coverage: int = Query(description="Base coverage before the template multiplier"),
    platform: InsurancePlatform = Depends(get_platform),
) -> TemplateEstimateResponse:
    template = platform.templates.get(template_id)
    return TemplateEstimateResponse(
        template_id=template_id,
        base_coverage=base_coverage,
        coverage_amount=platform.templates.coverage_for(template, base_coverage),
        premium=platform.templates.estimate_premium(template_id, base_coverage),
    )


@router.post(
    "/templates/{template_id}/policies",
    response_model=PolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy a policy from a template",
)
async def create_policy_from_template(
    template_id: int,
    body: TemplatePolicyRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> PolicyResponse:
    policy_id = platform.templates.create_policy_from_template(
        template_id,
        holder=api_key.account,
        location_id=body.location_id,
        base_coverage=body.base_coverage,
        crop_type=body.crop_type,
        farm_size=body.farm_size,
        paid_amount=body.paid_amount,
    )
    _flush_webhooks(background, platform)
    return _policy_response(platform.policies.get_policy(policy_id))


# ── Oracle requests ───────────────────────────────────────────────────────────


@router.post(
    "/oracle/requests",
    response_model=OracleRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open an oracle request",
)
async def open_oracle_request(
    body: OracleRequestCreate,
    background: BackgroundTasks,
    platform: InsurancePlatform = Depends(get_platform),
) -> OracleRequestResponse:
    request_id = platform.oracle.request_reading(body.location_id)
    _flush_webhooks(background, platform)
    return _request_response(platform.oracle.get_request(request_id))


@router.get(
    "/oracle/requests",
    response_model=OracleRequestListResponse,
    summary="List pending oracle requests",
)
async def list_pending_requests(
    platform: InsurancePlatform = Depends(get_platform),
) -> OracleRequestListResponse:
    requests = [_request_response(r) for r in platform.oracle.pending_requests()]
    return OracleRequestListResponse(requests=requests, total=len(requests))


@router.get(
    "/oracle/requests/{request_id}",
    response_model=OracleRequestResponse,
    summary="Get an oracle request",
)
async def get_oracle_request(
    request_id: str,
    platform: InsurancePlatform = Depends(get_platform),
) -> OracleRequestResponse:
    return _request_response(platform.oracle.get_request(request_id))


@router.post(
    "/oracle/requests/{request_id}/fulfill",
    response_model=OracleRequestResponse,
    summary="Fulfill an oracle request",
    description="Authorized providers only.  A request can be fulfilled exactly once.",
)
async def fulfill_oracle_request(
    request_id: str,
    body: FulfillRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> OracleRequestResponse:
    platform.oracle.fulfill(
        request_id,
        body.temperature,
        body.rainfall,
        body.humidity,
        body.wind_speed,
        submitter=api_key.account,
        source_id=hashing.source_id(body.source) if body.source else None,
    )
    _flush_webhooks(background, platform)
    return _request_response(platform.oracle.get_request(request_id))


# ── Weather ───────────────────────────────────────────────────────────────────


@router.post(
    "/weather",
    response_model=WeatherReadingSchema,
    status_code=status.HTTP_201_CREATED,
    summary="Record a weather reading",
    description="Authorized providers only.  Appends to history without an oracle request.",
)
async def record_weather(
    body: WeatherRecordRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> WeatherReadingSchema:
    reading = platform.history.record_reading(
        body.location_id,
        body.temperature,
        body.rainfall,
        body.humidity,
        body.wind_speed,
        source=body.source,
        submitter=api_key.account,
    )
    _flush_webhooks(background, platform)
    return _reading_schema(reading)


@router.get(
    "/weather/{location_id}/history",
    response_model=WeatherHistoryResponse,
    summary="Get weather history for a location",
)
async def get_weather_history(
    location_id: str,
    start: int = Query(default=0, ge=0),
    count: int = Query(default=100, ge=0, le=1000),
    platform: InsurancePlatform = Depends(get_platform),
) -> WeatherHistoryResponse:
    readings = platform.history.get_history(location_id, start, count)
    return WeatherHistoryResponse(
        location_id=location_id,
        total=platform.history.history_count(location_id),
        start=start,
        readings=[_reading_schema(r) for r in readings],
    )


@router.get(
    "/weather/{location_id}/latest",
    response_model=WeatherReadingSchema,
    summary="Get the latest reading for a location",
)
async def get_latest_weather(
    location_id: str,
    platform: InsurancePlatform = Depends(get_platform),
) -> WeatherReadingSchema:
    reading = platform.oracle.latest_reading(location_id)
    if reading is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "NO_WEATHER_DATA", "message": "No readings for this location."},
        )
    return _reading_schema(reading)


@router.get(
    "/weather/{location_id}/averages",
    response_model=AveragesResponse,
    summary="Get running averages for a location",
)
async def get_weather_averages(
    location_id: str,
    platform: InsurancePlatform = Depends(get_platform),
) -> AveragesResponse:
    avg = platform.history.averages(location_id)
    return AveragesResponse(
        location_id=location_id,
        avg_temperature=avg.avg_temperature,
        avg_rainfall=avg.avg_rainfall,
        avg_humidity=avg.avg_humidity,
        avg_wind_speed=avg.avg_wind_speed,
        count=avg.count,
        last_updated=avg.last_updated,
    )


@router.get(
    "/weather/{location_id}/risk_score",
    response_model=RiskScoreResponse,
    summary="Historical trigger frequency",
    description=(
        "Percentage of the last 100 readings that would have triggered the rule. "
        "Returns 50 when the location has no history."
    ),
)
async def get_risk_score(
    location_id: str,
    trigger_type: TriggerType = Query(),
    threshold: int = Query(description="Threshold scaled by 100"),
    platform: InsurancePlatform = Depends(get_platform),
) -> RiskScoreResponse:
    score = platform.history.calculate_risk_score(location_id, trigger_type, threshold)
    return RiskScoreResponse(
        location_id=location_id,
        trigger_type=trigger_type,
        threshold=threshold,
        risk_score=score,
        sample_size=min(RISK_SAMPLE_SIZE, platform.history.history_count(location_id)),
    )


# ── Treasury ──────────────────────────────────────────────────────────────────


@router.get(
    "/treasury",
    response_model=TreasuryResponse,
    summary="Treasury balance and the caller's refundable credit",
)
async def get_treasury(
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> TreasuryResponse:
    state = platform.treasury.snapshot()
    return TreasuryResponse(
        balance=state.balance,
        total_premiums_collected=state.total_premiums_collected,
        total_claims_paid=state.total_claims_paid,
        refundable=state.refundable.get(api_key.account, 0),
    )


@router.post(
    "/treasury/fund",
    response_model=TreasuryResponse,
    summary="Add funds to the treasury",
)
async def fund_treasury(
    body: AmountRequest,
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> TreasuryResponse:
    platform.treasury.fund(body.amount, api_key.account)
    _flush_webhooks(background, platform)
    return await get_treasury(api_key, platform)


@router.post(
    "/treasury/refund",
    response_model=RefundResponse,
    summary="Withdraw overpaid premiums",
)
async def withdraw_refund(
    background: BackgroundTasks,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> RefundResponse:
    amount = platform.treasury.withdraw_refund(api_key.account)
    _flush_webhooks(background, platform)
    return RefundResponse(account=api_key.account, amount=amount)


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Platform counters",
)
async def get_stats(platform: InsurancePlatform = Depends(get_platform)) -> StatsResponse:
    with platform.lock:
        state = platform.treasury.snapshot()
        return StatsResponse(
            policy_count=platform.policies.policy_count(),
            active_policies=platform.policies.active_policy_count(),
            claim_count=platform.claims.claim_count(),
            pending_oracle_requests=len(platform.oracle.pending_requests()),
            template_count=platform.templates.template_count(),
            treasury_balance=state.balance,
            total_premiums_collected=state.total_premiums_collected,
            total_claims_paid=state.total_claims_paid,
            paused=platform.config.paused,
        )


# ── Webhooks ──────────────────────────────────────────────────────────────────


@router.post(
    "/webhooks",
    response_model=WebhookRegistration,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
    summary="Register a webhook",
    description=(
        "Subscribe a callback URL to domain events.  Deliveries are signed with "
        "HMAC-SHA256 in `X-WeatherShield-Signature` when a secret is provided."
    ),
)
async def create_webhook(
    body: WebhookCreateRequest,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> WebhookRegistration:
    reg = platform.webhooks.register(
        owner=api_key.account,
        callback_url=body.callback_url,
        events=body.events,
        secret=body.secret,
    )
    logger.info("Registered webhook %s -> %s", reg.id, reg.callback_url)
    return reg


@router.get(
    "/webhooks",
    response_model=WebhookListResponse,
    tags=["webhooks"],
    summary="List the caller's webhooks",
)
async def list_webhooks(
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> WebhookListResponse:
    hooks = platform.webhooks.list_all(owner=api_key.account)
    return WebhookListResponse(webhooks=hooks, total=len(hooks))


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
    summary="Remove a webhook",
)
async def delete_webhook(
    webhook_id: str,
    api_key: APIKey = Depends(require_api_key),
    platform: InsurancePlatform = Depends(get_platform),
) -> None:
    reg = platform.webhooks.get(webhook_id)
    if reg is None or reg.owner != api_key.account:
        raise HTTPException(status_code=404, detail=f"Webhook {webhook_id} not found")
    platform.webhooks.remove(webhook_id)
