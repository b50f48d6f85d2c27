"""Owner endpoints: rates and limits, pause switch, providers, treasury,
templates, maintenance and API key management.

Protected by ADMIN_SECRET.  Every call acts as the configured owner
account.  Platforms and farmers receive their keys from the operator and
use the ``Authorization: Bearer ws_sk_...`` header on /v1/* endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from weathershield.core.auth import keyring, require_admin
from weathershield.models.schemas import (
    AdminConfigResponse,
    AmountRequest,
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyInfo,
    APIKeyListResponse,
    ExpireResponse,
    LimitsRequest,
    OracleTickResponse,
    ProviderRequest,
    RateRequest,
    TemplateActiveRequest,
    TemplateCreateRequest,
    TemplateResponse,
    TreasuryResponse,
)
from weathershield.services.platform import InsurancePlatform, get_platform

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _config_response(platform: InsurancePlatform) -> AdminConfigResponse:
    c = platform.config
    with c.lock:
        return AdminConfigResponse(
            owner=c.owner,
            treasury_account=c.treasury_account,
            base_premium_rate_bps=c.base_premium_rate_bps,
            minimum_premium=c.minimum_premium,
            min_coverage=c.min_coverage,
            max_coverage=c.max_coverage,
            min_duration=c.min_duration,
            max_duration=c.max_duration,
            paused=c.paused,
            providers=sorted(c.providers),
        )


# ── Configuration ─────────────────────────────────────────────────────────────


@router.get("/config", response_model=AdminConfigResponse, summary="Current configuration")
async def get_config(platform: InsurancePlatform = Depends(get_platform)) -> AdminConfigResponse:
    return _config_response(platform)


@router.put("/config/premium_rate", response_model=AdminConfigResponse, summary="Set base rate")
async def set_premium_rate(
    body: RateRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.set_base_premium_rate(body.rate_bps, platform.config.owner)
    return _config_response(platform)


@router.put(
    "/config/minimum_premium", response_model=AdminConfigResponse, summary="Set minimum premium"
)
async def set_minimum_premium(
    body: AmountRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.set_minimum_premium(body.amount, platform.config.owner)
    return _config_response(platform)


@router.put(
    "/config/coverage_limits", response_model=AdminConfigResponse, summary="Set coverage limits"
)
async def set_coverage_limits(
    body: LimitsRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.set_coverage_limits(body.minimum, body.maximum, platform.config.owner)
    return _config_response(platform)


@router.put(
    "/config/duration_limits", response_model=AdminConfigResponse, summary="Set duration limits"
)
async def set_duration_limits(
    body: LimitsRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.set_duration_limits(body.minimum, body.maximum, platform.config.owner)
    return _config_response(platform)


@router.post("/pause", response_model=AdminConfigResponse, summary="Pause new policies")
async def pause(platform: InsurancePlatform = Depends(get_platform)) -> AdminConfigResponse:
    platform.config.pause(platform.config.owner)
    return _config_response(platform)


@router.post("/unpause", response_model=AdminConfigResponse, summary="Resume new policies")
async def unpause(platform: InsurancePlatform = Depends(get_platform)) -> AdminConfigResponse:
    platform.config.unpause(platform.config.owner)
    return _config_response(platform)


# ── Providers ─────────────────────────────────────────────────────────────────


@router.post(
    "/providers",
    response_model=AdminConfigResponse,
    summary="Authorize a weather data provider",
)
async def authorize_provider(
    body: ProviderRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.authorize_provider(body.account, platform.config.owner)
    return _config_response(platform)


@router.delete(
    "/providers/{account}",
    response_model=AdminConfigResponse,
    summary="Revoke a weather data provider",
)
async def revoke_provider(
    account: str,
    platform: InsurancePlatform = Depends(get_platform),
) -> AdminConfigResponse:
    platform.config.revoke_provider(account, platform.config.owner)
    return _config_response(platform)


# ── Treasury & maintenance ────────────────────────────────────────────────────


@router.post(
    "/treasury/withdraw",
    response_model=TreasuryResponse,
    summary="Withdraw from the treasury",
    description="Pays the configured treasury account.",
)
async def withdraw_treasury(
    body: AmountRequest,
    background: BackgroundTasks,
    platform: InsurancePlatform = Depends(get_platform),
) -> TreasuryResponse:
    platform.treasury.withdraw(body.amount, platform.config.owner)
    background.add_task(platform.relay.flush)
    state = platform.treasury.snapshot()
    return TreasuryResponse(
        balance=state.balance,
        total_premiums_collected=state.total_premiums_collected,
        total_claims_paid=state.total_claims_paid,
        refundable=state.refundable.get(platform.config.owner, 0),
    )


@router.post(
    "/policies/expire",
    response_model=ExpireResponse,
    summary="Expire ended policies",
    description="Policies with a claim still awaiting processing are left active.",
)
async def expire_policies(
    background: BackgroundTasks,
    platform: InsurancePlatform = Depends(get_platform),
) -> ExpireResponse:
    expired = platform.expire_policies()
    background.add_task(platform.relay.flush)
    return ExpireResponse(expired=expired, total=len(expired))


@router.post(
    "/oracle/tick",
    response_model=OracleTickResponse,
    summary="Run one oracle fulfiller pass",
    description="Fulfills pending requests for monitored locations and records due readings.",
)
async def oracle_tick(
    background: BackgroundTasks,
    platform: InsurancePlatform = Depends(get_platform),
) -> OracleTickResponse:
    if platform.fulfiller is None:
        raise HTTPException(status_code=409, detail="Oracle fulfiller is not configured")
    fulfilled, recorded = await platform.fulfiller.tick()
    background.add_task(platform.relay.flush)
    return OracleTickResponse(fulfilled=fulfilled, recorded=recorded)


# ── Templates ─────────────────────────────────────────────────────────────────


@router.post(
    "/templates",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a policy template",
)
async def add_template(
    body: TemplateCreateRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> TemplateResponse:
    t = platform.templates.add_template(
        body.name,
        body.description,
        body.trigger_type,
        body.trigger_threshold,
        body.coverage_multiplier,
        body.duration_seconds,
        caller=platform.config.owner,
    )
    return TemplateResponse(
        id=t.id,
        name=t.name,
        description=t.description,
        trigger_type=t.trigger_type,
        trigger_threshold=t.trigger_threshold,
        coverage_multiplier=t.coverage_multiplier,
        duration=t.duration,
        is_active=t.is_active,
    )


@router.put(
    "/templates/{template_id}/active",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Activate or deactivate a template",
)
async def set_template_active(
    template_id: int,
    body: TemplateActiveRequest,
    platform: InsurancePlatform = Depends(get_platform),
) -> None:
    platform.templates.set_template_active(template_id, body.active, platform.config.owner)


# ── API keys ──────────────────────────────────────────────────────────────────


@router.post(
    "/api_keys",
    response_model=APIKeyCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a new API key",
    description=(
        "Creates a new API key acting as `account`.  The raw key is returned "
        "**only once**, so store it securely."
    ),
)
async def create_api_key(body: APIKeyCreateRequest) -> APIKeyCreateResponse:
    if not body.account:
        raise HTTPException(status_code=400, detail="account must not be empty")
    api_key, raw_key = keyring.issue(name=body.name, account=body.account)
    return APIKeyCreateResponse(
        id=api_key.id,
        name=api_key.name,
        account=api_key.account,
        key=raw_key,
        prefix=api_key.prefix,
        created_at=api_key.created_at,
    )


@router.get(
    "/api_keys",
    response_model=APIKeyListResponse,
    summary="List all API keys",
    description="Returns metadata for issued keys (no secrets exposed), optionally for one account.",
)
async def list_api_keys(
    account: str | None = Query(None, description="Only keys acting as this account"),
) -> APIKeyListResponse:
    keys = [
        APIKeyInfo(
            id=k.id,
            name=k.name,
            account=k.account,
            prefix=k.prefix,
            created_at=k.created_at,
            active=k.active,
            total_requests=k.total_requests,
        )
        for k in keyring.list(account)
    ]
    return APIKeyListResponse(keys=keys, total=len(keys))


@router.get("/api_keys/{key_id}/usage", summary="Get usage metrics for an API key")
async def get_key_usage(key_id: str) -> dict:
    api_key = keyring.get(key_id)
    if api_key is None:
        raise HTTPException(status_code=404, detail="API key not found")
    return {
        "key_id": key_id,
        "name": api_key.name,
        "account": api_key.account,
        "active": api_key.active,
        "total_requests": api_key.total_requests,
        "last_request_at": (
            api_key.last_request_at.isoformat() if api_key.last_request_at else None
        ),
        "endpoints": api_key.requests_by_endpoint,
    }


@router.delete(
    "/api_keys/{key_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an API key",
)
async def revoke_api_key(key_id: str) -> None:
    if not keyring.revoke(key_id):
        raise HTTPException(status_code=404, detail="API key not found")
