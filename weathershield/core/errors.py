"""Domain error taxonomy and structured error response handlers.

Every core operation rejects bad input, missing roles and state conflicts
by raising a subclass of ``InsuranceError`` before it mutates anything.
The HTTP layer renders domain, validation and unexpected errors alike
as:

    {
      "error": {
        "code": "DESCRIPTIVE_CODE",
        "message": "Human-readable explanation of what went wrong.",
        "request_id": "abc123...",
        ...extra fields when relevant
      }
    }
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class InsuranceError(Exception):
    """Base class for every error raised by the insurance core."""

    code = "INSURANCE_ERROR"
    status_code = 400
    default_message = "The operation was rejected."

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


# ── Validation ────────────────────────────────────────────────────────────────


class ValidationError(InsuranceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidLocation(ValidationError):
    code = "INVALID_LOCATION"
    default_message = "Location id must be a non-empty, non-zero identifier."


class InvalidCoordinates(ValidationError):
    code = "INVALID_COORDINATES"
    default_message = "Coordinates are outside the valid range."


class InvalidAccount(ValidationError):
    code = "INVALID_ACCOUNT"
    default_message = "Account identity must not be empty."


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"
    default_message = "Amount must be positive."


class InvalidReading(ValidationError):
    code = "INVALID_READING"
    default_message = "Rainfall, humidity and wind speed must not be negative."


class InvalidLimits(ValidationError):
    code = "INVALID_LIMITS"
    default_message = "Configured limits are inconsistent."


class CoverageOutOfRange(ValidationError):
    code = "COVERAGE_OUT_OF_RANGE"
    default_message = "Coverage amount is outside the allowed range."


class DurationOutOfRange(ValidationError):
    code = "DURATION_OUT_OF_RANGE"
    default_message = "Policy duration is outside the allowed range."


class EmptyCropType(ValidationError):
    code = "EMPTY_CROP_TYPE"
    default_message = "Crop type must not be empty."


class InvalidFarmSize(ValidationError):
    code = "INVALID_FARM_SIZE"
    default_message = "Farm size must be positive."


# ── Authorization ─────────────────────────────────────────────────────────────


class AuthorizationError(InsuranceError):
    code = "FORBIDDEN"
    status_code = 403


class NotPolicyholder(AuthorizationError):
    code = "NOT_POLICYHOLDER"
    default_message = "Caller is not the policyholder."


class NotAuthorized(AuthorizationError):
    code = "NOT_AUTHORIZED_PROVIDER"
    default_message = "Caller is not an authorized weather data provider."


class NotOwner(AuthorizationError):
    code = "NOT_OWNER"
    default_message = "Caller is not the contract owner."


# ── Not found ─────────────────────────────────────────────────────────────────


class NotFoundError(InsuranceError):
    code = "NOT_FOUND"
    status_code = 404


class PolicyNotFound(NotFoundError):
    code = "POLICY_NOT_FOUND"
    default_message = "Policy not found."


class ClaimNotFound(NotFoundError):
    code = "CLAIM_NOT_FOUND"
    default_message = "Claim not found."


class RequestNotFound(NotFoundError):
    code = "REQUEST_NOT_FOUND"
    default_message = "Oracle request not found."


class TemplateNotFound(NotFoundError):
    code = "TEMPLATE_NOT_FOUND"
    default_message = "Policy template not found."


# ── State conflicts ───────────────────────────────────────────────────────────


class StateConflictError(InsuranceError):
    code = "CONFLICT"
    status_code = 409


class PolicyNotActive(StateConflictError):
    code = "POLICY_NOT_ACTIVE"
    default_message = "Policy is not active."


class PolicyExpired(StateConflictError):
    code = "POLICY_EXPIRED"
    default_message = "Policy coverage window has ended."


class PolicyNotStarted(StateConflictError):
    code = "POLICY_NOT_STARTED"
    default_message = "Policy coverage window has not started."


class AlreadyProcessed(StateConflictError):
    code = "ALREADY_PROCESSED"
    default_message = "Claim has already been processed."


class AlreadyFulfilled(StateConflictError):
    code = "ALREADY_FULFILLED"
    default_message = "Oracle request has already been fulfilled."


class WeatherDataNotReady(StateConflictError):
    code = "WEATHER_DATA_NOT_READY"
    default_message = "Weather data for this claim has not been verified yet."


class ContractPaused(StateConflictError):
    code = "PAUSED"
    default_message = "New policies are paused."


class TemplateInactive(StateConflictError):
    code = "TEMPLATE_INACTIVE"
    default_message = "Policy template is not active."


# ── Resources ─────────────────────────────────────────────────────────────────


class ResourceError(InsuranceError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 402


class InsufficientPremium(ResourceError):
    code = "INSUFFICIENT_PREMIUM"
    default_message = "Paid amount is below the required premium."


class InsufficientReserve(ResourceError):
    code = "INSUFFICIENT_RESERVE"
    status_code = 503
    default_message = "Treasury balance cannot cover this transfer."


# ── Transfers ─────────────────────────────────────────────────────────────────


class TransferFailed(InsuranceError):
    code = "TRANSFER_FAILED"
    status_code = 502
    default_message = "The value transfer rail rejected the payment."


# ── HTTP rendering ────────────────────────────────────────────────────────────

_STATUS_CODE_MAP: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    502: "UPSTREAM_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(InsuranceError)
    async def insurance_error_handler(request: Request, exc: InsuranceError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error("%s (request_id=%s): %s", exc.code, request_id, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {**exc.to_dict(), "request_id": request_id}},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)

        if isinstance(exc.detail, dict):
            body = {"error": {**exc.detail, "request_id": request_id}}
        else:
            body = {
                "error": {
                    "code": _STATUS_CODE_MAP.get(exc.status_code, "ERROR"),
                    "message": str(exc.detail),
                    "request_id": request_id,
                }
            }

        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)

        fields = []
        for err in exc.errors():
            loc = " -> ".join(str(part) for part in err["loc"])
            fields.append({"field": loc, "message": err["msg"], "type": err["type"]})

        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": f"{len(fields)} validation error(s) in your request.",
                    "details": fields,
                    "request_id": request_id,
                }
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error (request_id=%s)", request_id)

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": (
                        "An unexpected error occurred. "
                        "If this persists, contact support with the request_id."
                    ),
                    "request_id": request_id,
                }
            },
        )
