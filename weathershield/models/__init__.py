from weathershield.models.policy import (
    Claim,
    ClaimOutcome,
    Policy,
    PolicyStatus,
    TriggerType,
)
from weathershield.models.weather import (
    OracleRequest,
    RequestStatus,
    RunningAverages,
    WeatherReading,
)

__all__ = [
    "Claim",
    "ClaimOutcome",
    "OracleRequest",
    "Policy",
    "PolicyStatus",
    "RequestStatus",
    "RunningAverages",
    "TriggerType",
    "WeatherReading",
]
