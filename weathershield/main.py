"""WeatherShield API: parametric crop insurance backed by weather oracles.

Farmers buy policies that pay their full coverage when an attested
weather reading at their location crosses a trigger threshold.  Claims
open oracle requests; authorized providers (or the built-in fulfiller)
attach readings; processing a claim settles it against the trigger.

The oracle fulfiller runs as a background task when enabled, answering
requests for monitored farming regions from OpenWeatherMap.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from weathershield import __version__
from weathershield.api.admin.routes import router as admin_router
from weathershield.api.v1.routes import router as v1_router
from weathershield.core import auth
from weathershield.core.config import settings
from weathershield.core.errors import register_error_handlers
from weathershield.core.middleware import RequestLoggingMiddleware
from weathershield.models.schemas import HealthResponse
from weathershield.services.platform import build_platform

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)

logger = logging.getLogger(__name__)


DESCRIPTION = """\
Parametric crop insurance API for **WeatherShield**.

Policies pay out automatically from oracle-attested weather readings.
No loss adjusters, no paperwork: if the reading crosses the trigger, the
full coverage is paid.

---

### Policy Lifecycle

| Step | Endpoint | Description |
|------|----------|-------------|
| 1 | `GET /v1/premium` | Quote a premium for coverage, duration and trigger |
| 2 | `POST /v1/policies` | Buy a policy (or `POST /v1/templates/{id}/policies`) |
| 3 | `POST /v1/claims` | File a claim, which opens an oracle request |
| 4 | *oracle* | A provider fulfills the request with a reading |
| 5 | `POST /v1/claims/{id}/process` | Settle against the trigger |

### Authentication

All `/v1/*` endpoints require a **Bearer token** bound to your account:

```
Authorization: Bearer ws_sk_...
```

Get your key from the operator via `POST /admin/api_keys` (requires admin secret).
"""


TAGS_METADATA = [
    {
        "name": "insurance",
        "description": "Pricing, policies, claims, oracle requests, weather data and treasury.",
    },
    {
        "name": "webhooks",
        "description": "Webhook registration for push-based event notifications.",
    },
    {
        "name": "admin",
        "description": "Owner configuration, providers, maintenance and API keys.",
    },
    {
        "name": "ops",
        "description": "Health checks and operational endpoints.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    auth.bootstrap()
    if getattr(app.state, "platform", None) is None:
        app.state.platform = build_platform(settings)
    platform = app.state.platform

    fulfiller_task = None
    if settings.oracle_fulfiller_enabled and platform.fulfiller is not None:
        logger.info("Starting oracle fulfiller background task")
        fulfiller_task = asyncio.create_task(
            platform.fulfiller.run_loop(settings.oracle_interval_seconds)
        )
    yield
    if fulfiller_task is not None:
        platform.fulfiller.stop()
        fulfiller_task.cancel()
        try:
            await fulfiller_task
        except asyncio.CancelledError:
            pass
        logger.info("Oracle fulfiller shut down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="WeatherShield API",
        version=__version__,
        description=DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
        swagger_ui_parameters={
            "persistAuthorization": True,
            "displayRequestDuration": True,
            "docExpansion": "list",
            "filter": True,
        },
    )
    app.state.platform = None

    register_error_handlers(app)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router)
    app.include_router(admin_router)

    @app.get("/health", response_model=HealthResponse, tags=["ops"])
    async def health(request: Request) -> HealthResponse:
        platform = request.app.state.platform
        return HealthResponse(
            status="ok",
            version=__version__,
            policies=platform.policies.policy_count() if platform else 0,
            treasury_balance=platform.treasury.balance if platform else 0,
        )

    return app


app = create_app()
