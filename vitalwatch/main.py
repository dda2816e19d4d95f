from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vitalwatch.core.config import settings
from vitalwatch.core.logging import setup_logging
from vitalwatch.core.middleware import StructlogMiddleware
from vitalwatch.core.services import build_services
from vitalwatch.modules.alerts import router as alerts_router
from vitalwatch.modules.devices import router as devices_router
from vitalwatch.modules.employees import router as employees_router
from vitalwatch.modules.monitoring import router as monitoring_router
from vitalwatch.modules.vitals import router as vitals_router

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    services = build_services(settings)
    await services.start()
    app.state.services = services

    yield

    # Shutdown
    await services.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    ## VitalWatch API

    Backend for the live vital-sign dashboard:
    * **Readings**: wearables post or stream heart rate, temperature, respiratory rate,
      blood pressure and body activity, keyed by MAC address
    * **Monitoring**: per-device status, rolling chart history and liveness
    * **Alerts**: debounced critical-vital alerts over WebSocket and SSE
    * **Employees**: the roster that devices are assigned to
    """,
    version="0.1.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(StructlogMiddleware)

app.include_router(
    vitals_router.router, prefix=f"{settings.API_V1_STR}/readings", tags=["readings"]
)
app.include_router(
    devices_router.router, prefix=f"{settings.API_V1_STR}/devices", tags=["devices"]
)
app.include_router(
    monitoring_router.router, prefix=f"{settings.API_V1_STR}/monitor", tags=["monitor"]
)
app.include_router(
    alerts_router.router, prefix=f"{settings.API_V1_STR}/alerts", tags=["alerts"]
)
app.include_router(
    employees_router.router, prefix=f"{settings.API_V1_STR}/employees", tags=["employees"]
)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
