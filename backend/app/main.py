"""
FastAPI application entry point for the SOS relay.

Run with:
    uvicorn backend.app.main:sio_app --port 3000

``sio_app`` is the FastAPI app wrapped by the Socket.IO server; ``app`` is
the bare FastAPI app (used by tests).
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.kv_store import create_store
from backend.app.relay.hub import get_hub

# ── API routers ──
from backend.app.api.relay import router as relay_router
from backend.app.api.facilities import router as facilities_router
from backend.app.api import realtime

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s] on port %d",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT, settings.PORT,
    )
    app.state.kv = create_store()
    get_hub().attach_emitter(realtime.emit_to_observers)
    yield
    close = getattr(app.state.kv, "close", None)
    if close is not None:
        await close()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Relay for the tourist safety SOS system. "
        "Receives SOS alerts from reporters, keeps an in-memory cache for "
        "dashboards that connect late, and pushes alert changes to "
        "connected dashboards over Socket.IO."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=not settings.CORS_ALLOW_ALL,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(relay_router)
app.include_router(facilities_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "endpoints": [
            "POST /sos-alert",
            "GET /alerts",
            "PUT /alerts/{id}",
            "DELETE /alerts/{id}",
            "GET /facilities",
            "POST /facilities/nearest",
            "GET /health",
        ],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Liveness summary in the shape the dashboards expect."""
    return {
        "success": True,
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "alertsCount": len(get_hub()),
    }


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(
        alert_count=len(get_hub()),
        store=getattr(app.state, "kv", None),
        connected_clients=len(realtime.connected_clients),
    )
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


# ── Socket.IO wrapper (the ASGI entry point) ──
sio_app = realtime.wrap(app)
