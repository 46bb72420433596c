"""
TokenVault - API token issuance and vault service for the password manager.

Features:
- Token issuance, refresh, verification and revocation
- Vault sealing of sensitive secrets under session keys
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.deps import get_token_manager
from .api.session_router import router as session_router
from .api.token_router import router as token_router
from .middleware import CorrelationIdMiddleware, MetricsMiddleware
from .metrics import Metrics
from .health import HealthChecker

VERSION = "0.1.0"

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON, service_name="tokenvault")
logger = get_logger()

# Initialize metrics
metrics = Metrics(service_name="tokenvault", version=VERSION)
get_token_manager().attach_metrics(metrics)

# Initialize health checker
health_checker = HealthChecker(
    store=get_token_manager().store,
    service_name="tokenvault",
    version=VERSION,
)

app = FastAPI(
    title="TokenVault",
    version=VERSION,
    description="API token issuance with session-sealed vaults",
)

# Middleware runs in reverse order of registration: correlation ID is outermost
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(token_router)
app.include_router(session_router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    metrics.update_system_metrics()
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        store_backend=type(get_token_manager().store).__name__,
        issue_mode=get_token_manager().issue_mode.value,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("service_stopping")
    metrics.app_up.labels(service="tokenvault", version=VERSION).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tokenvault.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
