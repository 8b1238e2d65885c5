import sys
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.limiter import limiter
from backend.app.api import wallets, orders, delivery, subscriptions, products, users, admin
from backend.app.api.deps import get_session, require_roles
from backend.app.core.logging import setup_logging, get_logger, bind_request_context, clear_request_context
from backend.app.core.settings import get_settings
from backend.app.core.metrics import PrometheusMiddleware, get_metrics_response

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# Use JSON format in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    fee_mode=settings.FEE_MODE,
    platform_fee=str(settings.PLATFORM_FEE),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: log version
    - Shutdown: dispose the engine pool
    """
    logger.info("Application starting up", version="1.0.0")
    yield
    from backend.app.core.database import engine
    await engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(title="XOF Marketplace Backend", lifespan=lifespan)

# Use shared limiter (routers use the same instance for @limiter.limit)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies answer 400 with one entry per offending field."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation error", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag every log line of a request with its id; echo the id back."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    clear_request_context()
    bind_request_context(request_id=request_id, path=request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


ALLOWED_ORIGINS = settings.allowed_origins_list
if not ALLOWED_ORIGINS:
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    # Development fallback
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(PrometheusMiddleware)

app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(wallets.router, prefix="/wallet", tags=["wallet"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(delivery.router, prefix="/delivery", tags=["delivery"])
app.include_router(subscriptions.router, prefix="/subscription", tags=["subscription"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles("admin"))],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "checks": {
            "database": "ok",
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """
    Prometheus metrics endpoint.

    Args:
        openmetrics: If True, return OpenMetrics format
    """
    return get_metrics_response(openmetrics=openmetrics)
