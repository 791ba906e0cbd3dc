# brushquote/main.py
import time

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from brushquote import models  # noqa: F401  (registers SQLAlchemy models)
from brushquote.core.errors import BrushquoteError, ConsistencyError
from brushquote.core.logging_config import logger, setup_logging
from brushquote.core.rate_limit import limiter
from brushquote.core.settings import settings
from brushquote.db import Base, engine
from brushquote.middleware.request_id import RequestIdMiddleware
from brushquote.observability.metrics import router as metrics_router
from brushquote.routers import proposals, quotes
from brushquote.routers import settings as settings_router

# ----------------------------------------------------
# Sentry
# ----------------------------------------------------
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.app_env,
    )

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title=settings.app_name, version="0.1.0")

setup_logging()
logger.info("startup", service="brushquote-api", env=settings.app_env)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()

    request_id = getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "unknown"
    )
    client_ip = request.client.host if request.client else "unknown"

    bound_logger = logger.bind(
        request_id=request_id,
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Middleware
# ----------------------------------------------------
app.add_middleware(RequestIdMiddleware)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------------------------------
# Error handlers
# ----------------------------------------------------
@app.exception_handler(RateLimitExceeded)
def ratelimit_handler(request: Request, exc: RateLimitExceeded):
    return PlainTextResponse(str(exc), status_code=429)


@app.exception_handler(BrushquoteError)
def domain_error_handler(request: Request, exc: BrushquoteError):
    log = logger.bind(
        endpoint=str(request.url.path),
        code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
    )
    if isinstance(exc, ConsistencyError):
        log.error("request_inconsistent_state", message=exc.message)
        sentry_sdk.capture_exception(exc)
    else:
        log.info("request_rejected", message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": {"errors": errors},
        },
    )


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(quotes.router)
app.include_router(proposals.router)
app.include_router(settings_router.router)
if settings.metrics_enabled:
    app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
