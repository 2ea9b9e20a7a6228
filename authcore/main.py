"""Main FastAPI application."""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from authcore.api import errors, metrics, passkeys, well_known
from authcore.core import settings, setup_logging
from authcore.core.logging import get_logger
from authcore.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
    set_app_info,
)
from authcore.db import SessionLocal
from authcore.domain.exceptions import CeremonyError, DomainError

setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
)

set_app_info(version=settings.api_version, environment=settings.environment)

app.state.limiter = passkeys.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_STATIC_PASSKEY_SEGMENTS = {"registration", "authentication", "options", "verify"}


def _endpoint_label(path: str) -> str:
    """Replace principal and credential ids with placeholders to bound cardinality."""
    parts = path.split("/")
    if "passkeys" not in parts:
        return path
    start = parts.index("passkeys") + 1
    normalized = parts[:start] + [
        part if part in _STATIC_PASSKEY_SEGMENTS else "{id}" for part in parts[start:]
    ]
    return "/".join(normalized)


@app.middleware("http")
async def prometheus_metrics_middleware(request: Request, call_next):
    """Collect Prometheus metrics for all HTTP requests."""
    if request.url.path == "/metrics":
        return await call_next(request)

    method = request.method
    endpoint = _endpoint_label(request.url.path)

    HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).inc()
    start_time = time.perf_counter()

    try:
        response = await call_next(request)
        status_code = str(response.status_code)
    except Exception:
        status_code = "500"
        raise
    finally:
        duration = time.perf_counter() - start_time
        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=endpoint).dec()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
        HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=status_code).inc()

    return response


app.include_router(metrics.router)
app.include_router(well_known.router)
app.include_router(passkeys.router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "healthy"}


@app.get("/health/ready")
async def health_ready():
    """Readiness check against the database (and Redis when it holds challenges)."""
    status = {"database": {"status": "healthy"}}
    overall_healthy = True

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database readiness check failed: %s", exc)
        status["database"] = {"status": "unhealthy", "error": str(exc)}
        overall_healthy = False
    finally:
        db.close()

    if settings.webauthn_challenge_backend == "redis":
        import redis as redis_client

        status["redis"] = {"status": "healthy"}
        try:
            client = redis_client.from_url(settings.redis_url)
            client.ping()
            client.close()
        except Exception as exc:
            logger.warning("Redis readiness check failed: %s", exc)
            status["redis"] = {"status": "unhealthy", "error": str(exc)}
            overall_healthy = False

    result = {"status": "healthy" if overall_healthy else "unhealthy", "dependencies": status}
    if overall_healthy:
        return result
    return JSONResponse(status_code=503, content=result)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Translate domain errors to HTTP responses globally."""
    if isinstance(exc, CeremonyError):
        logger.info("Ceremony failure returned to client", extra={"kind": exc.kind})
    http_exc = errors.to_http(exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
    )
