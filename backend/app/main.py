"""FastAPI application entrypoint."""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis  # type: ignore[import-untyped]
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter
from secure import Secure

from app.api import api_router
from app.core.config import get_settings
from app.core.settings import get_sweep_settings
from app.security.logging_filters import SensitiveFilter
from app.services.completion_worker import completion_loop

logger = logging.getLogger(__name__)

settings = get_settings()

_ALLOWED_ORIGINS = [origin for origin in settings.cors_allowlist if origin]


async def _init_rate_limiter() -> redis.Redis | None:
    if not settings.redis_url:
        logger.info("REDIS_URL not set; rate limiting disabled")
        return None
    redis_pool = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await FastAPILimiter.init(redis_pool)
    except (redis.RedisError, OSError):
        logger.exception("Failed to initialize rate limiter")
        await redis_pool.aclose()
        return None
    return redis_pool


@asynccontextmanager
async def lifespan(_: FastAPI):
    redis_pool = await _init_rate_limiter()
    stop_event = asyncio.Event()
    sweep_task: asyncio.Task[None] | None = None
    if get_sweep_settings().enabled:
        sweep_task = asyncio.create_task(completion_loop(stop_event))
    try:
        yield
    finally:
        stop_event.set()
        if sweep_task is not None:
            await sweep_task
        if redis_pool is not None:
            await FastAPILimiter.close()
            await redis_pool.aclose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

_secure_headers = Secure.with_default_headers()


@app.middleware("http")
async def _apply_security_headers(request, call_next):
    response = await call_next(request)
    _secure_headers.set_headers(response)
    return response


for _logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", ""):
    _logger = logging.getLogger(_logger_name)
    if not any(isinstance(flt, SensitiveFilter) for flt in _logger.filters):
        _logger.addFilter(SensitiveFilter())

app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": settings.app_name}
