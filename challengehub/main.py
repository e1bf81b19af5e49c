"""ChallengeHub FastAPI application."""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from challengehub.config import get_settings
from challengehub.database import close_db, init_db
from challengehub.errors import ChallengeHubError
from challengehub.logging_config import configure_logging, get_logger, request_log_context
from challengehub.redis import close_redis, init_redis
from challengehub.services.scheduler_service import scheduler_loop

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB + Redis + scheduler on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        sql_echo=settings.database_echo,
    )

    # Init database
    logger.info("starting_database_init")
    await init_db()

    # Redis only backs the unread-count cache; run without it if unreachable
    try:
        await init_redis(settings.redis_url)
        logger.info("redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        logger.warning("redis_unavailable", url=settings.redis_url, error=str(e))
        await close_redis()

    stop_event = asyncio.Event()
    scheduler_task = asyncio.create_task(scheduler_loop(stop_event))

    logger.info("application_started")
    yield

    # Shutdown
    logger.info("shutting_down")
    stop_event.set()
    await scheduler_task
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title="ChallengeHub",
    description="Time-boxed challenges, reviewed submissions and user notifications",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a request id to every log line emitted while serving the request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    started = time.perf_counter()
    with request_log_context(request_id, path=request.url.path, method=request.method):
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            caller_id=getattr(request.state, "caller_id", None),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response


@app.exception_handler(ChallengeHubError)
async def challengehub_error_handler(request: Request, exc: ChallengeHubError):
    logger.info(
        "request_rejected",
        error_code=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error_code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
    )


# --- Routers ---
from challengehub.routes.challenges import router as challenges_router  # noqa: E402
from challengehub.routes.notifications import router as notifications_router  # noqa: E402

app.include_router(challenges_router)
app.include_router(notifications_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "challengehub"}
