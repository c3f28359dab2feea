"""
Polychat - multi-mentor chat backend
FastAPI app: chat orchestration, conversations, model catalog, mentor overrides
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from routers import chat, chat_models, conversations, mentor_overrides
from errors import register_exception_handlers
from logging_config import setup_logging
from config import runtime_config

setup_logging(runtime_config.log_level)
logger = logging.getLogger(__name__)


@dataclass
class StartupHealth:
    """Tracks component health through startup."""
    phase: str = "initializing"
    database: str = "pending"
    provider: str = "pending"


_startup_health = StartupHealth()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    from services.database import get_database, close_database
    from services.llm_client import build_provider

    _startup_health.phase = "services"

    if runtime_config.database_enabled:
        try:
            db = await get_database()
            health = await db.health_check()
            _startup_health.database = "healthy" if health.get("status") == "connected" else "failed"
            logger.info(f"Database ready ({health.get('mode')})")
        except Exception as e:
            # Requests needing the store will fail with PersistenceError until the DB is back
            logger.error(f"Database connection failed: {e}")
            _startup_health.database = "failed"
    else:
        logger.warning("Database disabled (DATABASE_ENABLED=false)")
        _startup_health.database = "disabled"

    app.state.provider = build_provider()
    _startup_health.provider = "configured" if runtime_config.llm_api_key else "missing-key"

    _startup_health.phase = "ready" if _startup_health.database == "healthy" else "degraded"
    logger.info(f"Polychat started ({_startup_health.phase}, env={runtime_config.polychat_env})")
    yield

    # Shutdown
    try:
        await app.state.provider.aclose()
    except Exception as e:
        logger.debug(f"Provider close error: {e}")

    await close_database()
    logger.info("Polychat signing off")


app = FastAPI(
    title="Polychat",
    description="Multi-mentor chat API",
    version="1.0.0",
    lifespan=lifespan,
)


# Request body size limit middleware
MAX_BODY_SIZE_API = 1 * 1024 * 1024  # 1MB


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with bodies exceeding the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_SIZE_API:
            return JSONResponse(
                status_code=413,
                content={
                    "error": True,
                    "message": f"Request body too large (limit {MAX_BODY_SIZE_API} bytes)",
                },
            )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=runtime_config.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# API Routers
app.include_router(chat.router, tags=["chat"])
app.include_router(conversations.router, tags=["conversations"])
app.include_router(chat_models.router, tags=["chat-models"])
app.include_router(mentor_overrides.router, tags=["mentor-overrides"])


@app.get("/health")
async def health():
    """Liveness check. Never touches the database or provider."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/status")
async def status():
    """Startup phase and dependency health."""
    from services.database import get_database

    database = {"status": _startup_health.database}
    if runtime_config.database_enabled:
        try:
            db = await get_database()
            database = await db.health_check()
        except Exception as e:
            database = {"status": "down", "error": str(e)}

    return {
        "status": "healthy" if database.get("status") == "connected" else "degraded",
        "phase": _startup_health.phase,
        "provider": _startup_health.provider,
        "database": database,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
