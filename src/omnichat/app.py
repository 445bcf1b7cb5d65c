"""
Application entry point: creates and configures the FastAPI app.
"""
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from omnichat.api.auth_routes import router as auth_router
from omnichat.api.capability_routes import router as capability_router
from omnichat.api.routes import router as api_router
from omnichat.config import get_config
from omnichat.errors import OmniChatError
from omnichat.logging_config import configure_logging
from omnichat.middleware.rate_limiter import get_limiter, rate_limit_exceeded_handler
from omnichat.services.database import close_database, init_database, ping_database

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: init DB. Shutdown: close gateway clients and the engine."""
    cfg = get_config()
    log.info("app_starting", version=cfg.app.version, env=cfg.app.env)
    await init_database()
    log.info("app_started", rate_limiting_enabled=cfg.rate_limits.enabled)

    yield

    log.info("app_shutting_down")
    from omnichat.services.image_client import get_image_client
    from omnichat.services.llm_client import get_llm_client

    await get_llm_client().close()
    await get_image_client().close()
    await close_database()
    log.info("app_stopped")


async def omnichat_error_handler(request: Request, exc: OmniChatError) -> JSONResponse:
    log.info(
        "request_failed",
        kind=exc.kind,
        status=exc.status_code,
        path=request.url.path,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("database_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=502,
        content={"error": "upstream_error", "message": f"Database error: {exc}"},
    )


def create_app() -> FastAPI:
    cfg = get_config()
    configure_logging(cfg.app.log_level, json_output=cfg.app.env == "production")

    app = FastAPI(title=cfg.app.name, version=cfg.app.version, lifespan=lifespan)

    app.state.limiter = get_limiter()
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(OmniChatError, omnichat_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    app.include_router(api_router)
    app.include_router(capability_router)
    app.include_router(auth_router)

    storage_root = Path(cfg.storage.root_dir)
    storage_root.mkdir(parents=True, exist_ok=True)
    app.mount("/storage", StaticFiles(directory=storage_root), name="storage")

    @app.get("/api/health")
    async def health_check():
        """Database reachability check."""
        try:
            await ping_database()
        except SQLAlchemyError as e:
            log.error("health_check_failed", error=str(e))
            return JSONResponse(
                status_code=503,
                content={"status": "error", "message": str(e), "version": cfg.app.version},
            )
        return {"status": "ok", "message": "Database connection successful", "version": cfg.app.version}

    return app
