"""FastAPI application factory."""
from __future__ import annotations
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from speedup import __version__
from speedup.config import Settings, get_settings
from speedup.domain.exceptions import SpeedupError, MethodNotAllowedError
from speedup.logging import logger


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Upload server listening on port %d (MAX_FILE_BYTES=%d)",
            settings.PORT, settings.MAX_FILE_BYTES,
        )
        if not (settings.api_key or settings.signing_secret):
            if settings.AUTH_REQUIRED:
                logger.warning("Neither API_KEY nor JWT_SECRET is set; all uploads will be rejected")
            else:
                logger.warning("AUTH_REQUIRED=false and no credentials configured; auth is disabled")
        yield

    app = FastAPI(
        title="Upload Timing API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Import routers inside create_app() to avoid circular imports at module load time
    from speedup.api.routers.upload import router as upload_router
    from speedup.api.routers.log import router as log_router
    from speedup.api.routers.health import router as health_router

    app.include_router(upload_router)
    app.include_router(log_router)
    app.include_router(health_router)

    @app.exception_handler(SpeedupError)
    def _speedup_error(request: Request, exc: SpeedupError) -> JSONResponse:
        headers = None
        if isinstance(exc, MethodNotAllowedError):
            headers = {"Allow": exc.allow}
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.message},
            headers=headers,
        )

    @app.exception_handler(Exception)
    def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Server error"})

    return app
