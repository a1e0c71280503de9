from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import logging

from meta_progression.core.config import settings
from meta_progression.core.logging import setup_logging
from meta_progression.routers import progression
from meta_progression.runtime import MetaProgressionRuntime

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[MetaProgressionRuntime] = None) -> FastAPI:
    """Build the API around a runtime; a fresh one from settings by default"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown events"""
        # Startup
        logger.info(f"Starting {settings.APP_NAME}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        await app.state.runtime.start()

        yield

        # Shutdown
        await app.state.runtime.stop()
        logger.info(f"Shutting down {settings.APP_NAME}")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Mystery rewards, daily challenges, mastery stars and battle-pass progression",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.runtime = runtime or MetaProgressionRuntime(settings)

    app.include_router(progression.router, prefix="/api", tags=["progression"])

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint with storage connectivity verification
        """
        runtime: MetaProgressionRuntime = app.state.runtime
        health_status = {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": settings.APP_VERSION,
            "services": {},
        }

        try:
            storage_ok = runtime.store.ping()
        except Exception as e:
            logger.error(f"Storage health check failed: {e}")
            storage_ok = False
        health_status["services"]["storage"] = "healthy" if storage_ok else "unhealthy"
        health_status["services"]["challenge_refresh"] = runtime.poller.get_stats()

        if not storage_ok:
            health_status["status"] = "degraded"

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    return app


def run() -> None:
    import uvicorn

    setup_logging(settings)
    uvicorn.run(create_app(), host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
