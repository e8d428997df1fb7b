from contextlib import asynccontextmanager
from typing import Callable, Optional
import logging
import sys

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from xpired.core.config import settings
from xpired.core.redis import get_redis
from xpired.db.base import Base
from xpired.reminders.api import documents_router, router as reminders_router
from xpired.reminders.config import settings as reminder_settings
from xpired.reminders.runtime import ReminderRuntime, build_runtime

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def _check_tables(runtime: ReminderRuntime) -> None:
    try:
        existing_tables = inspect(runtime.engine).get_table_names()
        required_tables = [table.name for table in Base.metadata.tables.values()]
        missing_tables = [table for table in required_tables if table not in existing_tables]
        if missing_tables:
            logger.warning(f"Missing database tables: {missing_tables}")
            logger.warning("Run `alembic upgrade head` before starting the server")
        else:
            logger.info("All required database tables exist")
    except Exception as e:
        logger.warning(f"Could not check database tables: {e}")


def create_app(
    runtime_factory: Callable[[], ReminderRuntime] = build_runtime,
    *,
    metrics_enabled: Optional[bool] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"Starting up {settings.PROJECT_NAME}...")
        runtime = runtime_factory()
        app.state.runtime = runtime
        _check_tables(runtime)
        try:
            yield
        finally:
            logger.info(f"Shutting down {settings.PROJECT_NAME}...")
            app.state.runtime = None
            runtime.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    app.include_router(reminders_router, prefix=f"{settings.API_V1_STR}/reminders", tags=["reminders"])
    app.include_router(documents_router, prefix=f"{settings.API_V1_STR}/documents", tags=["documents"])

    if reminder_settings.METRICS_ENABLED if metrics_enabled is None else metrics_enabled:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator().instrument(app).expose(app, include_in_schema=False)

    @app.get("/health", tags=["Health Check"])
    def health_check(request: Request):
        """Health check endpoint"""
        runtime = getattr(request.app.state, "runtime", None)
        try:
            with runtime.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            db_status = "healthy"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_status = "unhealthy"

        try:
            get_redis(reminder_settings.CELERY_BROKER_URL).ping()
            redis_status = "healthy"
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            redis_status = "unhealthy"

        return {
            "status": "healthy" if db_status == "healthy" and redis_status == "healthy" else "degraded",
            "version": settings.VERSION,
            "project": settings.PROJECT_NAME,
            "database": db_status,
            "redis": redis_status,
        }

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Global HTTP exception handler"""
        logger.error(f"HTTP {exc.status_code}: {exc.detail} - {request.url}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": exc.detail,
                "status_code": exc.status_code
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("xpired.main:app", host="0.0.0.0", port=8000)
