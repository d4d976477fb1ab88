"""FastAPI application serving the build history."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from perf_audit import __version__
from perf_audit.config import settings
from perf_audit.errors import PerfAuditError
from perf_audit.logging_config import get_logger, setup_logging
from perf_audit.routes import builds as builds_module
from perf_audit.routes import stats as stats_module
from perf_audit.routes import trends as trends_module
from perf_audit.services.build_store import BuildStore

setup_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the build store for the lifetime of the app."""
    logger.info("Starting perf-audit history API")
    logger.info("Environment: %s", settings.environment)

    async with BuildStore.open(settings.database_url) as store:
        app.state.store = store
        yield
        app.state.store = None

    logger.info("Shutting down perf-audit history API")


app = FastAPI(
    title="perf-audit",
    description="Read-only build performance history",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(builds_module.router)
app.include_router(trends_module.router)
app.include_router(stats_module.router)


@app.exception_handler(PerfAuditError)
async def perf_audit_error_handler(request: Request, exc: PerfAuditError):
    """Input-format errors are client errors; everything else is a server fault."""
    if isinstance(exc, ValueError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})
    logger.error("Request failed: %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
    )


@app.get("/health")
async def health_check(request: Request):
    """Liveness check including a database round trip."""
    store = getattr(request.app.state, "store", None)
    db_status = "unavailable"
    if store is not None:
        try:
            async with store.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "healthy"
        except SQLAlchemyError as e:
            logger.error("Database health check failed: %s", e)
            db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": __version__,
        "environment": settings.environment,
        "database": db_status,
    }


def run() -> None:
    """Serve the API with uvicorn (``perf-audit-api`` console script)."""
    uvicorn.run("perf_audit.main:app", host=settings.api_host, port=settings.api_port)
