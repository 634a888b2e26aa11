"""
FastAPI backend for the reporting service.

Serves registered reports as JSON, CSV, PDF and XLSX and stores the values
and chart images clients post back.
"""

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import configure_logging, get_logger
from routers import reports

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting report services")

    container.report_registry().load_modules(settings.report_modules)

    await container.database().startup()
    await container.cache().startup()

    if container.cache().backend == "sqlite":
        await container.database().cleanup_expired_cache()

    logger.info("Services started successfully",
                cache_backend=container.cache().backend,
                reports=len(container.report_registry()))
    yield

    await container.cache().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Report Services",
    version="1.0.0",
    description="Cached reports with JSON, CSV, PDF and spreadsheet exports",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error=f"{type(e).__name__}: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )

# Exception middleware is added BEFORE CORS so it wraps route errors only
app.add_middleware(CatchAllExceptionsMiddleware)

logger.info("Configuring CORS middleware",
           origins_count=len(settings.cors_origins),
           origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(reports.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    cache = container.cache()
    return {
        "status": "OK",
        "service": "reports",
        "version": "1.0.0",
        "environment": "development" if settings.debug else "production",
        "cache_backend": cache.backend,
        "cache_ttl_native": cache.supports_ttl,
        "report_cache_ttl": settings.report_cache_ttl,
        "report_load_limit": settings.load_limit,
        "reports": container.report_registry().names(),
        "admin_email": settings.admin_email,
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting report services",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
