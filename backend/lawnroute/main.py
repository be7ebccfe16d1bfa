"""
LawnRoute API - Main Application Entry Point
Route planning and live progress for lawn-care crews
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import logging
import time

from lawnroute.config import get_settings
from lawnroute.database import Database
from lawnroute.routers import assignments, progress, routes, websocket
from lawnroute.tasks import ProgressBroadcaster
from lawnroute.utils.exceptions import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management - startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    errors = settings.validate_production_settings()
    if errors:
        for error in errors:
            logger.warning(f"Configuration warning: {error}")

    await Database.connect()

    broadcaster = ProgressBroadcaster()
    await broadcaster.start()

    yield

    # Shutdown
    logger.info("Shutting down application")
    await broadcaster.stop()
    await Database.disconnect()


app = FastAPI(
    title=settings.APP_NAME,
    description="Route planning and live progress tracking for lawn-care crews",
    version=settings.APP_VERSION,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time to response headers"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    return response


register_exception_handlers(app)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs" if settings.DEBUG else "Disabled in production",
        "api_prefix": settings.API_V1_PREFIX
    }


app.include_router(routes.router, prefix=f"{settings.API_V1_PREFIX}/routes", tags=["Routes"])
app.include_router(assignments.router, prefix=f"{settings.API_V1_PREFIX}/assignments", tags=["Assignments"])
app.include_router(progress.router, prefix=f"{settings.API_V1_PREFIX}/progress", tags=["Progress"])
app.include_router(websocket.router, prefix="/ws", tags=["WebSocket"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "lawnroute.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
