"""
Main FastAPI application entry point for TranquilTaiwan.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import setup_exception_handlers
from app.core.logging_config import setup_logging
from app.api import geocode, report, score, seo
from app.services.data_fetchers import close_data_fetcher

# Initialize logging
setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    init_db()
    yield
    await close_data_fetcher()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="TranquilTaiwan API",
    description="Livability scores for Taiwan addresses",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# Include routers
app.include_router(score.router, prefix=f"{settings.API_PREFIX}/score", tags=["score"])
app.include_router(report.router, prefix=f"{settings.API_PREFIX}/report", tags=["report"])
app.include_router(geocode.router, prefix=f"{settings.API_PREFIX}/geocode", tags=["geocode"])
app.include_router(seo.router, tags=["seo"])


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Welcome to TranquilTaiwan API",
        "version": settings.VERSION,
        "status": "active",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
