"""
CareAudit - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from careaudit import __version__
from careaudit.config import settings
from careaudit.database import init_db, close_db
from careaudit.routers import (
    reference,
    audits,
    compliance,
    evidence,
    document_reviews,
    weekly_reports,
    public,
)
from careaudit.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if not settings.is_production:
        await init_db()
        logger.info("Database tables initialized")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Compliance and audit workflow engine for care providers",
    version=__version__,
    docs_url="/api/docs" if not settings.is_production else None,
    redoc_url="/api/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
    }


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "reference": "/api/v1/reference",
            "audits": "/api/v1/audits",
            "compliance": "/api/v1/compliance",
            "evidence": "/api/v1/evidence",
            "document_reviews": "/api/v1/document-reviews",
            "weekly_reports": "/api/v1/weekly-reports",
            "public": "/api/v1/public",
        }
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

app.include_router(reference.router, prefix="/api/v1/reference", tags=["Reference Data"])
app.include_router(audits.router, prefix="/api/v1", tags=["Audits"])
app.include_router(compliance.router, prefix="/api/v1/compliance", tags=["Compliance"])
app.include_router(evidence.router, prefix="/api/v1/evidence", tags=["Evidence"])
app.include_router(document_reviews.router, prefix="/api/v1/document-reviews", tags=["Document Reviews"])
app.include_router(weekly_reports.router, prefix="/api/v1/weekly-reports", tags=["Weekly Reports"])
app.include_router(public.router, prefix="/api/v1/public", tags=["Public"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
