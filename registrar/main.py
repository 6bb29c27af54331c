# registrar/main.py - FastAPI application for enrollment and tuition billing
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import traceback
import time

from registrar import __version__
from registrar.core.config import settings, validate_critical_settings
from registrar.core.db import get_engine, health_check as db_health_check
from registrar.core.errors import RegistrarError
from registrar.models import Base
from registrar.api.routers import enrollments, tuitions


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.log_format_string
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Registrar API...")
    logger.info(f"Environment: {settings.ENV}")
    validate_critical_settings()
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'local'}")

    engine = get_engine()

    # Create tables if they don't exist (for development)
    if settings.is_development:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

    yield

    logger.info("Shutting down Registrar API...")


show_docs = settings.is_development and settings.DEV_SHOW_DOCS

app = FastAPI(
    title=settings.API_TITLE,
    description="Course enrollment, seat management and tuition billing",
    version=__version__,
    docs_url="/docs" if show_docs else None,
    redoc_url="/redoc" if show_docs else None,
    lifespan=lifespan
)


# Request logging middleware - BEFORE CORS
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and processing time"""
    start_time = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {str(e)}")
        logger.error(traceback.format_exc())
        raise

    process_time = time.time() - start_time
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
    return response


app.add_middleware(CORSMiddleware, **settings.get_cors_config())


@app.exception_handler(RegistrarError)
async def registrar_error_handler(request: Request, exc: RegistrarError):
    """Render domain errors with their status and stable error code"""
    logger.info(f"{request.method} {request.url.path} refused: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {str(exc)}")
    logger.error(traceback.format_exc())

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "traceback": traceback.format_exc()
            }
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.get("/health")
async def health_check():
    database = db_health_check()
    return JSONResponse(
        status_code=200 if database["status"] == "healthy" else 503,
        content={
            "status": database["status"],
            "environment": settings.ENV,
            "version": __version__,
            "database": database,
        },
    )


# Include routers
app.include_router(enrollments.router, prefix="/api/enrollments", tags=["Enrollments"])
app.include_router(tuitions.router, prefix="/api/tuitions", tags=["Tuitions"])


@app.get("/")
async def root():
    return {
        "message": settings.API_TITLE,
        "version": __version__,
        "docs_url": "/docs" if show_docs else "Documentation disabled",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("registrar.main:app", host=settings.API_HOST, port=settings.API_PORT)
