"""
FastAPI application entry point.
Main application instance with middleware and route configuration.
"""
from pathlib import Path
from fastapi import FastAPI, Request, status, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import logging
import asyncio

from transfer_cms.config import settings
from transfer_cms.database import get_db, init_db, close_db
from transfer_cms.exceptions import CMSError, PersistenceError
from transfer_cms.services.upload_gateway import create_remote_host
from transfer_cms.utils.rate_limit import limiter
from transfer_cms.routes import gallery, cms

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
)
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests for 1 hour
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its response status."""
    method = request.method
    path = request.url.path

    try:
        response = await call_next(request)
        logger.info(f"{method} {path} -> {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Error processing {method} {path}: {type(e).__name__}: {str(e)}")
        raise


# Include routers
app.include_router(gallery.router, prefix="/api", tags=["gallery"])
app.include_router(cms.router, prefix="/api", tags=["CMS"])

# Locally stored uploads are served from UPLOAD_ROOT/uploads
app.mount(
    "/uploads",
    StaticFiles(directory=Path(settings.UPLOAD_ROOT) / "uploads", check_dir=False),
    name="uploads",
)


# Exception Handlers
@app.exception_handler(CMSError)
async def cms_error_handler(request: Request, exc: CMSError):
    """Render application errors as {"error": message} with their status."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    """Report database failures as a generic persistence error."""
    logger.error(
        f"Database error on {request.method} {request.url.path}: {str(exc)}",
        exc_info=exc
    )
    error = PersistenceError("Database operation failed")
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions (401, 403, 404, etc.)."""
    logger.warning(
        f"HTTPException on {request.method} {request.url.path}: "
        f"{exc.status_code} {exc.detail}"
    )

    # Handle both string and dict detail formats
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail}

    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation error",
            "detail": jsonable_errors(exc)
        }
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    """Handle requests over the upload rate limit."""
    logger.warning(f"Rate limit exceeded on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": f"Rate limit exceeded: {exc.detail}"}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: "
        f"{type(exc).__name__}: {str(exc)}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the non-serialisable ``ctx``/``input`` values."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


# Root Endpoints
@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": settings.API_TITLE,
        "status": "healthy",
        "version": settings.API_VERSION
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    """
    Database health check endpoint.
    Tests database connection and returns status.
    """
    try:
        result = await db.execute(text("SELECT 1"))
        return {
            "database": "connected",
            "status": "healthy",
            "result": result.scalar()
        }
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {str(e)}")
        return {
            "database": "error",
            "status": "unhealthy",
            "error": "Database connection failed"
        }


@app.get("/health/image-host")
async def health_check_image_host():
    """
    Remote image host health check endpoint.
    Reports which host is selected and whether it is configured.
    """
    host = create_remote_host()
    if host is None:
        return {"image_host": "disabled", "status": "healthy"}
    if not host.is_configured():
        return {
            "image_host": host.name,
            "status": "warning",
            "message": "Remote image host credentials not set, uploads are stored locally"
        }
    return {"image_host": host.name, "status": "healthy"}


@app.on_event("startup")
async def startup_event():
    """
    Initialize database connection on application startup.
    Non-blocking: app will start even if database connection fails.
    """
    logger.info(f"CORS allowed origins: {settings.CORS_ORIGINS}")

    try:
        await init_db()
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(
            f"Failed to initialize database on startup: {str(e)}\n"
            f"The application will continue to run, but database-dependent endpoints will fail."
        )


@app.on_event("shutdown")
async def shutdown_event():
    """Close database connections on application shutdown."""
    try:
        await close_db()
    except (OSError, SQLAlchemyError, asyncio.CancelledError) as e:
        logger.warning(f"Error during database shutdown: {str(e)}")
