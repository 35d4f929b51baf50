"""
Student clearance API: document upload and review, department sign-off and
clearance tracking.
"""
import shutil
import time
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database.connection import Database
from storage.s3_client import S3Client
from core.logger import logger
from middleware.security import SecurityHeadersMiddleware, setup_cors, setup_trusted_hosts
from middleware.auth_middleware import AuthCookieMiddleware
from services.email_service import EmailService, create_mail_client
from routers.auth import router as auth_router
from routers.users import router as users_router
from routers.departments import router as departments_router
from routers.requirements import router as requirements_router
from routers.documents import router as documents_router
from routers.clearance import router as clearance_router
from routers.dashboards import router as dashboards_router
from routers.pages import router as pages_router


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database, S3 and email on startup.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}...")
    logger.info("=" * 60)

    # Initialize database
    try:
        config.db = Database(
            database_url=config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW
        )
        config.db.create_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise

    # Initialize S3 client if enabled
    if config.USE_S3:
        try:
            config.s3_client = S3Client(
                bucket_name=config.S3_BUCKET_NAME,
                aws_access_key_id=config.S3_ACCESS_KEY_ID,
                aws_secret_access_key=config.S3_SECRET_ACCESS_KEY,
                region_name=config.S3_REGION,
                endpoint_url=config.S3_ENDPOINT_URL,
                auto_create_bucket=True,
            )
        except Exception as e:
            logger.error(f"Failed to initialize S3 client: {e}", exc_info=True)
            logger.warning("Continuing without S3 - documents will be stored locally")
            config.s3_client = None
    else:
        logger.info("S3 storage disabled - using local storage")
        config.s3_client = None

    # Email notifications
    app.state.email_service = EmailService(create_mail_client())
    if app.state.email_service.enabled:
        logger.info("FastAPI-Mail initialized successfully")

    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("Server ready!")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description=f"Student clearance API for {config.UNIVERSITY_NAME}",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup middleware
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=config.ENVIRONMENT == "production")
app.add_middleware(AuthCookieMiddleware)
setup_cors(app, config.CORS_ORIGINS, allow_credentials=config.CORS_ALLOW_CREDENTIALS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(departments_router)
app.include_router(requirements_router)
app.include_router(documents_router)
app.include_router(clearance_router)
app.include_router(dashboards_router)
app.include_router(pages_router)


def error_response(status_code: int, detail, headers=None) -> JSONResponse:
    """Error body shared by every handler: {"detail": ..., "code": "NOT_FOUND"}."""
    try:
        code = HTTPStatus(status_code).name
    except ValueError:
        code = "ERROR"
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, exc.detail, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', []) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return error_response(HTTPStatus.BAD_REQUEST, "; ".join(errors) or "Invalid request")


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return error_response(HTTPStatus.BAD_REQUEST, "A record with these values already exists or a reference is invalid")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "university": config.UNIVERSITY_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "auth": "/api/auth",
            "users": "/api/users",
            "departments": "/api/departments",
            "requirements": "/api/requirements",
            "documents": "/api/documents",
            "clearance": "/api/clearance",
            "dashboard": "/api/dashboard",
            "docs": "/docs",
            "health": "/health",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    # Check database
    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    # Check S3
    if config.s3_client:
        try:
            config.s3_client.s3_client.head_bucket(Bucket=config.s3_client.bucket_name)
            health_status["checks"]["s3"] = {"status": "ok", "bucket": config.s3_client.bucket_name}
        except Exception as e:
            health_status["checks"]["s3"] = {"status": "error", "bucket": config.s3_client.bucket_name, "error": str(e)}
            health_status["status"] = "degraded"
    else:
        health_status["checks"]["s3"] = {"status": "disabled", "message": "Documents are stored locally"}

    # Email
    email_service = getattr(app.state, "email_service", None)
    health_status["checks"]["email"] = {"enabled": bool(email_service and email_service.enabled)}

    # Check disk space
    try:
        disk_usage = shutil.disk_usage(config.UPLOADS_DIR)
        free_gb = disk_usage.free / (1024 ** 3)
        health_status["checks"]["disk"] = {
            "free_gb": round(free_gb, 2),
            "percent_free": round((disk_usage.free / disk_usage.total) * 100, 2)
        }
        if free_gb < 1:
            health_status["status"] = "degraded"
    except OSError as e:
        health_status["checks"]["disk"] = {"error": str(e)}

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
