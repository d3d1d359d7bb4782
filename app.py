"""
AgriModel research platform API: colleges, users, projects, field data and reviews.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi_mail import FastMail, ConnectionConfig
from jose import JWTError
from sqlalchemy.exc import IntegrityError

import config
from database.connection import Database
from storage.s3_client import S3Client, LocalStorage
from services.cache_service import InMemoryCache
from core.exceptions import AgriModelError
from core.logger import logger
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware, default_rate_limit_rules,
    setup_cors, setup_trusted_hosts
)
from middleware.auth_middleware import AuthRequiredMiddleware
from middleware.request_logger import RequestLoggingMiddleware
from routers.auth import router as auth_router
from routers.users import router as users_router
from routers.colleges import router as colleges_router
from routers.projects import router as projects_router
from routers.data_submissions import router as data_submissions_router
from routers.sensors import router as sensors_router
from routers.sensor_readings import router as sensor_readings_router
from routers.communication import router as communication_router
from routers.notifications import router as notifications_router
from routers.reports import router as reports_router
from routers.research_data import router as research_data_router
from routers.ml_models import router as ml_models_router
from routers.analytics import router as analytics_router
from routers.batch import router as batch_router
from routers.search import router as search_router
from routers.uploads import router as uploads_router
from routers.health import router as health_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database, blob storage, cache and mail on startup.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}...")
    logger.info("=" * 60)

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

    if config.USE_S3:
        try:
            config.s3_client = S3Client(
                bucket_name=config.S3_BUCKET_NAME,
                aws_access_key_id=config.S3_ACCESS_KEY_ID,
                aws_secret_access_key=config.S3_SECRET_ACCESS_KEY,
                region_name=config.S3_REGION,
                endpoint_url=config.S3_ENDPOINT_URL,
                fallback=LocalStorage(config.UPLOADS_DIR),
            )
        except Exception as e:
            logger.error(f"Failed to initialize S3 client: {e}", exc_info=True)
            logger.warning("Continuing without S3 - files will be stored locally")
            config.s3_client = None
    else:
        logger.info("S3 storage disabled - using local storage")
        config.s3_client = None

    config.cache = InMemoryCache(default_ttl=config.CACHE_TTL_SECONDS)

    if config.SMTP_USER and config.SMTP_PASSWORD:
        try:
            mail_conf = ConnectionConfig(
                MAIL_USERNAME=config.SMTP_USER,
                MAIL_PASSWORD=config.SMTP_PASSWORD,
                MAIL_FROM=config.SMTP_FROM_EMAIL or config.SMTP_USER,
                MAIL_FROM_NAME=config.SMTP_FROM_NAME,
                MAIL_PORT=config.SMTP_PORT,
                MAIL_SERVER=config.SMTP_HOST,
                MAIL_STARTTLS=config.SMTP_USE_TLS,
                MAIL_SSL_TLS=config.SMTP_USE_SSL,
                USE_CREDENTIALS=True,
                VALIDATE_CERTS=True,
            )
            app.state.mail = FastMail(mail_conf)
            logger.info("FastAPI-Mail initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize FastAPI-Mail: {e}", exc_info=True)
            app.state.mail = None
    else:
        logger.warning("SMTP credentials not set (SMTP_USER/SMTP_PASSWORD). Emails will not be sent.")
        app.state.mail = None

    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("API Docs: http://localhost:8000/docs")

    yield

    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")


app = FastAPI(
    title=config.APP_NAME,
    description="Multi-tenant agricultural research API: colleges, projects, field data and reviews",
    version=config.APP_VERSION,
    lifespan=lifespan
)
app.state.mail = None

# Setup middleware (last added runs first)
app.add_middleware(SecurityHeadersMiddleware)
if config.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware, rules=default_rate_limit_rules())
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(AuthRequiredMiddleware)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)


# ============================================================================
# Error handlers
# ============================================================================

def _integrity_code(exc: IntegrityError) -> str:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None) or ""


@app.exception_handler(AgriModelError)
async def agrimodel_error_handler(request: Request, exc: AgriModelError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    code = _integrity_code(exc)
    message = str(exc.orig)
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {message}")
    if code == "23505" or "UNIQUE constraint failed" in message:
        return JSONResponse(status_code=409, content={"detail": "A record with this information already exists"})
    if code == "23503" or "FOREIGN KEY constraint failed" in message:
        return JSONResponse(
            status_code=400,
            content={"detail": "Referenced record does not exist or is still referenced"}
        )
    return JSONResponse(status_code=400, content={"detail": "Database constraint violated"})


@app.exception_handler(JWTError)
async def jwt_error_handler(request: Request, exc: JWTError):
    return JSONResponse(status_code=401, content={"detail": "Invalid token"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    detail = "Internal server error"
    if config.ENVIRONMENT != "production":
        detail = f"{detail}: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(colleges_router)
app.include_router(projects_router)
app.include_router(data_submissions_router)
app.include_router(sensors_router)
app.include_router(sensor_readings_router)
app.include_router(communication_router)
app.include_router(notifications_router)
app.include_router(reports_router)
app.include_router(research_data_router)
app.include_router(ml_models_router)
app.include_router(analytics_router)
app.include_router(batch_router)
app.include_router(search_router)
app.include_router(uploads_router)

app.mount("/uploads", StaticFiles(directory=config.UPLOADS_DIR, check_dir=False), name="uploads")


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "docs": "/docs",
        "health": "/health",
        "s3_enabled": config.USE_S3 and config.s3_client is not None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
