"""
Health endpoints. Public.
"""
import shutil
import time
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from core.logger import logger
import config


router = APIRouter(prefix="/health", tags=["health"])


def check_database() -> dict:
    if config.db is None:
        return {"status": "error", "error": "not initialized"}
    try:
        config.db.ping()
        return {"status": "ok"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "error", "error": str(e)}


@router.get("")
async def health_check():
    """Overall health. 503 when the database is unreachable."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": config.ENVIRONMENT,
        "version": config.APP_VERSION,
        "checks": {"database": check_database()},
    }

    if config.s3_client is not None:
        health_status["checks"]["storage"] = {"backend": "s3", "bucket": config.s3_client.bucket_name}
    else:
        health_status["checks"]["storage"] = {"backend": "local"}

    try:
        disk_usage = shutil.disk_usage(config.UPLOADS_DIR)
        free_gb = disk_usage.free / (1024 ** 3)
        health_status["checks"]["disk"] = {
            "free_gb": round(free_gb, 2),
            "percent_free": round((disk_usage.free / disk_usage.total) * 100, 2)
        }
    except OSError as e:
        health_status["checks"]["disk"] = {"error": str(e)}

    if health_status["checks"]["database"]["status"] != "ok":
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)
    return health_status


@router.get("/ready")
async def readiness():
    """Ready once the database answers."""
    database = check_database()
    if database["status"] != "ok":
        return JSONResponse(status_code=503, content={"status": "not ready", "database": database})
    return {"status": "ready"}


@router.get("/live")
async def liveness():
    return {"status": "alive", "timestamp": time.time()}
