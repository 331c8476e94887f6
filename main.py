"""
FastAPI Application Entry Point
PromptPix credits backend: daily credit ledger, resets and user profile API
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import sys
import os

from config import settings
from app.database.connection import connect_to_mongo, close_mongo_connection, check_database_health
from app.scheduler.tasks import start_scheduler, shutdown_scheduler
from app.credits.exceptions import CreditError

from app.auth.traditional import router as auth_router
from app.users.routes import router as users_router
from app.credits.routes import router as credits_router
from app.dashboard.routes import router as dashboard_router
from app.admin.routes import router as admin_router


def setup_logging():
    """Configure root logging once, console plus optional UTF-8 log file"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    return logging.getLogger(__name__)


logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("=" * 60)
    logger.info("Starting PromptPix credits backend...")
    logger.info("=" * 60)

    if settings.CREDIT_STORE_BACKEND == "mongo":
        try:
            logger.info("[INFO] Connecting to MongoDB...")
            await connect_to_mongo()
            logger.info("[OK] MongoDB connected successfully")
        except Exception as e:
            # Requests surface StorageFailureError until the database is back
            logger.critical(f"[FAIL] MongoDB connection failed: {str(e)}")
            logger.warning("[WARNING] App starting in degraded mode - database unavailable")
    else:
        logger.warning("[WARNING] CREDIT_STORE_BACKEND=memory - credits are not persisted")

    try:
        start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[WARN] Scheduler start failed: {str(e)}")

    logger.info("Application startup complete!")

    yield

    logger.info("Shutting down application...")
    shutdown_scheduler()
    await close_mongo_connection()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="PromptPix API",
    description="Daily credit ledger and user profile API for PromptPix",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CreditError)
async def credit_error_handler(request: Request, exc: CreditError):
    """Map credit exceptions to their status codes"""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")

    headers = None
    retry_after_ms = exc.details.get("retry_after_ms")
    if retry_after_ms is not None:
        headers = {"Retry-After": str(max(1, -(-retry_after_ms // 1000)))}

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response_dict(),
        headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are the caller's bug: 400, not 422"""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "status": "fail",
            "message": "Invalid request",
            "details": {"errors": errors}
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": "error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db_health = await check_database_health()

    return {
        "status": "healthy" if db_health.get("status") == "healthy" else "unhealthy",
        "service": "promptpix-api",
        "version": "1.0.0",
        "database": db_health
    }


@app.get("/")
async def root():
    return {
        "message": "PromptPix API is running",
        "status": "operational",
        "docs": f"{settings.API_URL}/docs",
        "health": f"{settings.API_URL}/health"
    }


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(credits_router)
app.include_router(dashboard_router)
app.include_router(admin_router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 5001))

    logger.info(f"Starting Uvicorn Server on port {port} (debug={settings.DEBUG})")

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
        log_level="info"
    )
