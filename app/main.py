import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.background import background_dispatcher
from app.core.config import settings
from app.core.database import engine
from app.core.exceptions import AppException
from app.core.redis import redis_client

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

WEBHOOK_PATH_PREFIX = "/api/v1/webhooks/"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.APP_NAME} starting ({settings.ENVIRONMENT})")
    yield
    await background_dispatcher.drain(timeout=10)
    await redis_client.close()
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    content = {
        "success": False,
        "error_code": exc.error_code,
        "message": exc.message,
        "details": exc.details,
    }
    if request.url.path.startswith(WEBHOOK_PATH_PREFIX):
        content = {"received": False, "error": exc.message}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    content = {
        "success": False,
        "error_code": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
    }
    if request.url.path.startswith(WEBHOOK_PATH_PREFIX):
        content = {"received": False, "error": str(exc)}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "service": settings.APP_NAME, "version": settings.APP_VERSION}
