"""
Marketplace order service
Order processing, inventory reservation, payment verification and vendor settlement
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from marketplace.api.routes import routers
from marketplace.core_settings import get_settings
from marketplace.errors import MarketplaceError
from marketplace.infrastructure.db import engine, init_models

settings = get_settings()

SERVICE_NAME = "marketplace-service"
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_DESCRIPTION = "Multi-vendor order processing and settlement service"

setup_logging(
    service_name=SERVICE_NAME,
    level=settings.LOG_LEVEL,
    version=SERVICE_VERSION,
    environment=settings.ENVIRONMENT,
)

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {SERVICE_VERSION}")

    # Run database migrations
    logger.info("Running database migrations")
    result = subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=os.path.join(os.path.dirname(__file__), ".."),
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        logger.warning(f"Migration output: {result.stderr}")
    else:
        logger.info("Database migrations completed")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(f"{SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")

app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    # Stable code + message only; never internals
    logger.info(
        f"Request rejected: {exc.code}",
        extra={'extra_fields': {'path': request.url.path, 'code': exc.code, 'status_code': exc.status_code}}
    )
    return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "detail": exc.message})

health_service = ServiceHealth(SERVICE_NAME, SERVICE_VERSION, engine=engine, redis_url=settings.REDIS_URL)
app.include_router(health_service.create_health_router())

for router in routers:
    app.include_router(router)

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }
