# backend/talbiyah/main.py
"""
FastAPI application for the Talbiyah lesson confirmation service.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.constants import ALLOWED_ORIGINS, API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes.v1 import (
    health as health_v1,
    internal as internal_v1,
    lessons as lessons_v1,
    prometheus as prometheus_v1,
    teachers as teachers_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(
        "Confirmation window: %sh, refund default: %s credits, email provider: %s",
        settings.confirmation_window_hours,
        settings.decline_refund_credits,
        settings.email_provider,
    )
    yield
    logger.info(f"{BRAND_NAME} API shutting down...")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

assert "*" not in ALLOWED_ORIGINS, "CORS allow_origins cannot include * when allow_credentials=True"
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(lessons_v1.router, prefix="/lessons")
api_v1.include_router(teachers_v1.router, prefix="/teachers")
api_v1.include_router(internal_v1.router, prefix="/internal")
app.include_router(api_v1)

# Infrastructure routes (intentionally unversioned)
app.include_router(health_v1.router, prefix="/health")
# PUBLIC endpoint (no auth) following Prometheus practice
app.include_router(prometheus_v1.router, prefix="/metrics")
