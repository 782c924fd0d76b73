from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from user_service.core.config import settings
from user_service.core.database import engine, Base
from user_service.core.exceptions import register_exception_handlers
from user_service.core.logging import register_request_logging, setup_logging
from user_service.api.routes import users
from user_service.models import user as user_models  # noqa: F401  registers tables on Base

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables on startup.

    In production, use migrations (Alembic) instead of create_all.
    """
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.SERVICE_NAME} started in {settings.ENVIRONMENT} mode")
    yield
    logger.info(f"{settings.SERVICE_NAME} shutting down")


app = FastAPI(
    title="User Management API",
    description="User accounts: registration, authentication, profiles and admin listing",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.ENVIRONMENT != "test":
    register_request_logging(app)

register_exception_handlers(app)

# All routes are prefixed with /api for consistency
app.include_router(users.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "User Management API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
    }
