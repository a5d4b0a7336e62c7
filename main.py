"""
Photo Sharing API - Main Application Entry Point.

This module initializes and configures the FastAPI application for the photo
sharing backend: users post photos, like them, comment and reply on them and
follow each other, and every such action keeps the photo counters and the
recipient's notification inbox in step.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for correlation ids, error handling and request timing.
- Create database tables on startup and dispose of the engine on shutdown.
- Mount the API routers (health, engagement, social, users, photos,
  notifications, webhooks, maintenance).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api.admin_endpoints import maintenance_router, webhook_router
from api.engagement_endpoints import router as engagement_router
from api.health_router import health_router, monitoring_router
from api.notification_endpoints import router as notification_router
from api.photo_endpoints import router as photo_router
from api.social_endpoints import router as social_router
from api.user_endpoints import router as user_router
from core.config import get_settings
from core.database import create_db_and_tables, engine
from core.logging_config import get_logger, setup_logging
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    create_error_response,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")
    await create_db_and_tables()
    logger.info("Database initialized successfully")

    logger.info("Service startup completed")
    yield

    # Cleanup on shutdown
    logger.info("Shutting down Photo Sharing API")
    await engine.dispose()
    logger.info("Cleanup completed")


app = FastAPI(
    title="Photo Sharing API",
    description="Photos, likes, comments, follows and notifications",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed requests use the same 400 envelope as service-level validation"""
    return create_error_response(
        error_type="ValidationError",
        error_code="VALIDATION_ERROR",
        message="Invalid request",
        status_code=400,
        correlation_id=getattr(request.state, "correlation_id", None),
        details={"errors": jsonable_encoder(exc.errors())},
    )


# CORS middleware (required for frontend communication)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last runs first: correlation ids are set before anything logs
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(CorrelationMiddleware)

logger = get_logger("api.main")

# Health routers FIRST (no authentication required for monitoring)
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(engagement_router)
app.include_router(social_router)
app.include_router(user_router)
app.include_router(photo_router)
app.include_router(notification_router)
app.include_router(webhook_router)
app.include_router(maintenance_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=not get_settings().is_production,
        log_level=get_settings().log_level.lower(),
    )
