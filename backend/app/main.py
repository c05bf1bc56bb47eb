"""FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.api.routes import health
from app.api.routes.subscriptions import router as subscriptions_router
from app.api.routes.webhooks import router as webhooks_router
from app.services import notifications

# Setup logging
setup_logging(settings.LOG_LEVEL)

logger = get_logger("app.events")


def log_event(event: str, payload: dict) -> None:
    """Default real-time sink until a socket gateway registers its own listener."""
    logger.info("event=%s user=%s", event, payload.get("userId"))


notifications.add_listener(log_event)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Subscription and entitlement API",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] if settings.FRONTEND_URL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Subscription-Status", "X-Subscription-Days-Remaining"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks_router)
app.include_router(subscriptions_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": settings.PROJECT_NAME, "version": "1.0.0"}
