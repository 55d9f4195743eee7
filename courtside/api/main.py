"""
Courtside API Server

FastAPI server for organizing pickup volleyball sessions: holding events,
applying, organizer approval, automatic closing and post-game feedback.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from courtside.api.routes import router, limiter as routes_limiter
from courtside.database import db
from courtside.database.seed_courts import seed_courts
from courtside.services.event_closer_service import get_event_closer_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Courtside API...")

    # Initialize database (create tables if they don't exist)
    # This is a fallback for tables that might not be in migrations yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Seed default courts
    try:
        await seed_courts()
        logger.info("Court seed data initialized")
    except Exception as e:
        logger.error(f"Failed to seed court data: {e}", exc_info=True)

    # Start event closer worker (hold -> closed once end time passes)
    try:
        get_event_closer_service().start()
        logger.info("Event closer worker started")
    except Exception as e:
        logger.error(f"Failed to start event closer worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Courtside API...")

    try:
        get_event_closer_service().stop()
        logger.info("Event closer worker stopped")
    except Exception as e:
        logger.error(f"Error stopping event closer worker: {e}", exc_info=True)

    await db.engine.dispose()


app = FastAPI(
    title="Courtside API",
    description="API for holding, joining and reviewing pickup volleyball sessions",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
