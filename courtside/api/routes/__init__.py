"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from courtside.services.court_service import CourtNotFoundError
from courtside.services.event_service import (
    EventNotFoundError,
    NotEventOrganizerError,
    CapacityConflictError,
)
from courtside.services.feedback_service import FeedbackNotFoundError

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Email or password is incorrect"
)

NOT_FOUND_ERRORS = (EventNotFoundError, CourtNotFoundError, FeedbackNotFoundError)


def service_error_response(error: ValueError) -> HTTPException:
    """Map a service-layer ValueError to the matching HTTP error."""
    if isinstance(error, NOT_FOUND_ERRORS):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, NotEventOrganizerError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, CapacityConflictError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.auth import router as auth_router  # noqa: E402
from courtside.api.routes.users import router as users_router  # noqa: E402
from courtside.api.routes.courts import router as courts_router  # noqa: E402
from courtside.api.routes.events import router as events_router  # noqa: E402
from courtside.api.routes.participations import router as participations_router  # noqa: E402
from courtside.api.routes.feedback import router as feedback_router  # noqa: E402
from courtside.api.routes.live import router as live_router  # noqa: E402
from courtside.api.routes.health import router as health_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(courts_router)
router.include_router(events_router)
router.include_router(participations_router)
router.include_router(feedback_router)
router.include_router(live_router)
router.include_router(health_router)
