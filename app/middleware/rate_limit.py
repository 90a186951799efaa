# app/middleware/rate_limit.py
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config.settings import settings
from core.errors import InternalServerError

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}", "status": 429},
    )


def setup_rate_limit(app):
    """Set up rate limiting for the FastAPI application.

    Args:
        app: The FastAPI application instance.

    Raises:
        InternalServerError: If rate limiting setup fails due to configuration or runtime issues.
    """
    try:
        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
        logger.info(f"Rate limiting initialized (enabled={limiter.enabled}, applied via route decorators)")
    except AttributeError as ae:
        logger.error(f"AttributeError during rate limit setup: {str(ae)}", exc_info=True)
        raise InternalServerError(f"Failed to setup rate limiting: Invalid app instance - {str(ae)}")
