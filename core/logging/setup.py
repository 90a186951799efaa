# core/logging/setup.py
import logging
import logging.config

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from core.errors import InternalServerError

APP_LOGGER = "vitrine"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests and outgoing responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        """Log request and response details."""
        logger = logging.getLogger(f"{APP_LOGGER}.http")
        client_host = request.client.host if request.client else "unknown"
        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {client_host}"
        )
        response = await call_next(request)
        logger.info(
            f"Response: {request.method} {request.url.path} "
            f"status={response.status_code}"
        )
        return response


def setup_logging(log_file: str = "app.log", level: str = "INFO") -> None:
    """Set up logging configuration for the application.

    Every module logs through ``logging.getLogger(__name__)``; the root logger
    writes to the console and to ``log_file``. Chatty library loggers are capped
    at WARNING.
    """
    logger = logging.getLogger(APP_LOGGER)
    try:
        logging_config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
            },
            "handlers": {
                "file": {
                    "class": "logging.FileHandler",
                    "filename": log_file,
                    "level": "DEBUG",
                    "formatter": "default",
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "level": "DEBUG",
                    "formatter": "default",
                },
            },
            "loggers": {
                "pymongo": {"level": "WARNING"},
                "apscheduler": {"level": "WARNING"},
                "python_multipart": {"level": "WARNING"},
            },
            "root": {
                "level": level,
                "handlers": ["console", "file"],
            },
        }

        logging.config.dictConfig(logging_config)
        logger.info("Logging setup completed")

    except ValueError as ve:
        logger.error(f"Invalid config: {str(ve)}", exc_info=True)
        raise InternalServerError(f"Invalid logging configuration: {str(ve)}")
    except FileNotFoundError as fnf:
        logger.error(f"File path error: {str(fnf)}", exc_info=True)
        raise InternalServerError(f"Log file path error: {str(fnf)}")
    except PermissionError as pe:
        logger.error(f"Permission denied: {str(pe)}", exc_info=True)
        raise InternalServerError(f"Permission denied: {str(pe)}")
