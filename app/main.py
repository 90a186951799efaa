# app/main.py
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import NetworkTimeout, OperationFailure

from app.config.settings import settings as default_settings
from app.dependencies import build_services
from app.middleware.rate_limit import setup_rate_limit
from core.errors import BaseError
from core.logging.setup import LoggingMiddleware, setup_logging
from core.utils.validation import format_validation_errors
from infrastructure.database.client import create_client, get_database
from infrastructure.database.indexes import create_indexes
from infrastructure.database.repository import MongoStore
from infrastructure.external.file_storage import LocalFileStorage, build_storage_backend
from routes.v1 import accounts, auth, groups, listings, posts, upload

logger = logging.getLogger(__name__)


def _connect_store(settings):
    client = create_client(settings.MONGO_URI)
    db = get_database(client, settings.MONGO_DB)
    try:
        create_indexes(db)
    except OperationFailure as of:
        logger.error(f"Failed to create database indexes: {str(of)}", exc_info=True)
        raise RuntimeError(f"Database index creation failed: {str(of)}")
    except NetworkTimeout as nt:
        logger.error(f"Network timeout creating indexes: {str(nt)}", exc_info=True)
        raise RuntimeError(f"Database connection timeout: {str(nt)}")
    return client, MongoStore(db)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BaseError)
    async def base_error_handler(request: Request, exc: BaseError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = format_validation_errors(exc.errors())
        logger.error(f"Request validation failed on {request.url.path}: {details}")
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "status": 400, "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {str(exc)}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "status": 500})


def create_app(settings=default_settings, store=None, storage=None, notifier=None, schedule_sweeps: bool = True) -> FastAPI:
    """Build the application.

    ``store``, ``storage`` and ``notifier`` replace the MongoDB store, the
    configured storage backend and the SMTP sender when given.
    """
    setup_logging(settings.LOG_FILE)
    if storage is None:
        storage = build_storage_backend(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        active_store = store
        if active_store is None:
            client, active_store = _connect_store(settings)
            logger.info("Database indexes created successfully")

        services = build_services(settings, active_store, storage, notifier)
        app.state.services = services

        scheduler = None
        if schedule_sweeps:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(services.sweep_orphans, "interval", hours=settings.ORPHAN_SWEEP_HOURS)
            scheduler.start()
            logger.info("Scheduler started for cleanup tasks")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            await services.runner.drain()
            if client is not None:
                client.close()
            logger.info("Application shut down")

    app = FastAPI(
        title="Vitrine API",
        description="Accounts, listings, video posts and groups with validated media uploads",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    setup_rate_limit(app)
    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/", summary="Root endpoint", description="Returns a welcome message")
    async def root():
        return {"message": "Welcome to Vitrine API", "status": 200}

    app.include_router(auth.router, prefix="/v1/auth", tags=["Authentication"])
    app.include_router(accounts.router, prefix="/v1/accounts", tags=["Accounts"])
    app.include_router(listings.router, prefix="/v1/listings", tags=["Listings"])
    app.include_router(posts.router, prefix="/v1/posts", tags=["Posts"])
    app.include_router(groups.router, prefix="/v1/groups", tags=["Groups"])
    app.include_router(upload.router, prefix="/v1/uploads", tags=["Uploads"])

    if isinstance(storage, LocalFileStorage):
        app.mount("/uploads", StaticFiles(directory=storage.upload_dir, check_dir=False), name="uploads")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
