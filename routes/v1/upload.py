# routes/v1/upload.py
import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.auth.auth import ensure_role, get_identity
from core.errors import BaseError, InternalServerError
from domain.schemas.auth import IdentityClaims

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/cleanup", response_model=dict, summary="Clean up unused files")
@limiter.limit("1/minute")
async def cleanup_unused_files_route(
    request: Request,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Sweep stored files no entity references anymore (admin only)."""
    try:
        ensure_role(identity, "admin")
        result = await run_in_threadpool(container.sweep_orphans)
        logger.info(f"Unused files cleaned up by admin {identity.subject_id}: {result['message']}")
        return {**result, "status": 200}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to clean up unused files: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
