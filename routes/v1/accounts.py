# routes/v1/accounts.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.auth.auth import get_identity
from core.errors import BaseError, InternalServerError
from core.utils.validation import form_fields
from domain.schemas.account import AccountResponse
from domain.schemas.auth import IdentityClaims
from domain.schemas.upload import to_upload_request
from services.accounts import delete_account, get_profile, update_profile

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/me", response_model=dict, summary="Get the current account")
@limiter.limit("30/minute")
async def get_me_route(
    request: Request,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        account = get_profile(container, identity)
        return {
            "message": "Account retrieved successfully",
            "status": 200,
            "user": AccountResponse.from_document(account).model_dump(mode="json"),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to retrieve account {identity.subject_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.patch("/me", response_model=dict, summary="Update the current account")
@limiter.limit("5/minute")
async def update_me_route(
    request: Request,
    name: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Update profile fields; a new avatar replaces the old one."""
    try:
        raw = form_fields(name=name, password=password, bio=bio)
        account = await update_profile(container, identity, raw, to_upload_request(avatar))
        logger.info(f"Account updated: {identity.subject_id}")
        return {
            "message": "Account updated successfully",
            "status": 200,
            "user": AccountResponse.from_document(account).model_dump(mode="json"),
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to update account {identity.subject_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.delete("/{account_id}", response_model=dict, summary="Delete an account and everything it owns")
@limiter.limit("5/minute")
async def delete_account_route(
    request: Request,
    account_id: str,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        removed = delete_account(container, identity, account_id)
        return {
            "message": "Account deleted successfully",
            "status": 200,
            "deleted": removed,
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete account {account_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
