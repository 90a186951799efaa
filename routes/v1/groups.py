# routes/v1/groups.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.auth.auth import get_identity
from core.errors import BaseError, InternalServerError
from core.utils.validation import form_fields
from domain.schemas.auth import IdentityClaims
from domain.schemas.group import GroupResponse
from domain.schemas.upload import to_upload_request
from services.groups import create_group, delete_group, get_group, list_groups, update_group

router = APIRouter()
logger = logging.getLogger(__name__)


def _group(document) -> dict:
    return GroupResponse.from_document(document).model_dump(mode="json")


@router.post("", status_code=201, response_model=dict, summary="Create a group")
@limiter.limit("5/minute")
async def create_group_route(
    request: Request,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        raw = form_fields(name=name, description=description)
        group = await create_group(container, identity, raw, to_upload_request(image))
        return {"message": "Group created successfully", "status": 201, "group": _group(group)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to create group: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("", response_model=dict, summary="List groups")
@limiter.limit("30/minute")
async def list_groups_route(
    request: Request,
    container: ServiceContainer = Depends(get_services),
):
    try:
        groups = list_groups(container)
        return {
            "message": "Groups retrieved successfully",
            "status": 200,
            "groups": [_group(group) for group in groups],
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to list groups: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("/{group_id}", response_model=dict, summary="Get group by ID")
@limiter.limit("30/minute")
async def get_group_route(
    request: Request,
    group_id: str,
    container: ServiceContainer = Depends(get_services),
):
    try:
        group = get_group(container, group_id)
        return {"message": "Group retrieved successfully", "status": 200, "group": _group(group)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to retrieve group {group_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.patch("/{group_id}", response_model=dict, summary="Update group")
@limiter.limit("5/minute")
async def update_group_route(
    request: Request,
    group_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        raw = form_fields(name=name, description=description)
        group = await update_group(container, identity, group_id, raw, to_upload_request(image))
        return {"message": "Group updated successfully", "status": 200, "group": _group(group)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to update group {group_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.delete("/{group_id}", response_model=dict, summary="Delete group")
@limiter.limit("5/minute")
async def delete_group_route(
    request: Request,
    group_id: str,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        delete_group(container, identity, group_id)
        logger.info(f"Group deleted: {group_id} by account: {identity.subject_id}")
        return {"message": "Group deleted successfully", "status": 200}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete group {group_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
