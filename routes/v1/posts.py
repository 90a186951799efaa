# routes/v1/posts.py
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.auth.auth import get_identity, get_optional_identity
from core.errors import BaseError, InternalServerError
from core.utils.validation import form_fields
from domain.schemas.auth import IdentityClaims
from domain.schemas.post import PostResponse
from domain.schemas.upload import to_upload_request
from services.posts import create_post, delete_post, get_post, list_posts, update_post

router = APIRouter()
logger = logging.getLogger(__name__)


def _post(document) -> dict:
    return PostResponse.from_document(document).model_dump(mode="json")


@router.post("", status_code=201, response_model=dict, summary="Create a video post")
@limiter.limit("5/minute")
async def create_post_route(
    request: Request,
    text: Optional[str] = Form(None),
    hashtags: Optional[str] = Form(None),
    music: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    is_private: Optional[str] = Form(None),
    video: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Create a post with its video; large videos get a longer upload window."""
    try:
        raw = form_fields(text=text, hashtags=hashtags, music=music, location=location, is_private=is_private)
        post = await create_post(container, identity, raw, to_upload_request(video))
        return {"message": "Post created successfully", "status": 201, "post": _post(post)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to create post: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("", response_model=dict, summary="List visible posts")
@limiter.limit("30/minute")
async def list_posts_route(
    request: Request,
    identity: Optional[IdentityClaims] = Depends(get_optional_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        posts = list_posts(container, identity)
        return {
            "message": "Posts retrieved successfully",
            "status": 200,
            "posts": [_post(post) for post in posts],
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to list posts: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("/{post_id}", response_model=dict, summary="Get post by ID")
@limiter.limit("30/minute")
async def get_post_route(
    request: Request,
    post_id: str,
    identity: Optional[IdentityClaims] = Depends(get_optional_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        post = get_post(container, post_id, identity)
        return {"message": "Post retrieved successfully", "status": 200, "post": _post(post)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to retrieve post {post_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.patch("/{post_id}", response_model=dict, summary="Update post")
@limiter.limit("5/minute")
async def update_post_route(
    request: Request,
    post_id: str,
    payload: Dict[str, Any] = Body(...),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Update caption, hashtags, music, location or visibility (owner only)."""
    try:
        post = await update_post(container, identity, post_id, payload)
        return {"message": "Post updated successfully", "status": 200, "post": _post(post)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to update post {post_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.delete("/{post_id}", response_model=dict, summary="Delete post")
@limiter.limit("5/minute")
async def delete_post_route(
    request: Request,
    post_id: str,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        delete_post(container, identity, post_id)
        logger.info(f"Post deleted: {post_id} by account: {identity.subject_id}")
        return {"message": "Post deleted successfully", "status": 200}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete post {post_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
