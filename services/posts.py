# services/posts.py
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId

from core.auth.auth import ensure_owner
from core.errors import NotFoundError
from domain.schemas.auth import IdentityClaims
from domain.schemas.post import PostCreate, PostUpdate
from domain.schemas.upload import UploadRequest
from services.entities import POST

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


async def create_post(
    container, identity: IdentityClaims, raw: Dict[str, Any], video: Optional[UploadRequest]
) -> Document:
    """Create a video post owned by the caller.

    Raises:
        ValidationError: If fields are missing or invalid.
        UploadError: If the video is missing, too large, not a video, failed to store or timed out.
    """
    return await container.workflow.create(
        container.kinds[POST], container.store.posts, PostCreate, raw, video, identity=identity
    )


def list_posts(container, identity: Optional[IdentityClaims] = None) -> List[Document]:
    """Public posts, plus the caller's own private ones, newest first."""
    posts = container.store.posts.find_many({"is_private": False})
    if identity is not None:
        posts += container.store.posts.find_many({
            "is_private": True,
            "owner_id": ObjectId(identity.subject_id),
        })
        posts.sort(key=lambda post: post["created_at"], reverse=True)
    logger.debug(f"Retrieved {len(posts)} posts")
    return posts


def get_post(container, post_id: str, identity: Optional[IdentityClaims] = None) -> Document:
    post = container.store.posts.find_by_id(post_id)
    if post is None:
        raise NotFoundError(f"Post with ID {post_id} not found")
    if post.get("is_private"):
        if identity is None:
            raise NotFoundError(f"Post with ID {post_id} not found")
        ensure_owner(identity, post["owner_id"], "post")
    return post


async def update_post(container, identity: IdentityClaims, post_id: str, raw: Dict[str, Any]) -> Document:
    return await container.workflow.update(
        container.kinds[POST], container.store.posts, post_id, PostUpdate, raw, None, identity
    )


def delete_post(container, identity: IdentityClaims, post_id: str) -> Document:
    return container.workflow.delete(container.kinds[POST], container.store.posts, post_id, identity)
