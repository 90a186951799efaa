from typing import Dict

from domain.schemas.upload import image_policy, video_policy
from services.workflow import EntityKind

ACCOUNT = "account"
LISTING = "listing"
POST = "post"
GROUP = "group"


def build_entity_kinds(settings) -> Dict[str, EntityKind]:
    """Entity families and the limits their files are held to, sized from settings."""
    images = image_policy(settings.image_max_bytes)
    videos = video_policy(settings.video_max_bytes)
    return {
        ACCOUNT: EntityKind(
            name=ACCOUNT,
            collection="accounts",
            file_field="avatar",
            policy=images,
            upload_timeout=settings.IMAGE_UPLOAD_TIMEOUT_SECONDS,
            owner_field=None,
            text_fields=("name", "bio"),
        ),
        LISTING: EntityKind(
            name=LISTING,
            collection="listings",
            file_field="image",
            policy=images,
            upload_timeout=settings.IMAGE_UPLOAD_TIMEOUT_SECONDS,
            text_fields=("title", "description", "country", "country_code", "category"),
        ),
        POST: EntityKind(
            name=POST,
            collection="posts",
            file_field="video",
            policy=videos,
            upload_timeout=settings.VIDEO_UPLOAD_TIMEOUT_SECONDS,
            text_fields=("text", "hashtags", "music", "location"),
        ),
        GROUP: EntityKind(
            name=GROUP,
            collection="groups",
            file_field="image",
            policy=images,
            upload_timeout=settings.IMAGE_UPLOAD_TIMEOUT_SECONDS,
            file_required=False,
            text_fields=("name", "description"),
        ),
    }
