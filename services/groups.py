# services/groups.py
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId

from core.errors import NotFoundError
from domain.schemas.auth import IdentityClaims
from domain.schemas.group import GroupCreate, GroupUpdate
from domain.schemas.upload import UploadRequest
from services.entities import GROUP

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


async def create_group(
    container, identity: IdentityClaims, raw: Dict[str, Any], image: Optional[UploadRequest]
) -> Document:
    """Create a group with the caller as owner and first member; the image is optional."""

    def add_owner_as_member(fields: GroupCreate) -> Dict[str, Any]:
        return {"members": [ObjectId(identity.subject_id)]}

    return await container.workflow.create(
        container.kinds[GROUP],
        container.store.groups,
        GroupCreate,
        raw,
        image,
        identity=identity,
        prepare=add_owner_as_member,
    )


def get_group(container, group_id: str) -> Document:
    group = container.store.groups.find_by_id(group_id)
    if group is None:
        raise NotFoundError(f"Group with ID {group_id} not found")
    return group


def list_groups(container) -> List[Document]:
    return container.store.groups.find_many({})


async def update_group(
    container, identity: IdentityClaims, group_id: str, raw: Dict[str, Any], image: Optional[UploadRequest]
) -> Document:
    return await container.workflow.update(
        container.kinds[GROUP], container.store.groups, group_id, GroupUpdate, raw, image, identity
    )


def delete_group(container, identity: IdentityClaims, group_id: str) -> Document:
    return container.workflow.delete(container.kinds[GROUP], container.store.groups, group_id, identity)
