from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.schemas.upload import StoredFileRef


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the group")
    description: str = Field(..., min_length=1, max_length=255, description="What the group is about")


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=255)


class GroupResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: str
    image: Optional[StoredFileRef] = None
    members: List[str] = []
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "GroupResponse":
        return cls(
            id=str(document["_id"]),
            owner_id=str(document["owner_id"]),
            name=document["name"],
            description=document["description"],
            image=StoredFileRef.from_document(document.get("image")),
            members=[str(member) for member in document.get("members", [])],
            created_at=document["created_at"],
            updated_at=document["updated_at"],
        )
