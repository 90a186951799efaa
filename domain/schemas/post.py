from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from domain.schemas.upload import StoredFileRef


def split_hashtags(value: Any) -> List[str]:
    """Accept "#a, b,#c" or a list and return clean tags without the leading '#'."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    tags = []
    for tag in parts:
        clean = str(tag).strip().lstrip("#").strip()
        if clean:
            tags.append(clean)
    return tags


class PostCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=255, description="Caption of the post")
    hashtags: List[str] = Field(..., description="Comma separated hashtags")
    music: str = Field(..., min_length=1, max_length=255, description="Soundtrack title")
    location: str = Field(..., min_length=1, max_length=255, description="Where the video was recorded")
    is_private: bool = Field(False, description="Only the owner can see private posts")

    @field_validator("hashtags", mode="before")
    def parse_hashtags(cls, value):
        tags = split_hashtags(value)
        if not tags:
            raise ValueError("At least one hashtag is required")
        return tags

    @field_validator("text")
    def validate_text(cls, value):
        if not value.strip():
            raise ValueError("Text must not be blank")
        return value


class PostUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1, max_length=255)
    hashtags: Optional[List[str]] = None
    music: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    is_private: Optional[bool] = None

    @field_validator("hashtags", mode="before")
    def parse_hashtags(cls, value):
        if value is None:
            return value
        return split_hashtags(value)


class PostResponse(BaseModel):
    id: str
    owner_id: str
    text: str
    hashtags: List[str]
    music: str
    location: str
    is_private: bool
    video: Optional[StoredFileRef] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "PostResponse":
        data = {key: value for key, value in document.items() if key != "_id"}
        data["id"] = str(document["_id"])
        data["owner_id"] = str(document["owner_id"])
        data["video"] = StoredFileRef.from_document(document.get("video"))
        return cls(**data)
