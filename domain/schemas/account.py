from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from domain.schemas.upload import StoredFileRef

UNVERIFIED = "unverified"
VERIFIED = "verified"


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    email: EmailStr = Field(..., max_length=255, description="Email address, unique per account")
    password: str = Field(..., min_length=8, max_length=255, description="Plain password, hashed before storage")
    bio: str = Field("", max_length=255, description="Short profile text")

    @field_validator("name")
    def validate_name(cls, value):
        if not value.strip():
            raise ValueError("Name must be a non-empty string")
        return value

    @field_validator("email")
    def normalize_email(cls, value):
        return value.lower()


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Updated display name")
    password: Optional[str] = Field(None, min_length=8, max_length=255, description="Updated password")
    bio: Optional[str] = Field(None, max_length=255, description="Updated profile text")

    @field_validator("name")
    def validate_name(cls, value):
        if value is not None and not value.strip():
            raise ValueError("Name must be a non-empty string if provided")
        return value


class AccountResponse(BaseModel):
    id: str = Field(..., description="Unique identifier of the account as a string")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    bio: str = Field("", description="Profile text")
    avatar: Optional[StoredFileRef] = Field(None, description="Stored avatar image")
    status: str = Field(..., description="Verification state (unverified/verified)")
    is_verified: bool = Field(..., description="Whether the email address has been verified")
    roles: List[str] = Field(..., description="Roles assigned to the account")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    updated_at: datetime = Field(..., description="Last update time (UTC)")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "AccountResponse":
        return cls(
            id=str(document["_id"]),
            name=document["name"],
            email=document["email"],
            bio=document.get("bio", ""),
            avatar=StoredFileRef.from_document(document.get("avatar")),
            status=document.get("status", UNVERIFIED),
            is_verified=document.get("status") == VERIFIED,
            roles=document.get("roles", ["user"]),
            created_at=document["created_at"],
            updated_at=document["updated_at"],
        )
