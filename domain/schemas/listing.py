from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from domain.schemas.upload import StoredFileRef


class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Title of the listing")
    description: str = Field(..., min_length=1, max_length=255, description="Description of the listing")
    price_per_night: int = Field(..., ge=1, description="Nightly price in whole currency units")
    bedrooms: int = Field(..., ge=1, description="Number of bedrooms")
    guests: int = Field(..., ge=1, description="Maximum number of guests")
    country: str = Field(..., min_length=1, max_length=255, description="Country name")
    country_code: str = Field(..., min_length=1, max_length=255, description="Country code")
    category: str = Field(..., min_length=1, max_length=255, description="Listing category")


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    price_per_night: Optional[int] = Field(None, ge=1)
    bedrooms: Optional[int] = Field(None, ge=1)
    guests: Optional[int] = Field(None, ge=1)
    country: Optional[str] = Field(None, min_length=1, max_length=255)
    country_code: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, min_length=1, max_length=255)


class ListingResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    description: str
    price_per_night: int
    bedrooms: int
    guests: int
    country: str
    country_code: str
    category: str
    image: Optional[StoredFileRef] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ListingResponse":
        data = {key: value for key, value in document.items() if key != "_id"}
        data["id"] = str(document["_id"])
        data["owner_id"] = str(document["owner_id"])
        data["image"] = StoredFileRef.from_document(document.get("image"))
        return cls(**data)
