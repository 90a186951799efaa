# services/listings.py
import logging
from typing import Any, Dict, List, Optional

from core.errors import NotFoundError
from domain.schemas.auth import IdentityClaims
from domain.schemas.listing import ListingCreate, ListingUpdate
from domain.schemas.upload import UploadRequest
from infrastructure.database.repository import to_object_id
from services.entities import LISTING

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


async def create_listing(
    container, identity: IdentityClaims, raw: Dict[str, Any], image: Optional[UploadRequest]
) -> Document:
    """Create a listing owned by the caller.

    Args:
        container: Application service container.
        identity (IdentityClaims): Authenticated caller.
        raw (Dict[str, Any]): Submitted form fields.
        image (Optional[UploadRequest]): Listing image, required.

    Returns:
        Document: The stored listing.

    Raises:
        ValidationError: If fields are missing or out of range.
        UploadError: If the image is missing, rejected or could not be stored.
    """
    return await container.workflow.create(
        container.kinds[LISTING], container.store.listings, ListingCreate, raw, image, identity=identity
    )


def get_listing(container, listing_id: str) -> Document:
    listing = container.store.listings.find_by_id(listing_id)
    if listing is None:
        raise NotFoundError(f"Listing with ID {listing_id} not found")
    return listing


def list_listings(container, owner_id: Optional[str] = None) -> List[Document]:
    query = {"owner_id": to_object_id(owner_id, "owner_id")} if owner_id else {}
    listings = container.store.listings.find_many(query)
    logger.debug(f"Retrieved {len(listings)} listings")
    return listings


async def update_listing(
    container, identity: IdentityClaims, listing_id: str, raw: Dict[str, Any], image: Optional[UploadRequest]
) -> Document:
    return await container.workflow.update(
        container.kinds[LISTING], container.store.listings, listing_id, ListingUpdate, raw, image, identity
    )


def delete_listing(container, identity: IdentityClaims, listing_id: str) -> Document:
    return container.workflow.delete(container.kinds[LISTING], container.store.listings, listing_id, identity)
