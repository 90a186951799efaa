# routes/v1/listings.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from app.dependencies import ServiceContainer, get_services
from app.middleware.rate_limit import limiter
from core.auth.auth import get_identity
from core.errors import BaseError, InternalServerError
from core.utils.validation import form_fields
from domain.schemas.auth import IdentityClaims
from domain.schemas.listing import ListingResponse
from domain.schemas.upload import to_upload_request
from services.listings import create_listing, delete_listing, get_listing, list_listings, update_listing

router = APIRouter()
logger = logging.getLogger(__name__)


def _listing(document) -> dict:
    return ListingResponse.from_document(document).model_dump(mode="json")


@router.post("", status_code=201, response_model=dict, summary="Create a listing")
@limiter.limit("5/minute")
async def create_listing_route(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price_per_night: Optional[str] = Form(None),
    bedrooms: Optional[str] = Form(None),
    guests: Optional[str] = Form(None),
    country: Optional[str] = Form(None),
    country_code: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Create a listing with its image (owner is the caller)."""
    try:
        raw = form_fields(
            title=title, description=description, price_per_night=price_per_night, bedrooms=bedrooms,
            guests=guests, country=country, country_code=country_code, category=category,
        )
        listing = await create_listing(container, identity, raw, to_upload_request(image))
        return {"message": "Listing created successfully", "status": 201, "data": _listing(listing)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to create listing: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("", response_model=dict, summary="List listings")
@limiter.limit("30/minute")
async def list_listings_route(
    request: Request,
    owner_id: Optional[str] = Query(None, description="Only listings of this account"),
    container: ServiceContainer = Depends(get_services),
):
    try:
        listings = list_listings(container, owner_id)
        return {
            "message": "Listings retrieved successfully",
            "status": 200,
            "data": [_listing(listing) for listing in listings],
        }
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to list listings: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.get("/{listing_id}", response_model=dict, summary="Get listing by ID")
@limiter.limit("30/minute")
async def get_listing_route(
    request: Request,
    listing_id: str,
    container: ServiceContainer = Depends(get_services),
):
    try:
        listing = get_listing(container, listing_id)
        return {"message": "Listing retrieved successfully", "status": 200, "data": _listing(listing)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to retrieve listing {listing_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.patch("/{listing_id}", response_model=dict, summary="Update listing")
@limiter.limit("5/minute")
async def update_listing_route(
    request: Request,
    listing_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price_per_night: Optional[str] = Form(None),
    bedrooms: Optional[str] = Form(None),
    guests: Optional[str] = Form(None),
    country: Optional[str] = Form(None),
    country_code: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    """Update a listing (owner only); a new image replaces the old one."""
    try:
        raw = form_fields(
            title=title, description=description, price_per_night=price_per_night, bedrooms=bedrooms,
            guests=guests, country=country, country_code=country_code, category=category,
        )
        listing = await update_listing(container, identity, listing_id, raw, to_upload_request(image))
        return {"message": "Listing updated successfully", "status": 200, "data": _listing(listing)}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to update listing {listing_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")


@router.delete("/{listing_id}", response_model=dict, summary="Delete listing")
@limiter.limit("5/minute")
async def delete_listing_route(
    request: Request,
    listing_id: str,
    identity: IdentityClaims = Depends(get_identity),
    container: ServiceContainer = Depends(get_services),
):
    try:
        delete_listing(container, identity, listing_id)
        logger.info(f"Listing deleted: {listing_id} by account: {identity.subject_id}")
        return {"message": "Listing deleted successfully", "status": 200}
    except BaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete listing {listing_id}: {str(e)}", exc_info=True)
        raise InternalServerError("Internal server error")
