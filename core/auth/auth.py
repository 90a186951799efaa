import logging
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header, Request

from core.errors import ForbiddenError, UnauthorizedError
from domain.schemas.auth import IdentityClaims
from .jwt import decode_token

logger = logging.getLogger(__name__)


async def get_token(authorization: str = Header(None)) -> str:
    """Extract the token from the Authorization header.

    Args:
        authorization (str): Authorization header value.

    Returns:
        str: Extracted token.

    Raises:
        UnauthorizedError: If header is missing, invalid or malformed.
    """
    if not authorization:
        raise UnauthorizedError("Authorization header is required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        logger.error("Invalid authorization header format")
        raise UnauthorizedError("Invalid authorization header format")
    if not parts[1]:
        raise UnauthorizedError("Empty token provided")
    return parts[1]


def resolve_identity(token: str, store) -> IdentityClaims:
    """Turn a bearer credential into identity claims.

    The credential must verify and the account it names must still exist, so a
    deleted account's tokens stop working immediately.

    Raises:
        UnauthorizedError: If the credential is invalid or the account is gone.
    """
    payload = decode_token(token)
    subject_id = payload.get("sub")
    if not subject_id or not ObjectId.is_valid(subject_id):
        logger.error(f"Invalid subject in token payload: {subject_id}")
        raise UnauthorizedError("Could not validate credentials")

    account = store.accounts.find_by_id(subject_id)
    if account is None:
        logger.error(f"No account found for ID: {subject_id}")
        raise UnauthorizedError("Could not validate credentials")

    return IdentityClaims(
        subject_id=subject_id,
        display_name=account.get("name", ""),
        email=account.get("email", ""),
        verified=account.get("status") == "verified",
        roles=account.get("roles", ["user"]),
    )


async def get_identity(request: Request, token: str = Depends(get_token)) -> IdentityClaims:
    """FastAPI dependency resolving the caller's identity claims."""
    identity = resolve_identity(token, request.app.state.services.store)
    request.state.identity = identity
    return identity


def ensure_owner(identity: IdentityClaims, owner_id: Any, resource: str = "resource") -> None:
    """Allow the operation only when the caller owns the resource.

    Both sides are compared as ObjectIds so that a string and an ObjectId
    naming the same account are equal and nothing else is.

    Raises:
        ForbiddenError: If the caller is not the owner.
    """
    try:
        requester = ObjectId(identity.subject_id)
        owner = owner_id if isinstance(owner_id, ObjectId) else ObjectId(owner_id)
    except (InvalidId, TypeError):
        logger.error(f"Unusable ownership ids: requester={identity.subject_id}, owner={owner_id}")
        raise ForbiddenError(f"You are not authorized to modify this {resource}")
    if requester != owner:
        logger.warning(f"Account {identity.subject_id} attempted to modify {resource} owned by {owner_id}")
        raise ForbiddenError(f"You are not authorized to modify this {resource}")


def ensure_role(identity: IdentityClaims, required_role: str) -> None:
    """Ensure the caller has the required role.

    Raises:
        ForbiddenError: If the caller does not have the required role.
    """
    if not identity.has_role(required_role):
        logger.error(f"Account {identity.subject_id} does not have required role: {required_role}")
        raise ForbiddenError(f"Permission denied: {required_role} role required")
    logger.debug(f"Role {required_role} verified for account {identity.subject_id}")


async def get_optional_identity(request: Request, authorization: str = Header(None)) -> Optional[IdentityClaims]:
    """Like ``get_identity`` for public routes: anonymous callers get None, bad credentials still fail."""
    if not authorization:
        return None
    token = await get_token(authorization)
    identity = resolve_identity(token, request.app.state.services.store)
    request.state.identity = identity
    return identity
