# core/auth/jwt.py
import logging
from datetime import datetime, timezone, timedelta

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from app.config.settings import settings
from core.errors import UnauthorizedError, InternalServerError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_access_token(subject_id: str, name: str, email: str, verified: bool, roles: list[str]) -> str:
    """Create a signed access token carrying the identity claims of an account.

    Args:
        subject_id (str): Account ID as a string.
        name (str): Display name of the account.
        email (str): Email address of the account.
        verified (bool): Whether the email address has been verified.
        roles (list[str]): Roles assigned to the account.

    Returns:
        str: Encoded JWT access token.

    Raises:
        InternalServerError: If token creation fails due to invalid input or encoding issues.
    """
    try:
        if not subject_id or not isinstance(subject_id, str):
            raise ValueError("subject_id must be a non-empty string")
        if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
            raise ValueError("roles must be a list of strings")

        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": subject_id,
            "name": name,
            "email": email,
            "verified": verified,
            "roles": roles,
            "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now
        }
        encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
        logger.info(f"Access token created for account {subject_id}")
        return encoded_jwt
    except ValueError as ve:
        logger.error(f"Invalid claims creating access token: {str(ve)}")
        raise InternalServerError(f"Failed to create access token: {str(ve)}")


def decode_token(token: str) -> dict:
    """Decode a JWT token and return its payload.

    Raises:
        UnauthorizedError: If the token is expired, forged or malformed.
    """
    if not token or not isinstance(token, str):
        raise UnauthorizedError("Token must be a non-empty string")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        logger.debug(f"Token decoded successfully for account: {payload.get('sub')}")
        return payload
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise UnauthorizedError("Token has expired")
    except InvalidTokenError as ite:
        logger.warning(f"Invalid token: {str(ite)}")
        raise UnauthorizedError("Invalid token")
