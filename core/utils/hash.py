import logging

from passlib.context import CryptContext
from passlib.exc import UnknownHashError, PasslibSecurityError

from core.errors import InternalServerError, ValidationError

logger = logging.getLogger(__name__)

# Configure CryptContext with bcrypt as the primary scheme
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    if not password or not isinstance(password, str):
        raise ValidationError("Password must be a non-empty string")
    try:
        hashed = pwd_context.hash(password)
        logger.debug("Password hashed successfully")
        return hashed
    except (UnknownHashError, PasslibSecurityError, ValueError) as e:
        logger.error(f"Failed to hash password: {str(e)}", exc_info=True)
        raise InternalServerError(f"Failed to hash password: {str(e)}")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    if not plain_password or not hashed_password:
        return False
    try:
        is_valid = pwd_context.verify(plain_password, hashed_password)
        logger.debug(f"Password verification result: {is_valid}")
        return is_valid
    except (UnknownHashError, ValueError) as e:
        logger.error(f"Unusable password hash: {str(e)}")
        return False
    except PasslibSecurityError as pre:
        logger.error(f"Runtime error: {str(pre)}", exc_info=True)
        raise InternalServerError(f"Failed to verify password: {str(pre)}")
