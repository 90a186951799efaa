# services/accounts.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId

from core.auth.jwt import create_access_token
from core.errors import ConflictError, ForbiddenError, UnauthorizedError, ValidationError
from core.utils.hash import hash_password, verify_password
from core.utils.tokens import generate_verification_token
from domain.schemas.account import UNVERIFIED, VERIFIED, AccountCreate, AccountUpdate
from domain.schemas.auth import IdentityClaims
from domain.schemas.upload import UploadRequest
from services.entities import ACCOUNT, GROUP, LISTING, POST

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


def issue_credential(account: Document) -> str:
    """Sign an access token for a stored account."""
    return create_access_token(
        subject_id=str(account["_id"]),
        name=account.get("name", ""),
        email=account["email"],
        verified=account.get("status") == VERIFIED,
        roles=account.get("roles", ["user"]),
    )


async def register_account(container, raw: Dict[str, Any], avatar: Optional[UploadRequest]) -> Document:
    """Create an unverified account with its avatar and email a verification link.

    The duplicate email check runs before hashing or uploading anything. Two
    registrations racing past it are still separated by the unique email index.

    Args:
        container: Application service container.
        raw (Dict[str, Any]): Submitted form fields.
        avatar (Optional[UploadRequest]): Avatar image.

    Returns:
        Document: The stored account.

    Raises:
        ValidationError: If fields are missing or invalid.
        ConflictError: If the email is already registered.
        UploadError: If the avatar is missing, rejected or could not be stored.
    """
    accounts = container.store.accounts

    def ensure_email_available(fields: AccountCreate) -> None:
        if accounts.find_by_natural_key(fields.email) is not None:
            raise ConflictError("Email is already registered")

    def secure_credentials(fields: AccountCreate) -> Dict[str, Any]:
        return {
            "password": hash_password(fields.password),
            "status": UNVERIFIED,
            "verification_token": generate_verification_token(),
            "roles": ["user"],
        }

    def send_verification(account: Document) -> None:
        container.notifier.send_verification(account["email"], account["verification_token"])

    account = await container.workflow.create(
        container.kinds[ACCOUNT],
        accounts,
        AccountCreate,
        raw,
        avatar,
        precheck=ensure_email_available,
        prepare=secure_credentials,
        after_commit=send_verification,
    )
    logger.info(f"Account registered: {account['_id']} ({account['email']})")
    return account


def verify_email(container, token: str) -> Tuple[str, Document]:
    """Move an account from unverified to verified and sign it in.

    Raises:
        ValidationError: If the token does not match an account awaiting verification.
    """
    accounts = container.store.accounts
    account = accounts.find_one({"verification_token": token}) if token else None
    if account is None or account.get("status") != UNVERIFIED:
        raise ValidationError("Invalid or expired verification token")

    updated = accounts.update_fields(account["_id"], {
        "status": VERIFIED,
        "verification_token": None,
        "updated_at": datetime.now(timezone.utc),
    })
    if updated is None:
        raise ValidationError("Invalid or expired verification token")
    logger.info(f"Email verified for account: {account['_id']}")
    return issue_credential(updated), updated


def login(container, email: str, password: str) -> Tuple[str, Document]:
    """Check a password and sign in a verified account.

    Raises:
        UnauthorizedError: If the email is unknown or the password is wrong.
        ForbiddenError: If the email address has not been verified yet.
    """
    account = container.store.accounts.find_by_natural_key(email.lower())
    if account is None or not verify_password(password, account.get("password")):
        logger.warning(f"Failed login attempt for {email}")
        raise UnauthorizedError("Invalid email or password")
    if account.get("status") != VERIFIED:
        raise ForbiddenError("Please verify your email before logging in")
    logger.info(f"Account logged in: {account['_id']}")
    return issue_credential(account), account


def forgot_password(container, email: str) -> None:
    """Issue a reset token and email it; unknown addresses are ignored silently."""
    accounts = container.store.accounts
    account = accounts.find_by_natural_key(email.lower())
    if account is None:
        logger.info(f"Password reset requested for unknown email: {email}")
        return

    token = generate_verification_token()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=container.settings.RESET_TOKEN_EXPIRE_MINUTES)
    accounts.update_fields(account["_id"], {"reset_token": token, "reset_token_expires_at": expires_at})
    container.runner.spawn(
        container.notifier.send_password_reset, account["email"], token,
        name=f"password-reset:{account['_id']}",
    )
    logger.info(f"Password reset issued for account: {account['_id']}")


def reset_password(container, token: str, password: str) -> Tuple[str, Document]:
    """Replace the password of the account holding ``token`` and sign it in.

    Raises:
        ValidationError: If the token is unknown or has expired.
    """
    accounts = container.store.accounts
    account = accounts.find_one({"reset_token": token}) if token else None
    if account is None:
        raise ValidationError("Invalid or expired reset token")
    expires_at = account.get("reset_token_expires_at")
    if expires_at is None or expires_at < datetime.now(timezone.utc):
        raise ValidationError("Invalid or expired reset token")

    updated = accounts.update_fields(account["_id"], {
        "password": hash_password(password),
        "reset_token": None,
        "reset_token_expires_at": None,
        "updated_at": datetime.now(timezone.utc),
    })
    if updated is None:
        raise ValidationError("Invalid or expired reset token")
    logger.info(f"Password reset for account: {account['_id']}")
    return issue_credential(updated), updated


def get_profile(container, identity: IdentityClaims) -> Document:
    workflow = container.workflow
    return workflow.get_owned(container.kinds[ACCOUNT], container.store.accounts, identity.subject_id, identity)


async def update_profile(
    container, identity: IdentityClaims, raw: Dict[str, Any], avatar: Optional[UploadRequest]
) -> Document:
    """Update the caller's own account; a new avatar replaces and cleans up the old one."""

    def rehash(fields: AccountUpdate) -> Dict[str, Any]:
        if fields.password is None:
            return {}
        return {"password": hash_password(fields.password)}

    return await container.workflow.update(
        container.kinds[ACCOUNT],
        container.store.accounts,
        identity.subject_id,
        AccountUpdate,
        raw,
        avatar,
        identity,
        prepare=rehash,
    )


def delete_account(container, identity: IdentityClaims, account_id: str) -> Dict[str, int]:
    """Delete an account together with everything it owns.

    Owned listings, posts and groups are removed first, then the account
    itself; every embedded file is handed to the cleanup worker.

    Returns:
        Dict[str, int]: Number of deleted entities per collection.

    Raises:
        NotFoundError: If the account does not exist.
        ForbiddenError: If the caller is not the account holder.
    """
    workflow = container.workflow
    account_kind = container.kinds[ACCOUNT]
    account = workflow.get_owned(account_kind, container.store.accounts, account_id, identity)
    owner_id = ObjectId(account["_id"])

    removed: Dict[str, int] = {}
    for name in (LISTING, POST, GROUP):
        kind = container.kinds[name]
        repository = container.store.repository(kind.collection)
        count = 0
        for document in repository.find_many({kind.owner_field: owner_id}):
            if workflow.delete_document(kind, repository, document):
                count += 1
        removed[kind.collection] = count

    deleted = workflow.delete_document(account_kind, container.store.accounts, account)
    removed["accounts"] = 1 if deleted else 0
    logger.info(f"Account {account_id} deleted with owned entities: {removed}")
    return removed
