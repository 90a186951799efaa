import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from core.auth.auth import ensure_owner
from core.errors import NotFoundError, UnauthorizedError, UploadError, ValidationError
from core.utils.validation import parse_fields, sanitize_fields
from domain.schemas.auth import IdentityClaims
from domain.schemas.upload import MediaPolicy, StoredFileRef, UploadRequest
from services.background import BackgroundRunner
from services.cleanup import CleanupWorker
from services.upload import PendingUpload, UploadCoordinator

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class EntityKind(BaseModel):
    """Describes how one entity family embeds its stored file."""
    name: str = Field(..., description="Singular entity name used in messages")
    collection: str = Field(..., description="Store collection holding the entity")
    file_field: str = Field(..., description="Document field embedding the StoredFileRef")
    policy: MediaPolicy
    upload_timeout: float = Field(..., gt=0, description="Upload window in seconds")
    file_required: bool = True
    owner_field: Optional[str] = Field("owner_id", description="Field naming the owner; None when the entity is its own owner")
    text_fields: Tuple[str, ...] = Field((), description="Free-text fields escaped before persistence")

    model_config = ConfigDict(frozen=True)


class EntityCreateWorkflow:
    """Upload-then-persist orchestration shared by every entity with a stored file.

    An entity row is never written before the upload rendezvous has resolved,
    and never written at all when a required file could not be stored. Side
    effects that follow a commit (notifications, removal of replaced files)
    run on the background runner and cannot undo the commit.
    """

    def __init__(self, coordinator: UploadCoordinator, cleanup: CleanupWorker, runner: BackgroundRunner):
        self.coordinator = coordinator
        self.cleanup = cleanup
        self.runner = runner

    async def create(
        self,
        kind: EntityKind,
        repository,
        schema: Type[BaseModel],
        raw: Dict[str, Any],
        upload: Optional[UploadRequest],
        identity: Optional[IdentityClaims] = None,
        precheck: Optional[Callable[[BaseModel], None]] = None,
        prepare: Optional[Callable[[BaseModel], Dict[str, Any]]] = None,
        after_commit: Optional[Callable[[Document], Any]] = None,
    ) -> Document:
        """Validate fields, store the file and insert the entity that references it.

        Args:
            kind (EntityKind): Entity family being created.
            repository: Persistence collaborator of ``kind.collection``.
            schema (Type[BaseModel]): Pydantic model the raw fields must satisfy.
            raw (Dict[str, Any]): Fields as received, missing ones omitted.
            upload (Optional[UploadRequest]): Incoming file, if any.
            identity (Optional[IdentityClaims]): Caller; required unless the entity owns itself.
            precheck: Runs after validation and before any upload starts.
            prepare: Blocking work run in the threadpool while the upload is in flight.
                Its returned fields are merged into the document.
            after_commit: Fire-and-forget side effect receiving the inserted document.

        Returns:
            Document: The inserted document including its ``_id``.

        Raises:
            ValidationError: Field validation failed.
            UnauthorizedError: No identity was supplied for an owned entity.
            UploadError: The file is missing, rejected, failed to store or timed out.
            ConflictError: The natural key is already taken.
            InternalServerError: The store failed.
        """
        fields = parse_fields(schema, raw)

        if kind.owner_field and identity is None:
            raise UnauthorizedError(f"Authentication is required to create a {kind.name}")
        if kind.file_required and upload is None:
            raise UploadError(UploadError.MISSING_FILE, f"{kind.file_field} file is required")

        if precheck is not None:
            precheck(fields)

        pending = self._start_upload(kind, upload)
        extra = await self._run_alongside(pending, prepare, fields)
        ref = await pending.result() if pending is not None else None

        now = datetime.now(timezone.utc)
        document = sanitize_fields(fields.model_dump(), kind.text_fields)
        document.update(extra)
        if kind.owner_field:
            document[kind.owner_field] = ObjectId(identity.subject_id)
        document[kind.file_field] = ref.model_dump() if ref is not None else None
        document["created_at"] = now
        document["updated_at"] = now

        try:
            created = repository.insert(document)
        except Exception:
            logger.error(f"Insert of {kind.name} failed after upload, removing stored file")
            self.cleanup.cleanup(ref)
            raise

        logger.info(f"{kind.name.capitalize()} created with ID: {created['_id']}")
        if after_commit is not None:
            self.runner.spawn(after_commit, created, name=f"{kind.name}:after-commit:{created['_id']}")
        return created

    async def update(
        self,
        kind: EntityKind,
        repository,
        entity_id: str,
        schema: Type[BaseModel],
        raw: Dict[str, Any],
        upload: Optional[UploadRequest],
        identity: IdentityClaims,
        prepare: Optional[Callable[[BaseModel], Dict[str, Any]]] = None,
    ) -> Document:
        """Apply an owner's changes, optionally replacing the stored file.

        The replaced file is scheduled for cleanup only after the new
        reference has been committed.

        Raises:
            ValidationError: Field validation failed or nothing would change.
            NotFoundError: The entity does not exist.
            ForbiddenError: The caller does not own the entity.
            UploadError: The replacement file failed.
        """
        fields = parse_fields(schema, raw)
        existing = self.get_owned(kind, repository, entity_id, identity)

        changes = fields.model_dump(exclude_none=True)
        if not changes and upload is None:
            raise ValidationError("No fields to update")

        pending = self._start_upload(kind, upload)
        extra = await self._run_alongside(pending, prepare, fields)
        ref = await pending.result() if pending is not None else None

        changes = sanitize_fields(changes, kind.text_fields)
        changes.update(extra)
        if ref is not None:
            changes[kind.file_field] = ref.model_dump()
        changes["updated_at"] = datetime.now(timezone.utc)

        try:
            updated = repository.update_fields(existing["_id"], changes)
        except Exception:
            self.cleanup.cleanup(ref)
            raise
        if updated is None:
            self.cleanup.cleanup(ref)
            raise NotFoundError(f"{kind.name.capitalize()} with ID {entity_id} not found")

        if ref is not None:
            self.cleanup.cleanup(StoredFileRef.from_document(existing.get(kind.file_field)))
        logger.info(f"{kind.name.capitalize()} updated: {entity_id}")
        return updated

    def delete(self, kind: EntityKind, repository, entity_id: str, identity: IdentityClaims) -> Document:
        """Delete an owned entity and schedule removal of its file."""
        existing = self.get_owned(kind, repository, entity_id, identity)
        self.delete_document(kind, repository, existing)
        return existing

    def delete_document(self, kind: EntityKind, repository, document: Document) -> bool:
        deleted = repository.delete(document["_id"])
        if deleted:
            self.cleanup.cleanup(StoredFileRef.from_document(document.get(kind.file_field)))
            logger.info(f"{kind.name.capitalize()} deleted: {document['_id']}")
        return deleted

    def get_owned(self, kind: EntityKind, repository, entity_id: str, identity: IdentityClaims) -> Document:
        """Fetch an entity and confirm the caller owns it.

        Raises:
            NotFoundError: The entity does not exist.
            ForbiddenError: The caller does not own it.
        """
        document = repository.find_by_id(entity_id)
        if document is None:
            raise NotFoundError(f"{kind.name.capitalize()} with ID {entity_id} not found")
        owner_id = document.get(kind.owner_field) if kind.owner_field else document["_id"]
        ensure_owner(identity, owner_id, kind.name)
        return document

    def _start_upload(self, kind: EntityKind, upload: Optional[UploadRequest]) -> Optional[PendingUpload]:
        if upload is None:
            return None
        return self.coordinator.start(upload, kind.policy, kind.upload_timeout)

    async def _run_alongside(
        self,
        pending: Optional[PendingUpload],
        prepare: Optional[Callable[[BaseModel], Dict[str, Any]]],
        fields: BaseModel,
    ) -> Dict[str, Any]:
        if prepare is None:
            return {}
        try:
            return await run_in_threadpool(prepare, fields) or {}
        except (Exception, asyncio.CancelledError):
            # the upload result will never be read, a stored file is reclaimed
            if pending is not None:
                pending.abandon()
            raise


def referenced_locations(store, kinds: Iterable[EntityKind]) -> Set[str]:
    """Collect every stored file location still embedded in an entity."""
    locations: Set[str] = set()
    for kind in kinds:
        for document in store.repository(kind.collection).find_many({}):
            ref = StoredFileRef.from_document(document.get(kind.file_field))
            if ref is not None:
                locations.add(ref.location)
    return locations
