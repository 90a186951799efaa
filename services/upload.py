import asyncio
import logging
from typing import Callable, Optional

from core.errors import UploadError
from domain.schemas.upload import MediaPolicy, StoredFileRef, UploadRequest
from infrastructure.external.file_storage import StorageBackend
from services.validation import FileValidator

logger = logging.getLogger(__name__)


class PendingUpload:
    """Handle on an upload running in its own task.

    ``result()`` is the single rendezvous with that task and may be awaited
    once. The upload window is measured from the moment the upload started,
    not from the moment the caller begins waiting.
    """

    def __init__(
        self,
        task: asyncio.Task,
        deadline: float,
        timeout: float,
        filename: str,
        reclaim: Callable[[StoredFileRef], None],
    ):
        self._task = task
        self._deadline = deadline
        self._timeout = timeout
        self._filename = filename
        self._reclaim = reclaim
        self._consumed = False

    @property
    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> StoredFileRef:
        """Wait for validation and storage to finish and return the stored reference.

        Raises:
            UploadError: The file was rejected, the backend failed, or the window expired.
            RuntimeError: The result was already consumed.
        """
        if self._consumed:
            raise RuntimeError(f"Upload result for {self._filename} was already consumed")
        self._consumed = True

        remaining = max(self._deadline - asyncio.get_running_loop().time(), 0)
        try:
            done, _ = await asyncio.wait({self._task}, timeout=remaining)
        except asyncio.CancelledError:
            self.abandon()
            raise

        if not done:
            logger.error(f"Upload of {self._filename} did not finish within {self._timeout:g}s, abandoning it")
            self.abandon()
            raise UploadError(
                UploadError.TIMEOUT,
                f"Upload timeout: request took longer than {self._timeout:g} seconds",
            )
        return self._task.result()

    def abandon(self) -> None:
        """Stop caring about the result; a file stored later is handed back for cleanup.

        The running task is not cancelled, a write already in progress on a
        remote provider cannot be reliably interrupted.
        """
        self._consumed = True
        self._task.add_done_callback(self._on_abandoned_done)

    def _on_abandoned_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info(f"Abandoned upload of {self._filename} ended with: {exc}")
            return
        ref = task.result()
        logger.warning(f"Abandoned upload of {self._filename} completed late at {ref.location}, reclaiming it")
        self._reclaim(ref)


class UploadCoordinator:
    """Runs validation and storage off the request's own path of control."""

    def __init__(
        self,
        validator: FileValidator,
        backend: StorageBackend,
        reclaim: Optional[Callable[[StoredFileRef], None]] = None,
    ):
        self.validator = validator
        self.backend = backend
        self.reclaim = reclaim or (lambda ref: None)

    def start(self, upload: UploadRequest, policy: MediaPolicy, timeout: float) -> PendingUpload:
        """Spawn the upload task; the caller may keep working until it awaits ``result()``."""
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._validate_and_store(upload, policy),
            name=f"upload:{upload.filename}",
        )
        logger.debug(f"Started upload of {upload.filename} ({upload.size} bytes, timeout {timeout:g}s)")
        return PendingUpload(task, loop.time() + timeout, timeout, upload.filename, self.reclaim)

    async def coordinate(self, upload: UploadRequest, policy: MediaPolicy, timeout: float) -> StoredFileRef:
        return await self.start(upload, policy, timeout).result()

    async def _validate_and_store(self, upload: UploadRequest, policy: MediaPolicy) -> StoredFileRef:
        self.validator.validate(upload, policy)
        try:
            ref = await self.backend.upload(upload, policy)
        except UploadError:
            raise
        except Exception as e:
            logger.error(f"Unexpected storage failure for {upload.filename}: {str(e)}", exc_info=True)
            raise UploadError(UploadError.STORAGE_FAILURE, f"Failed to store file: {str(e)}")
        logger.info(f"Stored {upload.filename} at {ref.location}")
        return ref
