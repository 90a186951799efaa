import logging
import os
import time
from typing import Any, Dict, Iterable, Optional

from domain.schemas.upload import StoredFileRef
from infrastructure.external.file_storage import LocalFileStorage, StorageBackend
from services.background import BackgroundRunner

logger = logging.getLogger(__name__)


class CleanupWorker:
    """Best-effort deletion of stored files that no entity references anymore.

    ``cleanup`` is called after the owning entity's delete or update has been
    committed. It never blocks the caller and never reports failure back; a
    delete is attempted once and failures end up in the log.
    """

    def __init__(self, backend: StorageBackend, runner: BackgroundRunner):
        self.backend = backend
        self.runner = runner

    def cleanup(self, ref: Optional[StoredFileRef]) -> None:
        """Schedule the deletion of ``ref`` and return immediately."""
        if ref is None:
            return
        try:
            self.runner.spawn(self.remove, ref, name=f"cleanup:{ref.location}")
        except RuntimeError as re:
            logger.error(f"Could not schedule cleanup of {ref.location}: {str(re)}")

    def remove(self, ref: StoredFileRef) -> bool:
        """Delete ``ref`` now. Returns False instead of raising when the delete fails."""
        if not self.backend.owns(ref.location):
            logger.warning(f"Skipping cleanup of {ref.location}: not managed by the {self.backend.name} backend")
            return False
        try:
            self.backend.delete(ref)
            return True
        except Exception as e:
            logger.error(f"Failed to delete stored file {ref.location}: {str(e)}", exc_info=True)
            return False

    def sweep_orphans(self, referenced: Iterable[str], grace_minutes: int = 60) -> Dict[str, Any]:
        """Delete local files that no entity references and that are older than the grace period.

        The grace period keeps files written by in-flight requests (uploaded but
        not yet committed) out of the sweep. Remote backends are not swept.

        Returns:
            Dict[str, Any]: Confirmation message with count of deleted files.
        """
        if not isinstance(self.backend, LocalFileStorage):
            logger.info(f"Orphan sweep skipped for the {self.backend.name} backend")
            return {"message": "Cleaned up 0 unused files", "deleted": 0}

        used_files = set(referenced)
        cutoff = time.time() - grace_minutes * 60
        root = self.backend.upload_dir
        deleted_count = 0
        if not os.path.isdir(root):
            return {"message": "Cleaned up 0 unused files", "deleted": 0}

        for directory, _, file_names in os.walk(root):
            for file_name in file_names:
                file_path = os.path.join(directory, file_name)
                location = os.path.relpath(file_path, root).replace(os.sep, "/")
                if location in used_files:
                    continue
                try:
                    if os.path.getmtime(file_path) > cutoff:
                        continue
                    os.remove(file_path)
                    deleted_count += 1
                    logger.debug(f"Deleted unused file: {file_path}")
                except FileNotFoundError:
                    continue
                except OSError as ose:
                    logger.error(f"Failed to sweep {file_path}: {str(ose)}")

        logger.info(f"Cleaned up {deleted_count} unused files from {root}")
        return {"message": f"Cleaned up {deleted_count} unused files", "deleted": deleted_count}
