import logging

from fastapi import Request

from infrastructure.external.file_storage import StorageBackend, build_storage_backend
from infrastructure.external.mailer import SmtpNotificationSender
from services.background import BackgroundRunner
from services.cleanup import CleanupWorker
from services.entities import build_entity_kinds
from services.upload import UploadCoordinator
from services.validation import FileValidator
from services.workflow import EntityCreateWorkflow, referenced_locations

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Process-wide collaborators, built once at startup and shared by every request."""

    def __init__(self, settings, store, storage: StorageBackend, notifier):
        self.settings = settings
        self.store = store
        self.storage = storage
        self.notifier = notifier
        self.runner = BackgroundRunner()
        self.cleanup = CleanupWorker(storage, self.runner)
        self.coordinator = UploadCoordinator(FileValidator(), storage, reclaim=self.cleanup.cleanup)
        self.workflow = EntityCreateWorkflow(self.coordinator, self.cleanup, self.runner)
        self.kinds = build_entity_kinds(settings)

    def sweep_orphans(self) -> dict:
        """Remove stored files that no entity references anymore."""
        referenced = referenced_locations(self.store, self.kinds.values())
        return self.cleanup.sweep_orphans(referenced, grace_minutes=self.settings.ORPHAN_GRACE_MINUTES)


def build_services(settings, store, storage: StorageBackend = None, notifier=None) -> ServiceContainer:
    if storage is None:
        storage = build_storage_backend(settings)
    if notifier is None:
        notifier = SmtpNotificationSender.from_settings(settings)
    container = ServiceContainer(settings, store, storage, notifier)
    logger.info(f"Services initialized with the {storage.name} storage backend")
    return container


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container stored on the application."""
    return request.app.state.services
