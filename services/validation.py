import logging

import magic

from core.errors import UploadError
from domain.schemas.upload import MediaPolicy, UploadRequest

logger = logging.getLogger(__name__)

SNIFF_BYTES = 2048


class FileValidator:
    """Checks an incoming file against a media policy.

    Checks run in a fixed order and the first failure wins: declared size,
    then extension, then the content type sniffed from the leading bytes of the
    stream. The client-declared ``Content-Type`` header is never trusted.
    """

    def __init__(self, sniff_bytes: int = SNIFF_BYTES):
        self.sniff_bytes = sniff_bytes

    def validate(self, upload: UploadRequest, policy: MediaPolicy) -> None:
        """Validate ``upload`` or raise ``UploadError`` with the rejection reason.

        Only a fixed-size prefix of the stream is read; the stream is rewound
        before returning so the storage backend sees the whole file.
        """
        if upload.size > policy.max_bytes:
            logger.warning(f"Rejected {upload.filename}: {upload.size} bytes exceeds {policy.max_bytes}")
            raise UploadError(
                UploadError.OVERSIZE,
                f"File size exceeds maximum limit of {policy.max_megabytes:g} MB",
            )

        if upload.extension not in policy.allowed_extensions:
            logger.warning(f"Rejected {upload.filename}: extension '{upload.extension}' not allowed")
            allowed = ", ".join(sorted(ext.lstrip(".").upper() for ext in policy.allowed_extensions))
            raise UploadError(
                UploadError.BAD_EXTENSION,
                f"Invalid file type. Only {allowed} are allowed",
            )

        sniffed = self.sniff(upload)
        if not policy.accepts_mime(sniffed):
            logger.warning(f"Rejected {upload.filename}: sniffed type {sniffed} is not a valid {policy.media_class}")
            raise UploadError(
                UploadError.BAD_SNIFFED_TYPE,
                f"File is not a valid {policy.media_class}",
            )

        logger.debug(f"Validated {upload.filename} as {sniffed} ({upload.size} bytes)")

    def sniff(self, upload: UploadRequest) -> str:
        stream = upload.stream
        stream.seek(0)
        try:
            head = stream.read(self.sniff_bytes)
        finally:
            stream.seek(0)
        if not head:
            return "application/x-empty"
        return magic.from_buffer(head, mime=True)
