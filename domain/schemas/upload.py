import os
from typing import Any, FrozenSet, Optional

from fastapi import UploadFile
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import UploadError

IMAGE = "image"
VIDEO = "video"


class MediaPolicy(BaseModel):
    """Limits a file must satisfy before it is stored."""
    media_class: str = Field(..., description="Media class the policy applies to (image/video)")
    max_bytes: int = Field(..., gt=0, description="Size ceiling in bytes")
    allowed_extensions: FrozenSet[str] = Field(..., description="Lower-case extensions including the dot")
    allowed_mime_prefixes: FrozenSet[str] = Field(default_factory=frozenset,
                                                  description="Sniffed types accepted by prefix, e.g. 'image/'")
    allowed_mime_types: FrozenSet[str] = Field(default_factory=frozenset,
                                               description="Sniffed types accepted verbatim")

    model_config = ConfigDict(frozen=True)

    @field_validator("media_class")
    def validate_media_class(cls, value):
        if value not in (IMAGE, VIDEO):
            raise ValueError(f"Media class must be '{IMAGE}' or '{VIDEO}', got: {value}")
        return value

    def accepts_mime(self, mime_type: str) -> bool:
        if mime_type in self.allowed_mime_types:
            return True
        return any(mime_type.startswith(prefix) for prefix in self.allowed_mime_prefixes)

    @property
    def max_megabytes(self) -> float:
        return self.max_bytes / (1024 * 1024)


def image_policy(max_bytes: int) -> MediaPolicy:
    return MediaPolicy(
        media_class=IMAGE,
        max_bytes=max_bytes,
        allowed_extensions=frozenset({".jpg", ".jpeg", ".png", ".gif"}),
        allowed_mime_prefixes=frozenset({"image/"}),
    )


def video_policy(max_bytes: int) -> MediaPolicy:
    return MediaPolicy(
        media_class=VIDEO,
        max_bytes=max_bytes,
        allowed_extensions=frozenset({".mp4", ".mov", ".avi", ".wmv", ".flv", ".webm", ".mkv"}),
        allowed_mime_types=frozenset({
            "video/mp4", "video/quicktime", "video/x-msvideo", "video/x-ms-wmv",
            "video/x-ms-asf", "video/x-flv", "video/webm", "video/x-matroska",
        }),
    )


class StoredFileRef(BaseModel):
    """Stable pointer to content persisted by a storage backend."""
    location: str = Field(..., description="Relative path (local backend) or URL (remote backend)")
    size_bytes: int = Field(..., ge=0, description="Number of bytes stored")

    model_config = ConfigDict(frozen=True)

    @field_validator("location")
    def validate_location(cls, value):
        if not value or not value.strip():
            raise ValueError("Location must be a non-empty string")
        return value

    @classmethod
    def from_document(cls, value: Any) -> Optional["StoredFileRef"]:
        """Rebuild a reference embedded in a stored entity, tolerating missing values."""
        if not value:
            return None
        if isinstance(value, StoredFileRef):
            return value
        return cls(**value)


class UploadRequest(BaseModel):
    """A single incoming file, owned by the upload coordinator while it is in flight."""
    stream: Any = Field(..., description="Readable, seekable binary file object")
    filename: str
    size: int = Field(..., ge=0)
    content_type: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("filename")
    def validate_filename(cls, value):
        if not value or not value.strip():
            raise ValueError("Filename cannot be empty")
        return value

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()

    @classmethod
    def from_upload_file(cls, upload: UploadFile) -> "UploadRequest":
        if not upload.filename:
            raise UploadError(UploadError.MISSING_FILE, "Uploaded file has no filename")
        stream = upload.file
        size = upload.size
        if size is None:
            stream.seek(0, os.SEEK_END)
            size = stream.tell()
            stream.seek(0)
        return cls(
            stream=stream,
            filename=upload.filename,
            size=size,
            content_type=upload.content_type,
        )


def to_upload_request(upload: Optional[UploadFile]) -> Optional[UploadRequest]:
    """Wrap a multipart file; an absent or unnamed file part counts as no file."""
    if upload is None or not getattr(upload, "filename", None):
        return None
    return UploadRequest.from_upload_file(upload)
