"""Payloads and small builders shared by the test modules."""

import base64
import io

from domain.schemas.upload import UploadRequest

PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

_MDAT_PAYLOAD = b"\x00" * 64
MP4_BYTES = (
    b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00isomiso2"
    + (8 + len(_MDAT_PAYLOAD)).to_bytes(4, "big") + b"mdat" + _MDAT_PAYLOAD
)

TEXT_BYTES = b"This is a plain text note, it is definitely not a picture.\n" * 4


def make_upload(data: bytes, filename: str, size: int = None) -> UploadRequest:
    """Build an UploadRequest over an in-memory stream."""
    return UploadRequest(
        stream=io.BytesIO(data),
        filename=filename,
        size=len(data) if size is None else size,
    )


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
