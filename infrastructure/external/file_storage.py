# infrastructure/external/file_storage.py
import logging
import mimetypes
import os
import re
import secrets
import time
from typing import Any, Dict, Optional, Tuple

import aiofiles
import boto3
import cloudinary.uploader
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from cloudinary.exceptions import Error as CloudinaryError
from starlette.concurrency import run_in_threadpool

from core.errors import UploadError
from domain.schemas.upload import IMAGE, VIDEO, MediaPolicy, StoredFileRef, UploadRequest

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

# Incoming transformations, executed by the media provider before the asset is stored.
TRANSFORMATION_PROFILES: Dict[str, Dict[str, Any]] = {
    IMAGE: {"width": 1080, "crop": "limit", "quality": "auto"},
    VIDEO: {"width": 1280, "crop": "limit", "quality": "auto:good", "video_codec": "auto"},
}

CACHE_CONTROL = "public, max-age=31536000, immutable"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def generate_unique_filename(original: str) -> str:
    """Build a collision-resistant name: original stem + nanosecond timestamp + random suffix."""
    base = os.path.basename(original.replace("\\", "/"))
    stem, extension = os.path.splitext(base)
    stem = _UNSAFE_CHARS.sub("_", stem).strip("._")[:64] or "file"
    return f"{stem}_{time.time_ns()}_{secrets.token_hex(4)}{extension.lower()}"


class StorageBackend:
    """Persists validated files and deletes them again.

    ``upload`` is awaited from the upload coordinator's task; ``delete`` is a
    blocking call made from the cleanup worker's threadpool.
    """

    name = "base"

    async def upload(self, upload: UploadRequest, policy: MediaPolicy) -> StoredFileRef:
        raise NotImplementedError

    def delete(self, ref: StoredFileRef) -> None:
        raise NotImplementedError

    def owns(self, location: str) -> bool:
        """Whether ``location`` points into this backend."""
        raise NotImplementedError


class LocalFileStorage(StorageBackend):
    """Stores files below ``upload_dir``, one sub-directory per media class."""

    name = "local"

    def __init__(self, upload_dir: str = "uploads"):
        self.upload_dir = os.path.abspath(upload_dir)

    def _resolve(self, location: str) -> str:
        full_path = os.path.abspath(os.path.join(self.upload_dir, location))
        if os.path.commonpath([full_path, self.upload_dir]) != self.upload_dir:
            raise ValueError(f"Location escapes the upload directory: {location}")
        return full_path

    def path_for(self, ref: StoredFileRef) -> str:
        return self._resolve(ref.location)

    def owns(self, location: str) -> bool:
        if not location or "://" in location:
            return False
        try:
            self._resolve(location)
        except ValueError:
            return False
        return True

    def ensure_directory(self, media_class: str) -> str:
        """Create the media directory if needed; concurrent creators may race safely."""
        directory = os.path.join(self.upload_dir, f"{media_class}s")
        os.makedirs(directory, exist_ok=True)
        return directory

    async def upload(self, upload: UploadRequest, policy: MediaPolicy) -> StoredFileRef:
        """Write the stream to disk and return its path relative to ``upload_dir``."""
        try:
            directory = self.ensure_directory(policy.media_class)
        except OSError as ose:
            logger.error(f"Failed to create upload directory for {policy.media_class}: {str(ose)}", exc_info=True)
            raise UploadError(UploadError.STORAGE_FAILURE, f"Failed to prepare storage: {str(ose)}")

        file_name = generate_unique_filename(upload.filename)
        file_path = os.path.join(directory, file_name)
        written = 0
        saved = False
        try:
            upload.stream.seek(0)
            async with aiofiles.open(file_path, "wb") as buffer:
                while True:
                    chunk = await run_in_threadpool(upload.stream.read, CHUNK_SIZE)
                    if not chunk:
                        break
                    await buffer.write(chunk)
                    written += len(chunk)
            saved = True
        except Exception as e:
            # a closed request stream raises ValueError, not OSError
            logger.error(f"Failed to save file {file_path}: {str(e)}", exc_info=True)
            raise UploadError(UploadError.STORAGE_FAILURE, f"Failed to save file: {str(e)}")
        finally:
            if not saved:
                self._discard(file_path)

        location = os.path.relpath(file_path, self.upload_dir).replace(os.sep, "/")
        logger.info(f"File saved: {file_path} ({written} bytes)")
        return StoredFileRef(location=location, size_bytes=written)

    def delete(self, ref: StoredFileRef) -> None:
        """Delete a stored file; a file that is already gone counts as deleted."""
        full_path = self._resolve(ref.location)
        try:
            os.remove(full_path)
            logger.info(f"File deleted: {full_path}")
        except FileNotFoundError:
            logger.warning(f"File not found, nothing to delete: {full_path}")

    def _discard(self, file_path: str) -> None:
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as ose:
            logger.error(f"Failed to remove partial file {file_path}: {str(ose)}")


class S3FileStorage(StorageBackend):
    """Streams files unmodified to an S3-compatible bucket and returns their public URL."""

    name = "s3"

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        folder: str = "vitrine",
        public_base_url: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise ValueError("S3 storage requires a bucket name")
        self.bucket = bucket
        self.region = region
        self.folder = folder.strip("/")
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.base_url = self._base_url(public_base_url)
        self._client = client

    def _base_url(self, public_base_url: Optional[str]) -> str:
        if public_base_url:
            return public_base_url.rstrip("/")
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def _get_client(self):
        """Get or create the boto3 S3 client."""
        if self._client is not None:
            return self._client

        client_kwargs = {
            "service_name": "s3",
            "region_name": self.region,
            "config": Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"}
            )
        }
        if self.access_key_id and self.secret_access_key:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url

        self._client = boto3.client(**client_kwargs)
        logger.info(f"S3 client initialized for bucket: {self.bucket}")
        return self._client

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_for(self, location: str) -> str:
        """Recover the object key from a URL issued by ``url_for``."""
        prefix = f"{self.base_url}/"
        if not location.startswith(prefix):
            raise ValueError(f"URL does not belong to bucket {self.bucket}: {location}")
        return location[len(prefix):]

    def owns(self, location: str) -> bool:
        return bool(location) and location.startswith(f"{self.base_url}/")

    async def upload(self, upload: UploadRequest, policy: MediaPolicy) -> StoredFileRef:
        key = f"{self.folder}/{policy.media_class}s/{generate_unique_filename(upload.filename)}"
        content_type = mimetypes.guess_type(upload.filename)[0] or "application/octet-stream"
        extra_args = {"ContentType": content_type, "CacheControl": CACHE_CONTROL}
        try:
            upload.stream.seek(0)
            client = self._get_client()
            await run_in_threadpool(
                client.upload_fileobj, upload.stream, self.bucket, key, ExtraArgs=extra_args
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error(f"S3 upload failed for {key}: {str(exc)}", exc_info=True)
            raise UploadError(UploadError.STORAGE_FAILURE, f"Media provider rejected the upload: {str(exc)}")

        url = self.url_for(key)
        logger.info(f"File uploaded to s3://{self.bucket}/{key} ({upload.size} bytes)")
        return StoredFileRef(location=url, size_bytes=upload.size)

    def delete(self, ref: StoredFileRef) -> None:
        """Delete an object; S3 treats deleting a missing key as success."""
        key = self.key_for(ref.location)
        self._get_client().delete_object(Bucket=self.bucket, Key=key)
        logger.info(f"Deleted s3://{self.bucket}/{key}")


class CloudinaryFileStorage(StorageBackend):
    """Uploads to Cloudinary, which applies the media class's transformation profile on ingest.

    Credentials are passed on every call instead of through the SDK's global
    configuration, so several backends may coexist in one process.
    """

    name = "cloudinary"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "vitrine",
        uploader=None,
    ):
        if not (cloud_name and api_key and api_secret):
            raise ValueError("Cloudinary storage requires a cloud name, API key and API secret")
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder.strip("/")
        self.base_url = f"https://res.cloudinary.com/{cloud_name}/"
        self.uploader = uploader or cloudinary.uploader

    def _credentials(self) -> Dict[str, str]:
        return {"cloud_name": self.cloud_name, "api_key": self.api_key, "api_secret": self.api_secret}

    def owns(self, location: str) -> bool:
        return bool(location) and location.startswith(self.base_url)

    def asset_for(self, location: str) -> Tuple[str, str]:
        """Recover ``(resource_type, public_id)`` from a delivery URL.

        ``https://res.cloudinary.com/<cloud>/video/upload/v17/vitrine/videos/clip.mp4``
        names the video asset ``vitrine/videos/clip``.
        """
        if not self.owns(location):
            raise ValueError(f"URL does not belong to cloud {self.cloud_name}: {location}")
        parts = location[len(self.base_url):].split("/")
        if len(parts) < 3 or parts[1] != "upload":
            raise ValueError(f"Not an uploaded asset URL: {location}")
        resource_type, path = parts[0], parts[2:]
        if re.fullmatch(r"v\d+", path[0]):
            path = path[1:]
        public_id = os.path.splitext("/".join(path))[0]
        if not public_id:
            raise ValueError(f"URL names no asset: {location}")
        return resource_type, public_id

    async def upload(self, upload: UploadRequest, policy: MediaPolicy) -> StoredFileRef:
        folder = f"{self.folder}/{policy.media_class}s"
        try:
            upload.stream.seek(0)
            result = await run_in_threadpool(
                self.uploader.upload,
                upload.stream,
                folder=folder,
                resource_type=policy.media_class,
                unique_filename=True,
                overwrite=False,
                transformation=[TRANSFORMATION_PROFILES[policy.media_class]],
                **self._credentials(),
            )
        except CloudinaryError as exc:
            logger.error(f"Cloudinary upload failed for {upload.filename}: {str(exc)}", exc_info=True)
            raise UploadError(UploadError.STORAGE_FAILURE, f"Media provider rejected the upload: {str(exc)}")

        url = result.get("secure_url")
        if not url:
            logger.error(f"Cloudinary returned no URL for {upload.filename}: {result}")
            raise UploadError(UploadError.STORAGE_FAILURE, "Media provider returned no URL")
        logger.info(f"File uploaded to Cloudinary as {result.get('public_id')} ({upload.size} bytes)")
        # the transformed asset's size, not the upload's
        return StoredFileRef(location=url, size_bytes=int(result.get("bytes") or upload.size))

    def delete(self, ref: StoredFileRef) -> None:
        """Destroy an asset; an asset that is already gone counts as deleted."""
        resource_type, public_id = self.asset_for(ref.location)
        result = self.uploader.destroy(public_id, resource_type=resource_type, invalidate=True, **self._credentials())
        outcome = result.get("result")
        if outcome == "not found":
            logger.warning(f"Cloudinary asset not found, nothing to delete: {public_id}")
        elif outcome != "ok":
            raise RuntimeError(f"Failed to delete Cloudinary asset {public_id}: {result}")
        else:
            logger.info(f"Deleted Cloudinary asset: {public_id}")


def build_storage_backend(settings) -> StorageBackend:
    """Select the storage backend named by ``settings.STORAGE_BACKEND``."""
    if settings.STORAGE_BACKEND == "s3":
        return S3FileStorage(
            bucket=settings.S3_BUCKET,
            region=settings.S3_REGION,
            folder=settings.S3_FOLDER,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
            endpoint_url=settings.S3_ENDPOINT_URL,
            access_key_id=settings.S3_ACCESS_KEY_ID,
            secret_access_key=settings.S3_SECRET_ACCESS_KEY,
        )
    if settings.STORAGE_BACKEND == "cloudinary":
        return CloudinaryFileStorage(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            folder=settings.CLOUDINARY_FOLDER,
        )
    return LocalFileStorage(settings.UPLOAD_DIR)
