"""
Tests for infrastructure/external/file_storage.py

Local backend tests write into a temporary directory; S3 and Cloudinary
backend tests run against mocked provider clients.
"""

import io
import os
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from cloudinary.exceptions import Error as CloudinaryError
from cloudinary.utils import generate_transformation_string

from core.errors import UploadError
from domain.schemas.upload import StoredFileRef, UploadRequest, image_policy, video_policy
from helpers import MP4_BYTES, PNG_BYTES, make_upload
from infrastructure.external.file_storage import (
    TRANSFORMATION_PROFILES,
    CloudinaryFileStorage,
    LocalFileStorage,
    S3FileStorage,
    build_storage_backend,
    generate_unique_filename,
)

IMAGE_POLICY = image_policy(10 * 1024 * 1024)
VIDEO_POLICY = video_policy(100 * 1024 * 1024)


def test_generated_filenames_are_distinct_and_safe():
    names = {generate_unique_filename("../../My Photo!.PNG") for _ in range(50)}
    assert len(names) == 50
    for name in names:
        assert name.startswith("My_Photo_")
        assert name.endswith(".png")
        assert "/" not in name


# ========== Local backend ==========

class TestLocalFileStorage:

    @pytest.mark.asyncio
    async def test_upload_writes_identical_bytes_and_returns_relative_path(self, storage):
        ref = await storage.upload(make_upload(PNG_BYTES, "avatar.png"), IMAGE_POLICY)

        assert ref.location.startswith("images/")
        assert ref.size_bytes == len(PNG_BYTES)
        with open(storage.path_for(ref), "rb") as stored:
            assert stored.read() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_upload_creates_missing_directory(self, tmp_path):
        storage = LocalFileStorage(str(tmp_path / "fresh" / "uploads"))
        ref = await storage.upload(make_upload(MP4_BYTES, "clip.mp4"), VIDEO_POLICY)
        assert ref.location.startswith("videos/")
        assert os.path.isfile(storage.path_for(ref))

    def test_directory_creation_tolerates_existing_directory(self, storage):
        first = storage.ensure_directory("image")
        second = storage.ensure_directory("image")
        assert first == second
        assert os.path.isdir(first)

    @pytest.mark.asyncio
    async def test_write_failure_maps_to_storage_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the directory should be")
        storage = LocalFileStorage(str(blocker))

        with pytest.raises(UploadError) as exc_info:
            await storage.upload(make_upload(PNG_BYTES, "avatar.png"), IMAGE_POLICY)

        assert exc_info.value.reason == UploadError.STORAGE_FAILURE
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_stream_failing_mid_write_leaves_no_partial_file(self, storage, upload_dir):
        class ClosingStream(io.BytesIO):
            reads = 0

            def read(self, size=-1):
                self.reads += 1
                if self.reads > 1:
                    raise ValueError("I/O operation on closed file.")
                return super().read(size)

        upload = UploadRequest(stream=ClosingStream(PNG_BYTES), filename="avatar.png", size=len(PNG_BYTES))

        with pytest.raises(UploadError) as exc_info:
            await storage.upload(upload, IMAGE_POLICY)

        assert exc_info.value.reason == UploadError.STORAGE_FAILURE
        assert list(upload_dir.rglob("*.png")) == []

    @pytest.mark.asyncio
    async def test_delete_twice_is_not_an_error(self, storage):
        ref = await storage.upload(make_upload(PNG_BYTES, "avatar.png"), IMAGE_POLICY)
        storage.delete(ref)
        storage.delete(ref)
        assert not os.path.exists(storage.path_for(ref))

    def test_locations_outside_the_upload_dir_are_not_owned(self, storage):
        assert storage.owns("images/a.png")
        assert not storage.owns("../outside.png")
        assert not storage.owns("https://cdn.example.com/a.png")
        with pytest.raises(ValueError):
            storage.delete(StoredFileRef(location="../outside.png", size_bytes=1))


# ========== S3 backend ==========

class TestS3FileStorage:

    def _storage(self, client):
        return S3FileStorage(
            bucket="media",
            region="eu-west-1",
            folder="vitrine",
            public_base_url="https://cdn.example.com",
            client=client,
        )

    @pytest.mark.asyncio
    async def test_upload_streams_to_namespaced_key(self):
        client = MagicMock()
        storage = self._storage(client)

        ref = await storage.upload(make_upload(MP4_BYTES, "clip.mp4"), VIDEO_POLICY)

        args, kwargs = client.upload_fileobj.call_args
        _, bucket, key = args
        assert bucket == "media"
        assert key.startswith("vitrine/videos/clip_")
        assert kwargs["ExtraArgs"]["ContentType"] == "video/mp4"
        assert kwargs["ExtraArgs"]["CacheControl"].startswith("public")
        assert ref.location == f"https://cdn.example.com/{key}"
        assert ref.size_bytes == len(MP4_BYTES)

    @pytest.mark.asyncio
    async def test_provider_rejection_maps_to_storage_failure(self):
        client = MagicMock()
        client.upload_fileobj.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        storage = self._storage(client)

        with pytest.raises(UploadError) as exc_info:
            await storage.upload(make_upload(PNG_BYTES, "avatar.png"), IMAGE_POLICY)

        assert exc_info.value.reason == UploadError.STORAGE_FAILURE

    def test_delete_uses_key_recovered_from_url(self):
        client = MagicMock()
        storage = self._storage(client)

        storage.delete(StoredFileRef(location="https://cdn.example.com/vitrine/images/a.png", size_bytes=3))

        client.delete_object.assert_called_once_with(Bucket="media", Key="vitrine/images/a.png")

    def test_foreign_urls_are_not_owned(self):
        storage = self._storage(MagicMock())
        assert storage.owns("https://cdn.example.com/vitrine/images/a.png")
        assert not storage.owns("https://elsewhere.example.com/a.png")
        assert not storage.owns("images/a.png")

    def test_default_url_points_at_the_bucket(self):
        storage = S3FileStorage(bucket="media", region="eu-west-1", client=MagicMock())
        assert storage.url_for("k") == "https://media.s3.eu-west-1.amazonaws.com/k"

    def test_client_is_created_lazily_with_boto3(self):
        with patch("infrastructure.external.file_storage.boto3.client") as boto_client:
            storage = S3FileStorage(bucket="media", access_key_id="id", secret_access_key="secret")
            boto_client.assert_not_called()
            storage.delete(StoredFileRef(location=storage.url_for("vitrine/images/a.png"), size_bytes=1))

        kwargs = boto_client.call_args.kwargs
        assert kwargs["service_name"] == "s3"
        assert kwargs["aws_access_key_id"] == "id"


# ========== Cloudinary backend ==========

class TestCloudinaryFileStorage:

    BASE = "https://res.cloudinary.com/demo"

    def _storage(self, uploader):
        return CloudinaryFileStorage(
            cloud_name="demo", api_key="key", api_secret="secret", folder="vitrine", uploader=uploader
        )

    @pytest.mark.asyncio
    async def test_upload_sends_video_profile_to_the_provider(self):
        uploader = MagicMock()
        uploader.upload.return_value = {
            "secure_url": f"{self.BASE}/video/upload/v17/vitrine/videos/clip_abc.mp4",
            "public_id": "vitrine/videos/clip_abc",
            "bytes": 2048,
        }

        ref = await self._storage(uploader).upload(make_upload(MP4_BYTES, "clip.mp4"), VIDEO_POLICY)

        args, kwargs = uploader.upload.call_args
        assert args[0].read() == MP4_BYTES
        assert kwargs["folder"] == "vitrine/videos"
        assert kwargs["resource_type"] == "video"
        assert kwargs["unique_filename"] is True
        assert kwargs["api_key"] == "key"
        assert kwargs["transformation"] == [TRANSFORMATION_PROFILES["video"]]
        assert ref.location == f"{self.BASE}/video/upload/v17/vitrine/videos/clip_abc.mp4"
        assert ref.size_bytes == 2048

    def test_profiles_render_as_provider_transformations(self):
        video = generate_transformation_string(transformation=[TRANSFORMATION_PROFILES["video"]])[0]
        image = generate_transformation_string(transformation=[TRANSFORMATION_PROFILES["image"]])[0]
        assert set(video.split(",")) == {"c_limit", "q_auto:good", "vc_auto", "w_1280"}
        assert set(image.split(",")) == {"c_limit", "q_auto", "w_1080"}

    @pytest.mark.asyncio
    async def test_provider_error_maps_to_storage_failure(self):
        uploader = MagicMock()
        uploader.upload.side_effect = CloudinaryError("Invalid Signature")

        with pytest.raises(UploadError) as exc_info:
            await self._storage(uploader).upload(make_upload(PNG_BYTES, "avatar.png"), IMAGE_POLICY)

        assert exc_info.value.reason == UploadError.STORAGE_FAILURE

    def test_delete_destroys_asset_named_by_url(self):
        uploader = MagicMock()
        uploader.destroy.return_value = {"result": "ok"}

        self._storage(uploader).delete(
            StoredFileRef(location=f"{self.BASE}/video/upload/v17/vitrine/videos/clip_abc.mp4", size_bytes=1)
        )

        args, kwargs = uploader.destroy.call_args
        assert args == ("vitrine/videos/clip_abc",)
        assert kwargs["resource_type"] == "video"

    def test_missing_asset_counts_as_deleted(self):
        uploader = MagicMock()
        uploader.destroy.return_value = {"result": "not found"}
        storage = self._storage(uploader)
        storage.delete(StoredFileRef(location=f"{self.BASE}/image/upload/vitrine/images/a.png", size_bytes=1))
        assert uploader.destroy.call_args.args == ("vitrine/images/a",)

    def test_failed_destroy_raises(self):
        uploader = MagicMock()
        uploader.destroy.return_value = {"result": "error"}
        with pytest.raises(RuntimeError):
            self._storage(uploader).delete(
                StoredFileRef(location=f"{self.BASE}/image/upload/vitrine/images/a.png", size_bytes=1)
            )

    def test_only_own_delivery_urls_are_owned(self):
        storage = self._storage(MagicMock())
        assert storage.owns(f"{self.BASE}/image/upload/vitrine/images/a.png")
        assert not storage.owns("https://res.cloudinary.com/other/image/upload/a.png")
        assert not storage.owns("images/a.png")
        with pytest.raises(ValueError):
            storage.asset_for(f"{self.BASE}/image/fetch/a.png")


def test_backend_is_selected_from_settings(app_settings, tmp_path):
    local = build_storage_backend(app_settings.model_copy(update={"UPLOAD_DIR": str(tmp_path)}))
    remote = build_storage_backend(app_settings.model_copy(update={"STORAGE_BACKEND": "s3", "S3_BUCKET": "media"}))
    assert isinstance(local, LocalFileStorage)
    assert isinstance(remote, S3FileStorage)

    cloud = build_storage_backend(app_settings.model_copy(update={
        "STORAGE_BACKEND": "cloudinary",
        "CLOUDINARY_CLOUD_NAME": "demo",
        "CLOUDINARY_API_KEY": "key",
        "CLOUDINARY_API_SECRET": "secret",
    }))
    assert isinstance(cloud, CloudinaryFileStorage)
