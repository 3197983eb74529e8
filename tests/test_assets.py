import base64
import io
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from PIL import Image

from banana_friends.api.dependencies import get_storage_factory, get_uploader_factory
from banana_friends.main import app
from banana_friends.storage.ftp_client import FTPUploader, upload_location
from banana_friends.storage.image_codec import convert_base64_image, decode_base64_image
from banana_friends.storage.s3_client import S3Client

from conftest import FailingFTP, FakeFTP


def _png_base64(size=(16, 16), color=(200, 30, 30)) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


class TestDirectUpload:
    def test_strips_data_url_prefix(self, client):
        raw = b"fake image bytes"
        body = {
            "base64Image": "data:image/png;base64," + base64.b64encode(raw).decode(),
            "username": "anna",
            "filename": "direct.png",
        }
        response = client.post("/api/direct-ftp-upload", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["fileSize"] == len(raw)
        now = datetime.now(timezone.utc)
        assert data["publicUrl"] == (
            f"https://pics.example.com/user_pics/generated/anna/{now.year}/{now.month:02d}/direct.png"
        )
        assert list(FakeFTP.instances[-1].files.values()) == [raw]

    def test_invalid_base64(self, client):
        body = {"base64Image": "not base64 at all!", "username": "anna", "filename": "x.png"}
        response = client.post("/api/direct-ftp-upload", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid base64 image data"
        assert FakeFTP.instances == []

    def test_missing_fields(self, client):
        response = client.post("/api/direct-ftp-upload", json={"base64Image": "aGk="})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: base64Image, username, filename"

    @pytest.mark.parametrize("field, value", [("username", "../../../../evil"), ("filename", "../x.png"), ("username", "..")])
    def test_path_escape_rejected(self, client, field, value):
        body = {"base64Image": "aGk=", "username": "anna", "filename": "x.png", field: value}
        response = client.post("/api/direct-ftp-upload", json=body)
        assert response.status_code == 400
        assert response.json()["error"].startswith(f"Invalid {field}")
        assert FakeFTP.instances == []

    def test_ftp_failure(self, client, settings):
        app.dependency_overrides[get_uploader_factory] = lambda: (lambda: FTPUploader(settings, ftp_factory=FailingFTP))
        body = {"base64Image": "aGk=", "username": "anna", "filename": "x.png"}
        response = client.post("/api/direct-ftp-upload", json=body)
        assert response.status_code == 500
        data = response.json()
        assert data["details"] == "Direct FTP upload failed"
        assert data["requestData"] == {"username": "anna", "filename": "x.png", "hasBase64": True}


class TestUploadImage:
    def test_multipart_upload(self, client):
        response = client.post(
            "/api/upload-image",
            files={"file": ("cat.png", b"cat bytes", "image/png")},
            data={"path": "/user_pics/avatars/", "filename": "cat.png"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "url": "https://pics.example.com/user_pics/avatars/cat.png",
            "message": "File uploaded successfully",
        }
        assert FakeFTP.instances[-1].files == {"/httpdocs/user_pics/avatars/cat.png": b"cat bytes"}

    def test_missing_path(self, client):
        response = client.post(
            "/api/upload-image",
            files={"file": ("cat.png", b"cat bytes", "image/png")},
            data={"filename": "cat.png"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: file, path, or filename"

    def test_path_traversal_rejected(self, client):
        response = client.post(
            "/api/upload-image",
            files={"file": ("cat.png", b"cat bytes", "image/png")},
            data={"path": "../etc", "filename": "cat.png"},
        )
        assert response.status_code == 400

    def test_upload_location_root(self, settings):
        location = upload_location(settings, "/", "top.png")
        assert location.remote_path == "/httpdocs/top.png"
        assert location.public_url == "https://pics.example.com/top.png"


class FakeS3:
    """boto3 client stub for S3Client"""

    def __init__(self, keys=(), list_error=None, bucket_error=None):
        self.keys = list(keys)
        self.list_error = list_error
        self.bucket_error = bucket_error
        self.deleted_bucket = False

    def list_objects_v2(self, Bucket, Prefix, MaxKeys):
        if self.list_error:
            raise self.list_error
        return {"Contents": [{"Key": key} for key in self.keys]}

    def delete_objects(self, Bucket, Delete):
        keys = [obj["Key"] for obj in Delete["Objects"]]
        self.keys = [key for key in self.keys if key not in keys]
        return {"Deleted": [{"Key": key} for key in keys]}

    def delete_bucket(self, Bucket):
        if self.bucket_error:
            raise self.bucket_error
        self.deleted_bucket = True


def _client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestCleanupStorage:
    def _use(self, settings, fake):
        app.dependency_overrides[get_storage_factory] = lambda: (lambda: S3Client(settings, client=fake))

    def test_full_cleanup(self, client, settings):
        fake = FakeS3(keys=["a.png", "b.png"])
        self._use(settings, fake)
        data = client.post("/api/cleanup-storage").json()
        assert data["success"] is True
        assert data["filesDeleted"] == 2
        assert data["bucketDeleted"] is True
        assert fake.keys == []

    def test_missing_bucket(self, client, settings):
        self._use(settings, FakeS3(list_error=_client_error("NoSuchBucket", "ListObjectsV2")))
        response = client.post("/api/cleanup-storage")
        assert response.status_code == 200
        assert response.json()["message"] == "Bucket already cleaned or does not exist"

    def test_bucket_delete_denied(self, client, settings):
        self._use(settings, FakeS3(keys=["a.png"], bucket_error=_client_error("AccessDenied", "DeleteBucket")))
        data = client.post("/api/cleanup-storage").json()
        assert data["success"] is True
        assert data["filesDeleted"] == 1
        assert "AccessDenied" in data["bucketError"]
        assert "bucketDeleted" not in data

    def test_get_not_allowed(self, client):
        assert client.get("/api/cleanup-storage").status_code == 405


class TestConvert:
    def test_convert_endpoint(self, client):
        response = client.post("/api/convert-to-avif", json={"base64Image": _png_base64(), "quality": 60})
        assert response.status_code == 200
        data = response.json()
        assert data["format"] in ("avif", "webp", "jpeg")
        assert data["convertedImage"].startswith(f"data:image/{data['format']};base64,")

    def test_quality_out_of_range(self, client):
        response = client.post("/api/convert-to-avif", json={"base64Image": _png_base64(), "quality": 0})
        assert response.status_code == 400

    def test_not_an_image(self, client):
        payload = base64.b64encode(b"plain text").decode()
        response = client.post("/api/convert-to-avif", json={"base64Image": payload})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Image conversion failed")

    def test_convert_accepts_data_url(self):
        result = convert_base64_image("data:image/png;base64," + _png_base64(), quality=80)
        assert result["success"] is True
        assert set(result) == {"success", "convertedImage", "format", "originalSize", "compressedSize", "compressionRatio"}

    def test_decode_rejects_garbage(self):
        from banana_friends.api.errors import InvalidRequestError
        with pytest.raises(InvalidRequestError):
            decode_base64_image("@@@")
