"""
Тесты провайдеров хранилища.
"""

import re
from io import BytesIO

import boto3
import pytest
from botocore.stub import Stubber

from storefront.core.errors import StorageError
from storefront.services.storage_service import (
    S3StorageProvider,
    generate_storage_key,
    storage_key_from_public_url,
)

KEY_RE = re.compile(r"^\d+-[0-9a-f]{32}\.(\w+)$")


class TestKeys:
    def test_key_format(self):
        key = generate_storage_key("Photo.JPG", now_ms=1700000000000)
        assert key.startswith("1700000000000-")
        assert KEY_RE.match(key).group(1) == "jpg"

    @pytest.mark.parametrize("filename", ["noext", "weird.jp-g", "", "archive."])
    def test_unrecognized_extension_becomes_bin(self, filename):
        assert generate_storage_key(filename).endswith(".bin")

    def test_keys_are_unique(self):
        assert generate_storage_key("a.png", now_ms=1) != generate_storage_key("a.png", now_ms=1)

    def test_key_from_public_url(self):
        url = "https://cdn.example.com/storage/v1/object/public/product-images/17-abc.jpg"
        assert storage_key_from_public_url(url, "product-images") == "17-abc.jpg"

    def test_key_from_relative_url(self):
        assert storage_key_from_public_url("/static/product-images/a%20b.jpg", "product-images") == "a b.jpg"

    @pytest.mark.parametrize("url", ["/images/ceramics.jpg", "", "https://x.com/product-images/"])
    def test_foreign_url_gives_none(self, url):
        assert storage_key_from_public_url(url, "product-images") is None


class TestLocalStorage:
    def test_save_and_url_round_trip(self, storage):
        storage.save_file("1-a.jpg", BytesIO(b"data"), "image/jpeg")
        assert storage.file_exists("1-a.jpg")

        url = storage.get_file_url("1-a.jpg")
        assert url == "http://testserver/static/product-images/1-a.jpg"
        assert storage.key_from_url(url) == "1-a.jpg"

    def test_upload_does_not_overwrite(self, storage):
        storage.save_file("1-a.jpg", BytesIO(b"first"))
        with pytest.raises(StorageError):
            storage.save_file("1-a.jpg", BytesIO(b"second"))
        path = storage.base_path / storage.bucket_name / "1-a.jpg"
        assert path.read_bytes() == b"first"

    def test_delete(self, storage):
        storage.save_file("1-a.jpg", BytesIO(b"data"))
        storage.delete_file("1-a.jpg")
        assert not storage.file_exists("1-a.jpg")

    def test_path_traversal_rejected(self, storage):
        with pytest.raises(StorageError):
            storage.save_file("../escape.jpg", BytesIO(b"x"))


class TestS3Storage:
    @pytest.fixture
    def s3(self):
        client = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="test",
            aws_secret_access_key="test",
        )
        provider = S3StorageProvider(
            bucket_name="product-images",
            endpoint_url="http://minio:9000",
            client=client,
        )
        with Stubber(client) as stubber:
            yield provider, stubber

    def test_public_url_is_path_style(self, s3):
        provider, _ = s3
        assert provider.get_file_url("1-a.jpg") == "http://minio:9000/product-images/1-a.jpg"

    def test_save_checks_existence_then_uploads(self, s3):
        provider, stubber = s3
        stubber.add_client_error(
            "head_object",
            service_error_code="404",
            http_status_code=404,
            expected_params={"Bucket": "product-images", "Key": "1-a.jpg"},
        )
        stubber.add_response("put_object", {"ETag": '"abc"'})

        provider.save_file("1-a.jpg", BytesIO(b"data"), "image/jpeg")
        stubber.assert_no_pending_responses()

    def test_existing_object_is_not_overwritten(self, s3):
        provider, stubber = s3
        stubber.add_response("head_object", {"ContentLength": 4})
        with pytest.raises(StorageError):
            provider.save_file("1-a.jpg", BytesIO(b"data"))

    def test_delete_error_raises_storage_error(self, s3):
        provider, stubber = s3
        stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError) as exc_info:
            provider.delete_file("1-a.jpg")
        assert exc_info.value.code == "AccessDenied"
