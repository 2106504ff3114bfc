"""Tests for the async S3 client wrapper."""

import pytest

from s3_publishing.constants import PART_UPLOAD_MAX_ATTEMPTS
from s3_publishing.exceptions import NotFoundError, StorageTransportError
from s3_publishing.run_config import ProfileConfig
from s3_publishing.storage import ObjectStorageClient, is_not_found_error
from tests.s3_publishing.fake_s3 import StoredObject, client_error


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


class TestErrorTranslation:
    def test_is_not_found_error(self):
        assert is_not_found_error(client_error("404"))
        assert is_not_found_error(client_error("NoSuchKey"))
        assert not is_not_found_error(client_error("AccessDenied"))
        assert not is_not_found_error(ValueError("404"))

    @pytest.mark.asyncio
    async def test_object_exists(self, s3_client, fake_s3):
        fake_s3.bucket("bucket")["present"] = StoredObject(b"x")

        assert await s3_client.object_exists("bucket", "present")
        assert not await s3_client.object_exists("bucket", "absent")

    @pytest.mark.asyncio
    async def test_head_of_missing_object_raises_not_found(self, s3_client):
        with pytest.raises(NotFoundError):
            await s3_client.head_object("bucket", "absent")

    @pytest.mark.asyncio
    async def test_client_error_becomes_transport_error(self, s3_client, fake_s3):
        fake_s3.failures["delete_object"] = client_error("AccessDenied", "DeleteObject")

        with pytest.raises(StorageTransportError) as exc_info:
            await s3_client.delete_object("bucket", "key")

        assert exc_info.value.key == "bucket/key"


class TestUploadStream:
    @pytest.mark.asyncio
    async def test_small_payload_uses_single_put(self, s3_client, fake_s3):
        await s3_client.upload_stream(
            "bucket", "small.txt", _chunks(b"abc", b"def"), content_type="text/plain", acl="public-read"
        )

        assert fake_s3.calls_to("create_multipart_upload") == []
        stored = fake_s3.bucket("bucket")["small.txt"]
        assert stored.body == b"abcdef"
        assert (stored.content_type, stored.acl) == ("text/plain", "public-read")

    @pytest.mark.asyncio
    async def test_empty_payload(self, s3_client, fake_s3):
        await s3_client.upload_stream("bucket", "empty", _chunks())

        assert fake_s3.bucket("bucket")["empty"].body == b""

    @pytest.mark.asyncio
    async def test_large_payload_uses_multipart(self, s3_client, fake_s3, monkeypatch):
        monkeypatch.setattr(ObjectStorageClient, "_calculate_part_size", lambda self, _: 4)

        await s3_client.upload_stream("bucket", "large.bin", _chunks(b"abcdefghij"), content_type="image/png")

        assert len(fake_s3.calls_to("upload_part")) == 3
        completed = fake_s3.calls_to("complete_multipart_upload")[0]["MultipartUpload"]["Parts"]
        assert [part["PartNumber"] for part in completed] == [1, 2, 3]
        stored = fake_s3.bucket("bucket")["large.bin"]
        assert stored.body == b"abcdefghij"
        assert stored.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_failed_part_aborts_upload(self, s3_client, fake_s3, monkeypatch):
        monkeypatch.setattr(ObjectStorageClient, "_calculate_part_size", lambda self, _: 4)
        fake_s3.part_failures[2] = client_error("InternalError", "UploadPart")

        with pytest.raises(StorageTransportError):
            await s3_client.upload_stream("bucket", "large.bin", _chunks(b"abcdefghij"))

        assert fake_s3.aborted_uploads == {"upload-1"}
        assert fake_s3.calls_to("complete_multipart_upload") == []
        assert "large.bin" not in fake_s3.bucket("bucket")
        part_two_attempts = [call for call in fake_s3.calls_to("upload_part") if call["PartNumber"] == 2]
        assert len(part_two_attempts) == PART_UPLOAD_MAX_ATTEMPTS

    @pytest.mark.asyncio
    async def test_transient_part_failure_is_retried(self, s3_client, fake_s3, monkeypatch):
        monkeypatch.setattr(ObjectStorageClient, "_calculate_part_size", lambda self, _: 4)
        fake_s3.part_failures_once[2] = client_error("SlowDown", "UploadPart")

        await s3_client.upload_stream("bucket", "large.bin", _chunks(b"abcdefghij"))

        assert len(fake_s3.calls_to("upload_part")) == 4
        assert fake_s3.aborted_uploads == set()
        assert fake_s3.bucket("bucket")["large.bin"].body == b"abcdefghij"


class TestCopyAndStream:
    @pytest.mark.asyncio
    async def test_copy_replaces_metadata(self, s3_client, fake_s3):
        fake_s3.bucket("source")["abc"] = StoredObject(b"data", "application/octet-stream")

        await s3_client.copy_object("target", "abc/file.txt", "source", "abc", content_type="text/plain")

        call = fake_s3.calls_to("copy_object")[0]
        assert call["CopySource"] == {"Bucket": "source", "Key": "abc"}
        assert call["MetadataDirective"] == "REPLACE"
        assert call["ACL"] is None
        assert fake_s3.bucket("target")["abc/file.txt"].content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_copy_of_missing_source_raises_not_found(self, s3_client):
        with pytest.raises(NotFoundError):
            await s3_client.copy_object("target", "key", "source", "missing")

    @pytest.mark.asyncio
    async def test_get_object_stream_chunks(self, s3_client, fake_s3):
        fake_s3.bucket("bucket")["key"] = StoredObject(b"0123456789")

        chunks = [chunk async for chunk in s3_client.get_object_stream("bucket", "key", chunk_size=4)]

        assert chunks == [b"0123", b"4567", b"89"]

    @pytest.mark.asyncio
    async def test_list_buckets(self, s3_client, fake_s3):
        fake_s3.bucket("one")
        fake_s3.bucket("two")

        buckets = await s3_client.list_buckets()

        assert [bucket["Name"] for bucket in buckets] == ["one", "two"]


class TestObjectUrl:
    def test_regional_url(self):
        client = ObjectStorageClient(ProfileConfig(region="eu-central-1"), client=object())

        assert (
            client.get_object_url("bucket", "abc/My Picture.jpg")
            == "https://bucket.s3.eu-central-1.amazonaws.com/abc/My%20Picture.jpg"
        )

    def test_us_east_1_url(self):
        client = ObjectStorageClient(ProfileConfig(), client=object())

        assert client.get_object_url("bucket", "a/b.txt") == "https://bucket.s3.amazonaws.com/a/b.txt"

    def test_custom_endpoint_url(self):
        client = ObjectStorageClient(ProfileConfig(endpoint_url="http://localhost:9000/"), client=object())

        assert client.get_object_url("bucket", "a/b c.txt") == "http://localhost:9000/bucket/a/b%20c.txt"
