"""Tests for the object listing index."""

from unittest.mock import AsyncMock

import pytest

from s3_publishing.constants import LISTING_MAX_ATTEMPTS
from s3_publishing.exceptions import StorageTransportError
from s3_publishing.storage import ObjectListingPage, build_object_index
from tests.s3_publishing.fake_s3 import StoredObject, client_error


def _fill(fake_s3, bucket: str, keys: list[str]) -> None:
    for key in keys:
        fake_s3.bucket(bucket)[key] = StoredObject(b"x")


@pytest.mark.asyncio
async def test_follows_continuation_tokens(s3_client, fake_s3):
    fake_s3.page_size = 2
    keys = [f"prefix/{i}.txt" for i in range(5)]
    _fill(fake_s3, "bucket", keys + ["other/ignored.txt"])

    index = await build_object_index(s3_client, "bucket", "prefix/")

    assert index.keys == set(keys)
    assert (index.bucket, index.prefix) == ("bucket", "prefix/")
    listing_calls = fake_s3.calls_to("list_objects_v2")
    assert len(listing_calls) == 3
    assert [call["ContinuationToken"] for call in listing_calls] == [None, "2", "4"]


@pytest.mark.asyncio
async def test_empty_bucket_gives_empty_index(s3_client):
    index = await build_object_index(s3_client, "empty")

    assert len(index) == 0
    assert "anything" not in index


@pytest.mark.asyncio
async def test_transient_failure_is_retried(s3_client, fake_s3):
    _fill(fake_s3, "bucket", ["a", "b"])
    fake_s3.list_failures.append(client_error("InternalError", "ListObjectsV2"))

    index = await build_object_index(s3_client, "bucket")

    assert index.keys == {"a", "b"}
    assert len(fake_s3.calls_to("list_objects_v2")) == 2


@pytest.mark.asyncio
async def test_persistent_failure_aborts(s3_client, fake_s3):
    fake_s3.failures["list_objects_v2"] = client_error("AccessDenied", "ListObjectsV2")

    with pytest.raises(StorageTransportError):
        await build_object_index(s3_client, "bucket")

    assert len(fake_s3.calls_to("list_objects_v2")) == LISTING_MAX_ATTEMPTS


@pytest.mark.asyncio
async def test_truncated_page_without_token_aborts():
    client = AsyncMock()
    client.list_objects_page.return_value = ObjectListingPage(keys=["a"], is_truncated=True, next_token=None)

    with pytest.raises(StorageTransportError, match="no continuation token"):
        await build_object_index(client, "bucket")


@pytest.mark.asyncio
async def test_index_mutation(s3_client, fake_s3):
    _fill(fake_s3, "bucket", ["a"])
    index = await build_object_index(s3_client, "bucket")

    index.add("b")
    index.discard("a")
    index.discard("missing")

    assert sorted(index) == ["b"]
