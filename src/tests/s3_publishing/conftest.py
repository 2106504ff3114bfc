"""Fixtures for s3_publishing tests."""

import pytest

from s3_publishing.run_config import ProfileConfig
from s3_publishing.storage import ObjectStorageClient
from tests.s3_publishing.fake_s3 import FakeS3Client


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_client(fake_s3) -> ObjectStorageClient:
    return ObjectStorageClient(ProfileConfig(region="eu-central-1"), client=fake_s3)
