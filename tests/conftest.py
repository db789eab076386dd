"""
Shared fixtures.

Storage tests run against MockObjectBackend: it pages, orders and signals
missing objects the way S3 does, without any network.
"""

import pytest

from bucket_storage.core.storage.models import FallbackLocation, StorageOptions
from bucket_storage.core.storage.service import ObjectStorage
from bucket_storage.infrastructure.storage.client import MockObjectBackend

PRIMARY_BUCKET = "deployments"
FALLBACK_BUCKET = "deployments-us-west"


@pytest.fixture
def backend() -> MockObjectBackend:
    return MockObjectBackend()


@pytest.fixture
def options() -> StorageOptions:
    return StorageOptions(bucket=PRIMARY_BUCKET, max_keys=2)


@pytest.fixture
def storage(options: StorageOptions, backend: MockObjectBackend) -> ObjectStorage:
    return ObjectStorage(options, backend)


@pytest.fixture
def fallback_options() -> StorageOptions:
    return StorageOptions(
        bucket=PRIMARY_BUCKET,
        max_keys=2,
        fallback=FallbackLocation(bucket=FALLBACK_BUCKET, region="us-west-2"),
    )


@pytest.fixture
def fallback_storage(
    fallback_options: StorageOptions,
    backend: MockObjectBackend,
) -> ObjectStorage:
    # One in-memory backend holds both buckets
    return ObjectStorage(fallback_options, backend, backend)
