"""Uploader fixtures for tests."""
import pytest

from s3_uploads.options import S3Options
from s3_uploads.settings import Settings, get_settings
from tests.consts import TEST_BUCKET_NAME, TEST_REGION


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        deployment_mode="aws-prod",
        aws_region=TEST_REGION,
        s3_bucket_name=TEST_BUCKET_NAME,
        storage_dir=str(tmp_path / "storage"),
    )


@pytest.fixture
def s3_options():
    return S3Options(bucket=TEST_BUCKET_NAME, region=TEST_REGION)


@pytest.fixture
def uuids():
    """Stand-in uuid accessor for resolver tests."""
    known = {0: "0b5d7c1e-uuid-zero", 1: "5f1c2a9d-uuid-one", 2: "9e3b4f70-uuid-two"}
    return known.__getitem__
