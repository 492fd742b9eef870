"""Options handed to the S3 upload handler."""
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from s3_uploads.settings import Settings, get_settings

# 'uuid', 'filename', or a function of the file id, which may answer later
KeyNameOption = Any


@dataclass
class S3Options:
    bucket: str
    acl: str = "private"
    keyname: KeyNameOption = "uuid"
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    # Bound by S3Uploader when a handler is created
    on_get_key_name: Optional[Callable] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "S3Options":
        """Build options from settings; keyword overrides win."""
        settings = settings or get_settings()
        options = cls(
            bucket=settings.s3_bucket_name,
            acl=settings.s3_acl,
            keyname=settings.s3_keyname,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            access_key=settings.aws_access_key_id,
            secret_key=settings.aws_secret_access_key,
        )
        return replace(options, **overrides) if overrides else options

    def copy(self, **changes) -> "S3Options":
        return replace(self, **changes)


@dataclass
class LocalOptions:
    storage_dir: str
    on_get_key_name: Optional[Callable] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LocalOptions":
        settings = settings or get_settings()
        return cls(storage_dir=settings.storage_dir)
