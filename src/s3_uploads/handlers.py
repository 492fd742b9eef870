import logging
import mimetypes
from pathlib import Path
from typing import Optional

import boto3

try:
    from mypy_boto3_s3 import S3Client
except ImportError:
    ...

from s3_uploads.options import LocalOptions, S3Options

logger = logging.getLogger(__name__)


def guess_content_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    return content_type or "application/octet-stream"


class UploadHandler:
    """Base class for upload transports (to be extended by specific implementations)"""

    def __init__(self, options):
        self.options = options

    async def get_key_name(self, file_id: int, name: str) -> str:
        """Key for the file, from the bound key name callback if there is one."""
        on_get_key_name = getattr(self.options, "on_get_key_name", None)
        if on_get_key_name is None:
            return name
        return await on_get_key_name(file_id, name)

    async def upload(self, file_id: int, name: str, data: bytes) -> str:
        raise NotImplementedError


class LocalUploadHandler(UploadHandler):
    """Stores uploads in a local directory"""

    def __init__(self, options: LocalOptions):
        super().__init__(options)
        self.storage_dir = Path(options.storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        logger.info("LocalUploadHandler initialized at: %s", self.storage_dir)

    async def upload(self, file_id: int, name: str, data: bytes) -> str:
        key = await self.get_key_name(file_id, name)
        dest_path = self.storage_dir / key
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(data)
        logger.info(f"Stored file {file_id} as {dest_path}")
        return key


class S3UploadHandler(UploadHandler):
    """Uploads straight to an S3 bucket once the object key is known"""

    def __init__(self, options: S3Options, s3_client: Optional["S3Client"] = None):
        super().__init__(options)
        if options.on_get_key_name is None:
            raise ValueError("S3 uploads need an on_get_key_name callback")
        self.s3 = s3_client or boto3.client(
            "s3",
            region_name=options.region,
            endpoint_url=options.endpoint_url,
            aws_access_key_id=options.access_key,
            aws_secret_access_key=options.secret_key,
        )
        logger.info("S3UploadHandler initialized")
        logger.info(f"  Bucket: {options.bucket}")
        logger.info(f"  Endpoint: {options.endpoint_url}")

    async def upload(self, file_id: int, name: str, data: bytes) -> str:
        # A failed key resolution propagates here and nothing is written
        key = await self.get_key_name(file_id, name)
        self.s3.put_object(
            Bucket=self.options.bucket,
            Key=key,
            Body=data,
            ACL=self.options.acl,
            ContentType=guess_content_type(name),
        )
        logger.info(f"Uploaded file {file_id} to s3://{self.options.bucket}/{key}")
        return key


class UploadHandlerFactory:
    """Factory to initialize the correct upload handler for a transport variant"""

    handler_classes = {
        "local": LocalUploadHandler,
        "S3": S3UploadHandler,
    }

    @staticmethod
    def get_upload_handler(options, variant: str, **kwargs) -> UploadHandler:
        if variant not in UploadHandlerFactory.handler_classes:
            raise ValueError(f"Invalid upload variant: {variant}. Choose from {list(UploadHandlerFactory.handler_classes.keys())}")
        return UploadHandlerFactory.handler_classes[variant](options, **kwargs)
