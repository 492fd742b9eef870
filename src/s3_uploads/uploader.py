"""
Uploaders.

``BasicUploader`` tracks files, hands out ids and uuids, and drives uploads
through a transport handler. ``S3Uploader`` wraps it for direct-to-S3 uploads:
it binds key resolution into every S3 handler it builds and keeps the
resolved keys.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from s3_uploads.errors import FileNotTrackedError
from s3_uploads.handlers import UploadHandler, UploadHandlerFactory
from s3_uploads.keyname import KeyResolver
from s3_uploads.options import LocalOptions, S3Options
from s3_uploads.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    SUBMITTED = "submitted"
    UPLOADING = "uploading"
    UPLOAD_SUCCESSFUL = "upload successful"
    UPLOAD_FAILED = "upload failed"


@dataclass
class UploadRecord:
    id: int
    uuid: str
    name: str
    data: bytes
    status: UploadStatus = UploadStatus.SUBMITTED
    key: Optional[str] = None
    error: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


class BasicUploader:
    """
    Tracks submitted files and uploads them through a handler.

    The handler is built on first use by ``create_handler``; by default files
    are stored in the local storage directory under their own names.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 create_handler: Optional[Callable[[], UploadHandler]] = None):
        self.settings = settings or get_settings()
        self._create_handler = create_handler or self._create_default_handler
        self._uploads: Dict[int, UploadRecord] = {}
        self._handler: Optional[UploadHandler] = None
        # Never rewound, so an id is not reused even across resets
        self._next_id = 0

    def add_file(self, path: Union[str, Path]) -> int:
        path = Path(path)
        return self.add_bytes(path.read_bytes(), path.name)

    def add_bytes(self, data: bytes, name: str) -> int:
        file_id = self._next_id
        self._next_id += 1
        self._uploads[file_id] = UploadRecord(id=file_id, uuid=str(uuid.uuid4()), name=name, data=data)
        logger.info(f"Submitted file {file_id}: {name}")
        return file_id

    def _get(self, file_id: int) -> UploadRecord:
        try:
            return self._uploads[file_id]
        except KeyError:
            raise FileNotTrackedError(file_id) from None

    def get_uuid(self, file_id: int) -> str:
        return self._get(file_id).uuid

    def get_name(self, file_id: int) -> str:
        return self._get(file_id).name

    def get_size(self, file_id: int) -> int:
        return self._get(file_id).size

    def get_status(self, file_id: int) -> UploadStatus:
        return self._get(file_id).status

    def get_uploads(self, status: Optional[UploadStatus] = None) -> List[UploadRecord]:
        return [
            record for _, record in sorted(self._uploads.items())
            if status is None or record.status == status
        ]

    def create_upload_handler(self, options, variant: str, **kwargs) -> UploadHandler:
        """Build the handler for ``variant`` from the given options."""
        logger.info(f"Creating {variant} upload handler")
        return UploadHandlerFactory.get_upload_handler(options, variant, **kwargs)

    def _create_default_handler(self) -> UploadHandler:
        return self.create_upload_handler(LocalOptions.from_settings(self.settings), "local")

    @property
    def handler(self) -> UploadHandler:
        if self._handler is None:
            self._handler = self._create_handler()
        return self._handler

    async def upload(self, file_id: int) -> bool:
        """Upload one file. Failures are recorded on the file, not raised."""
        record = self._get(file_id)
        record.status = UploadStatus.UPLOADING
        try:
            record.key = await self.handler.upload(file_id, record.name, record.data)
        except Exception as e:
            logger.error(f"Upload of {record.name} ({file_id}) failed: {str(e)}")
            record.status = UploadStatus.UPLOAD_FAILED
            record.error = str(e)
            return False

        record.status = UploadStatus.UPLOAD_SUCCESSFUL
        logger.info(f"Uploaded {record.name} ({file_id}) as {record.key}")
        return True

    async def upload_all(self) -> Dict[int, bool]:
        """Upload every submitted file concurrently."""
        ids = [record.id for record in self.get_uploads(UploadStatus.SUBMITTED)]
        results = await asyncio.gather(*(self.upload(file_id) for file_id in ids))
        return dict(zip(ids, results))

    def reset(self) -> None:
        self._uploads = {}
        self._handler = None
        logger.info("Uploader reset")


class S3Uploader:
    """
    Uploads files straight to S3 under keys chosen by the ``keyname`` option.

    Built around a ``BasicUploader`` and only relies on its ``get_uuid``,
    ``create_upload_handler`` and ``reset``. In ``local-dev`` mode objects go
    to the local storage directory under the same keys instead of to S3.
    """

    def __init__(self, s3_options: Optional[S3Options] = None, settings: Optional[Settings] = None,
                 s3_client=None):
        self._s3_options = s3_options or S3Options.from_settings(settings)
        self._s3_client = s3_client
        self._engine = BasicUploader(settings, create_handler=self._create_upload_handler)
        self._key_resolver = KeyResolver(self._s3_options.keyname, self._engine.get_uuid)

    @property
    def engine(self) -> BasicUploader:
        return self._engine

    def get_key(self, file_id: int) -> Optional[str]:
        """Key name associated with the file, if one has been determined."""
        return self._key_resolver.registry.get(file_id)

    def reset(self) -> None:
        self._key_resolver.registry.clear()
        self._engine.reset()

    def _create_upload_handler(self) -> UploadHandler:
        on_get_key_name = self._key_resolver.resolve_key
        if self._engine.settings.deployment_mode == "local-dev":
            options = LocalOptions.from_settings(self._engine.settings)
            options.on_get_key_name = on_get_key_name
            return self._engine.create_upload_handler(options, "local")

        options = self._s3_options.copy(on_get_key_name=on_get_key_name)
        kwargs = {"s3_client": self._s3_client} if self._s3_client is not None else {}
        return self._engine.create_upload_handler(options, "S3", **kwargs)

    def add_file(self, path: Union[str, Path]) -> int:
        return self._engine.add_file(path)

    def add_bytes(self, data: bytes, name: str) -> int:
        return self._engine.add_bytes(data, name)

    def get_uuid(self, file_id: int) -> str:
        return self._engine.get_uuid(file_id)

    def get_name(self, file_id: int) -> str:
        return self._engine.get_name(file_id)

    def get_status(self, file_id: int) -> UploadStatus:
        return self._engine.get_status(file_id)

    def get_uploads(self, status: Optional[UploadStatus] = None) -> List[UploadRecord]:
        return self._engine.get_uploads(status)

    async def upload(self, file_id: int) -> bool:
        return await self._engine.upload(file_id)

    async def upload_all(self) -> Dict[int, bool]:
        return await self._engine.upload_all()
