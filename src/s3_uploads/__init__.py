"""
Direct-to-S3 uploads with per-file object key resolution.

The key for every file is decided before its transfer starts, either from the
file's uuid, its original name, or an integrator-supplied function that may
answer later through a future.
"""

from s3_uploads.keyname import Deferred, Immediate, KeyRegistry, KeyResolver
from s3_uploads.options import S3Options
from s3_uploads.uploader import BasicUploader, S3Uploader, UploadStatus

__all__ = [
    "BasicUploader",
    "Deferred",
    "Immediate",
    "KeyRegistry",
    "KeyResolver",
    "S3Options",
    "S3Uploader",
    "UploadStatus",
]
