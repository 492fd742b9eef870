"""Exceptions raised or delivered through futures by the uploader."""


class UploaderError(Exception):
    """Base class for uploader errors."""


class KeyNameError(UploaderError):
    """The object key for a file could not be determined."""

    def __init__(self, file_id: int, message: str = ""):
        self.file_id = file_id
        super().__init__(message or f"Failed to retrieve key name for {file_id}")


class FileNotTrackedError(UploaderError, KeyError):
    """The id does not reference a file known to the uploader."""

    def __init__(self, file_id: int):
        self.file_id = file_id
        super().__init__(f"No file with id {file_id}")

    def __str__(self) -> str:
        return self.args[0]
