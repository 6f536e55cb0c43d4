"""Error taxonomy for the ingestion pipeline.

IngestError
+-- UploadRejected            (client-fixable, nothing written)
|   +-- FileTooLargeError
|   +-- InvalidFileTypeError
|   +-- PathTraversalError
|   +-- MagicNumberMismatchError
|   +-- FieldValidationError
|       +-- MissingFieldError
|       +-- FieldTooLongError
+-- TransformError            (decode/encode failure, carries the stage)
+-- PersistenceError          (metadata store failure after compensation)
"""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for the ingestion pipeline."""


class UploadRejected(IngestError):
    """The upload is invalid as submitted; retrying unchanged will fail again."""


class FileTooLargeError(UploadRejected):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"File too large: {size} bytes exceeds {limit}")


class InvalidFileTypeError(UploadRejected):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid file type: {detail}")


class PathTraversalError(UploadRejected):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Path traversal detected in file name {filename!r}")


class MagicNumberMismatchError(UploadRejected):
    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"File content does not match extension .{extension}")


class FieldValidationError(UploadRejected):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class MissingFieldError(FieldValidationError):
    def __init__(self, field: str) -> None:
        super().__init__(field, f"{field} is required")


class FieldTooLongError(FieldValidationError):
    def __init__(self, field: str, limit: int) -> None:
        self.limit = limit
        super().__init__(field, f"{field} must be at most {limit} characters")


class TransformError(IngestError):
    """Image processing failed.

    Attributes:
        stage: `open`, `rotate`, `resize`, `encode-main` or `encode-thumbnail-{name}`.
    """

    def __init__(self, stage: str, cause: BaseException | None = None) -> None:
        self.stage = stage
        message = f"Image processing failed at stage {stage}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class PersistenceError(IngestError):
    """Saving the photo record failed; written artifacts were already removed."""
