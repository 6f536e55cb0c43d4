"""Upload ingestion: validation, EXIF extraction, image processing and persistence."""

from .errors import (
    FieldTooLongError,
    FieldValidationError,
    FileTooLargeError,
    IngestError,
    InvalidFileTypeError,
    MagicNumberMismatchError,
    MissingFieldError,
    PathTraversalError,
    PersistenceError,
    TransformError,
    UploadRejected,
)
from .exif_reader import metadata_from_tags, read_metadata
from .paths import ArtifactKind, ArtifactPath, PathGenerator, thumbnail_file_path
from .pipeline import Uploader, parse_tags
from .transformer import ImageTransformer, image_dimensions
from .validator import (
    FILE_SIGNATURES,
    FileValidator,
    Signature,
    image_validator,
    is_allowed_mime_type,
    raw_validator,
    sanitize_filename,
)

__all__ = [
    "ArtifactKind",
    "ArtifactPath",
    "FILE_SIGNATURES",
    "FieldTooLongError",
    "FieldValidationError",
    "FileTooLargeError",
    "FileValidator",
    "ImageTransformer",
    "IngestError",
    "InvalidFileTypeError",
    "MagicNumberMismatchError",
    "MissingFieldError",
    "PathGenerator",
    "PathTraversalError",
    "PersistenceError",
    "Signature",
    "TransformError",
    "UploadRejected",
    "Uploader",
    "image_dimensions",
    "image_validator",
    "is_allowed_mime_type",
    "metadata_from_tags",
    "parse_tags",
    "raw_validator",
    "read_metadata",
    "sanitize_filename",
    "thumbnail_file_path",
]
