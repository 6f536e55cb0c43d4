"""Blob storage for photo artifacts."""

from .blob import STORAGE_SUBDIRS, BlobStore, LocalBlobStore
from .exceptions import (
    BlobDeleteError,
    BlobMoveError,
    BlobNotFoundError,
    BlobWriteError,
    RootBoundaryError,
    StorageError,
)

__all__ = [
    "BlobDeleteError",
    "BlobMoveError",
    "BlobNotFoundError",
    "BlobStore",
    "BlobWriteError",
    "LocalBlobStore",
    "RootBoundaryError",
    "STORAGE_SUBDIRS",
    "StorageError",
]
