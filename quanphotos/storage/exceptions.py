"""Exception hierarchy for blob storage operations.

StorageError (base)
+-- BlobNotFoundError
+-- BlobWriteError
+-- BlobDeleteError
+-- BlobMoveError
+-- RootBoundaryError   (path escapes the storage root)
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for all blob storage operations.

    Attributes:
        path: The relative storage path involved.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


class BlobNotFoundError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__(path, f"Not found: {path}")


class BlobWriteError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__(path, f"Failed to write file: {path}")


class BlobDeleteError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__(path, f"Failed to delete file: {path}")


class BlobMoveError(StorageError):
    def __init__(self, source: str, destination: str) -> None:
        self.destination = destination
        super().__init__(source, f"Failed to move {source} to {destination}")


class RootBoundaryError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__(path, f"Path escapes the storage root: {path}")
