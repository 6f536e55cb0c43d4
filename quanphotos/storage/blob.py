from __future__ import annotations

import logging
import os
import posixpath
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol

from .exceptions import (
    BlobDeleteError,
    BlobMoveError,
    BlobNotFoundError,
    BlobWriteError,
    RootBoundaryError,
)

logger = logging.getLogger(__name__)

STORAGE_SUBDIRS = ("photos", "thumbnails", "raw", "temp")
_COPY_CHUNK = 1024 * 1024


class BlobStore(Protocol):
    """File storage addressed by relative paths such as `/photos/2024/05/17/<id>.jpg`.

    `root` is the local directory the relative paths resolve under; image
    processing reads and writes there directly.
    """

    root: Path

    def write(self, path: str, data: bytes | BinaryIO) -> None:
        ...

    def move(self, source: str, destination: str) -> None:
        ...

    def delete(self, path: str) -> bool:
        ...

    def exists(self, path: str) -> bool:
        ...

    def glob(self, pattern: str) -> list[str]:
        ...


class LocalBlobStore:
    """Blob store rooted at a local directory."""

    def __init__(self, root: str | Path, base_url: str = "") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        for subdir in STORAGE_SUBDIRS:
            (self.root / subdir).mkdir(parents=True, exist_ok=True)

    def absolute_path(self, path: str) -> Path:
        relative = path.lstrip("/")
        resolved = (self.root / relative).resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise RootBoundaryError(path)
        return resolved

    def url(self, path: str) -> str:
        if not self.base_url:
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def write(self, path: str, data: bytes | BinaryIO) -> None:
        """Write bytes or a binary stream; a failed write leaves no partial file."""
        target = self.absolute_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as outfile:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    outfile.write(data)
                else:
                    shutil.copyfileobj(data, outfile, _COPY_CHUNK)
        except OSError as exc:
            target.unlink(missing_ok=True)
            raise BlobWriteError(path) from exc

    def move(self, source: str, destination: str) -> None:
        src = self.absolute_path(source)
        dst = self.absolute_path(destination)
        if not src.exists():
            raise BlobNotFoundError(source)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            os.replace(src, dst)
        except OSError as exc:
            raise BlobMoveError(source, destination) from exc
        logger.debug("Moved %s to %s", source, destination)

    def delete(self, path: str) -> bool:
        """Remove a file. Returns False when it was already absent."""
        target = self.absolute_path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobDeleteError(path) from exc
        logger.debug("Deleted %s", path)
        return True

    def exists(self, path: str) -> bool:
        return self.absolute_path(path).is_file()

    def glob(self, pattern: str) -> list[str]:
        """Relative paths of files matching a name pattern inside one directory."""
        parent, name = posixpath.split(pattern)
        directory = self.absolute_path(parent or "/")
        if not directory.is_dir():
            return []
        root = self.root.resolve()
        return sorted(
            "/" + match.relative_to(root).as_posix()
            for match in directory.glob(name)
            if match.is_file()
        )
