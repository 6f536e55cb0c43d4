"""Upload validation: size, extension allow-list, file name safety and content signatures.

Signatures are kept as a declarative table of extension -> (offset, magic bytes)
pairs. A file passes the signature check when any listed pair matches.
Extensions without an entry skip the check.

Known gap: cr2, nef, arw and dng are accepted on a bare TIFF header, so any
TIFF file can pass as one of them. Telling them apart needs maker-note
inspection, which is not done here.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from quanphotos.core.models import UploadedFile

from .errors import (
    FileTooLargeError,
    InvalidFileTypeError,
    MagicNumberMismatchError,
    PathTraversalError,
)

HEADER_SIZE = 16


@dataclass(frozen=True)
class Signature:
    offset: int
    magic: bytes

    def matches(self, header: bytes) -> bool:
        end = self.offset + len(self.magic)
        return end <= len(header) and header[self.offset:end] == self.magic


_JPEG = (Signature(0, b"\xff\xd8\xff"),)
_TIFF_LE = Signature(0, b"II*\x00")
_TIFF_BE = Signature(0, b"MM\x00*")
_TIFF = (_TIFF_LE, _TIFF_BE)

FILE_SIGNATURES: Mapping[str, tuple[Signature, ...]] = {
    "jpg": _JPEG,
    "jpeg": _JPEG,
    "png": (Signature(0, b"\x89PNG\r\n\x1a\n"),),
    "gif": (Signature(0, b"GIF8"),),
    "webp": (Signature(0, b"RIFF"),),
    "bmp": (Signature(0, b"BM"),),
    "tiff": _TIFF,
    "tif": _TIFF,
    # RAW formats
    "cr2": (_TIFF_LE,),
    "cr3": (Signature(4, b"ftyp"),),
    "nef": (_TIFF_BE,),
    "arw": (_TIFF_LE,),
    "raf": (Signature(0, b"FUJI"),),
    "orf": (Signature(0, b"IIRO"),),
    "rw2": (Signature(0, b"IIU\x00"),),
    "dng": _TIFF,
}

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif"})
RAW_EXTENSIONS = frozenset({"cr2", "cr3", "nef", "arw", "raf", "orf", "rw2", "dng"})

# Canonical content type per extension, used when sniffing staged files.
CONTENT_TYPES = {
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "bmp": "bmp",
    "tiff": "tiff",
    "tif": "tiff",
}

ALLOWED_IMAGE_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
    "image/tiff",
    "image/x-canon-cr2",
    "image/x-canon-cr3",
    "image/x-nikon-nef",
    "image/x-sony-arw",
    "image/x-fuji-raf",
    "image/x-olympus-orf",
    "image/x-panasonic-rw2",
    "image/x-adobe-dng",
    "application/octet-stream",
)


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    _, ext = posixpath.splitext(filename.replace("\\", "/"))
    return ext.lstrip(".").lower()


def matches_signature(
    extension: str,
    header: bytes,
    signatures: Mapping[str, Iterable[Signature]] = FILE_SIGNATURES,
) -> Optional[bool]:
    """True/False for a table match, None when the extension has no table entry."""
    entries = signatures.get(extension)
    if entries is None:
        return None
    return any(sig.matches(header) for sig in entries)


def sniff_content_type(
    header: bytes,
    allowed: Iterable[str],
    signatures: Mapping[str, Iterable[Signature]] = FILE_SIGNATURES,
) -> Optional[str]:
    """Identify the real type of `header` among the allowed extensions.

    Only extensions with a signature entry can be identified.
    """
    for ext in sorted(set(allowed)):
        if matches_signature(ext, header, signatures):
            return CONTENT_TYPES.get(ext, ext)
    return None


class FileValidator:
    def __init__(
        self,
        max_size: int,
        allowed_extensions: Iterable[str],
        *,
        check_signatures: bool = True,
        signatures: Mapping[str, Iterable[Signature]] = FILE_SIGNATURES,
    ) -> None:
        self.max_size = max_size
        self.allowed_extensions = frozenset(ext.lower().lstrip(".") for ext in allowed_extensions)
        self.check_signatures = check_signatures
        self.signatures = signatures

    def validate(self, filename: str, size: int, read_header: Callable[[int], bytes]) -> str:
        """Run every check in order and return the accepted extension.

        `read_header(n)` must return up to n leading bytes of the content
        without disturbing the caller's stream.
        """
        if size > self.max_size:
            raise FileTooLargeError(size, self.max_size)

        ext = file_extension(filename)
        if ext not in self.allowed_extensions:
            raise InvalidFileTypeError(f".{ext}" if ext else "missing extension")

        check_path_traversal(filename)

        if self.check_signatures:
            matched = matches_signature(ext, read_header(HEADER_SIZE), self.signatures)
            if matched is False:
                raise MagicNumberMismatchError(ext)
        return ext

    def validate_upload(self, upload: UploadedFile) -> str:
        return self.validate(upload.filename, upload.size, upload.peek)


def check_path_traversal(filename: str) -> None:
    if "/" in filename or "\\" in filename:
        raise PathTraversalError(filename)
    cleaned = posixpath.normpath(filename)
    if ".." in cleaned or cleaned.startswith("."):
        raise PathTraversalError(filename)


def image_validator(
    max_size: int,
    allowed_extensions: Iterable[str] = IMAGE_EXTENSIONS,
    *,
    check_signatures: bool = True,
) -> FileValidator:
    return FileValidator(max_size, allowed_extensions, check_signatures=check_signatures)


def raw_validator(
    max_size: int,
    allowed_extensions: Iterable[str] = RAW_EXTENSIONS,
    *,
    check_signatures: bool = True,
) -> FileValidator:
    return FileValidator(max_size, allowed_extensions, check_signatures=check_signatures)


def is_allowed_mime_type(content_type: str, allowed: Iterable[str] = ALLOWED_IMAGE_MIME_TYPES) -> bool:
    mime_type = content_type.split(";", 1)[0].strip().lower()
    return mime_type in set(allowed)


_UNSAFE_CHARS = re.compile(r'(\.\.|[/\\<>:"|?*\x00])')


def sanitize_filename(filename: str) -> str:
    """Strip separators and reserved characters, keeping the extension."""
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    stem, ext = posixpath.splitext(base)
    stem = _UNSAFE_CHARS.sub("", stem)[:200]
    return (stem or "file") + ext
