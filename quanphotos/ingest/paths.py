"""Date-bucketed storage layout.

    {root}/photos/{yyyy}/{mm}/{dd}/{id}.jpg
    {root}/thumbnails/{yyyy}/{mm}/{dd}/{id}_{size}.jpg
    {root}/raw/{yyyy}/{mm}/{dd}/{id}.{ext}
    {root}/temp/{id}.{ext}

The database keeps the relative form (the part after `{root}`). Thumbnails are
recorded by their base path `/thumbnails/.../{id}` without the size suffix.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable

MAIN_IMAGE_EXTENSION = "jpg"


class ArtifactKind(str, Enum):
    PHOTO = "photos"
    THUMBNAIL = "thumbnails"
    RAW = "raw"
    TEMP = "temp"


@dataclass(frozen=True)
class ArtifactPath:
    storage: str
    relative: str


def thumbnail_file_path(base: str, size: str) -> str:
    """Expand a stored thumbnail base path into one size's file path."""
    return f"{base}_{size}.{MAIN_IMAGE_EXTENSION}"


class PathGenerator:
    def __init__(self, root: str | Path) -> None:
        self.root = str(root).rstrip("/\\") or "/"

    @staticmethod
    def date_bucket(when: datetime) -> str:
        return when.strftime("%Y/%m/%d")

    def relative(self, kind: ArtifactKind, when: datetime | None, filename: str) -> str:
        if kind is ArtifactKind.TEMP:
            return f"/{kind.value}/{filename}"
        if when is None:
            raise ValueError(f"{kind.value} paths need a timestamp")
        return f"/{kind.value}/{self.date_bucket(when)}/{filename}"

    def storage(self, relative: str) -> str:
        if self.root == "/":
            return relative
        return self.root + relative

    def _artifact(self, kind: ArtifactKind, when: datetime | None, filename: str) -> ArtifactPath:
        relative = self.relative(kind, when, filename)
        return ArtifactPath(storage=self.storage(relative), relative=relative)

    def photo(self, when: datetime, file_id: str) -> ArtifactPath:
        return self._artifact(ArtifactKind.PHOTO, when, f"{file_id}.{MAIN_IMAGE_EXTENSION}")

    def thumbnail_base(self, when: datetime, file_id: str) -> ArtifactPath:
        return self._artifact(ArtifactKind.THUMBNAIL, when, file_id)

    def thumbnail(self, when: datetime, file_id: str, size: str) -> ArtifactPath:
        return self._artifact(
            ArtifactKind.THUMBNAIL, when, f"{file_id}_{size}.{MAIN_IMAGE_EXTENSION}"
        )

    def thumbnails(self, when: datetime, file_id: str, sizes: Iterable[str]) -> dict[str, ArtifactPath]:
        return {size: self.thumbnail(when, file_id, size) for size in sizes}

    def raw(self, when: datetime, file_id: str, extension: str) -> ArtifactPath:
        return self._artifact(ArtifactKind.RAW, when, f"{file_id}.{extension.lstrip('.').lower()}")

    def temp(self, file_id: str, extension: str) -> ArtifactPath:
        return self._artifact(ArtifactKind.TEMP, None, f"{file_id}.{extension.lstrip('.').lower()}")

    def directory(self, kind: ArtifactKind, when: datetime) -> str:
        """Storage directory for one date bucket."""
        return self.storage(f"/{kind.value}/{self.date_bucket(when)}")
