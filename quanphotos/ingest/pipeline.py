from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional
from uuid import uuid4

from quanphotos.core.config import IngestConfig
from quanphotos.core.models import (
    ExtractedMetadata,
    NewPhoto,
    PHOTO_STATUS_PENDING,
    UploadedFile,
    UploadRequest,
    UploadResult,
)
from quanphotos.index.store import MetadataStore
from quanphotos.storage import BlobStore, StorageError

from .errors import (
    FieldTooLongError,
    InvalidFileTypeError,
    MissingFieldError,
    PersistenceError,
    UploadRejected,
)
from .exif_reader import read_metadata
from .paths import ArtifactPath, PathGenerator, thumbnail_file_path
from .transformer import ImageTransformer
from .validator import HEADER_SIZE, FileValidator, image_validator, raw_validator, sniff_content_type

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


def parse_tags(raw: str | None) -> list[str]:
    """Split a comma-separated tag list, dropping blanks and repeats."""
    if not raw:
        return []
    names = (part.strip() for part in raw.split(","))
    return list(dict.fromkeys(name for name in names if name))


def _optional(value: str | None) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _new_file_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Uploader:
    """Runs one upload end to end: validate, stage, extract, transform, persist.

    Files are written before the database row; if saving the row fails every
    written file is removed again before the error reaches the caller.
    Storage paths always resolve under the blob store's root.
    """

    def __init__(
        self,
        store: MetadataStore,
        blobs: BlobStore,
        config: IngestConfig | None = None,
        *,
        paths: PathGenerator | None = None,
        transformer: ImageTransformer | None = None,
        id_factory: Callable[[], str] = _new_file_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.config = config or IngestConfig()
        self.paths = paths or PathGenerator(blobs.root)
        if Path(self.paths.root).resolve() != Path(blobs.root).resolve():
            raise ValueError(
                f"Path generator root {self.paths.root!r} does not match blob store root {str(blobs.root)!r}"
            )
        self.transformer = transformer or ImageTransformer(self.config.processor)
        self.image_validator: FileValidator = image_validator(
            self.config.max_upload_size,
            self.config.image_types,
            check_signatures=self.config.check_signatures,
        )
        self.raw_validator: FileValidator = raw_validator(
            self.config.max_upload_size,
            self.config.raw_types,
            check_signatures=self.config.check_signatures,
        )
        self._new_id = id_factory
        self._clock = clock

    def upload(self, request: UploadRequest) -> UploadResult:
        title, description = self._check_fields(request)
        upload = request.file
        if upload is None:
            raise MissingFieldError("file")
        try:
            ext = self.image_validator.validate_upload(upload)
        except UploadRejected as exc:
            logger.warning("Rejected upload %r: %s", upload.filename, exc)
            raise

        file_id = self._new_id()
        temp = self.paths.temp(file_id, ext)
        upload.stream.seek(0)
        self.blobs.write(temp.relative, upload.stream)
        try:
            self._check_staged_type(temp, upload.filename)
            photo_id = self._ingest(request, title, description, file_id, temp)
        finally:
            self._discard([temp.relative])

        logger.info("Stored photo %s (file id %s)", photo_id, file_id)
        return UploadResult(id=photo_id, status=PHOTO_STATUS_PENDING, title=title, file_id=file_id)

    def delete(self, photo_id: int) -> bool:
        """Delete a photo record, then its main image, thumbnails and RAW file."""
        paths = self.store.delete_photo(photo_id)
        if paths is None:
            return False
        targets = [paths.file_path]
        if paths.thumbnail_path:
            # every size on disk, including ones no longer configured
            targets.extend(self.blobs.glob(thumbnail_file_path(paths.thumbnail_path, "*")))
        if paths.raw_file_path:
            targets.append(paths.raw_file_path)
        self._discard(targets)
        logger.info("Deleted photo %s", photo_id)
        return True

    def _check_fields(self, request: UploadRequest) -> tuple[str, Optional[str]]:
        title = (request.title or "").strip()
        if not title:
            raise MissingFieldError("title")
        if len(title) > TITLE_MAX_LENGTH:
            raise FieldTooLongError("title", TITLE_MAX_LENGTH)
        description = _optional(request.description)
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise FieldTooLongError("description", DESCRIPTION_MAX_LENGTH)
        return title, description

    def _check_staged_type(self, temp: ArtifactPath, filename: str) -> str:
        with open(temp.storage, "rb") as staged:
            header = staged.read(HEADER_SIZE)
        content_type = sniff_content_type(header, self.config.image_types)
        if content_type is None:
            logger.warning("Rejected upload %r: content is not an allowed image type", filename)
            raise InvalidFileTypeError("content is not an allowed image type")
        return content_type

    def _ingest(
        self,
        request: UploadRequest,
        title: str,
        description: Optional[str],
        file_id: str,
        temp: ArtifactPath,
    ) -> int:
        try:
            metadata = read_metadata(temp.storage)
        except Exception as exc:
            logger.warning("Metadata extraction failed for %s: %s", file_id, exc)
            metadata = ExtractedMetadata()

        now = self._clock()
        main = self.paths.photo(now, file_id)
        thumbnails = self.paths.thumbnails(now, file_id, self.config.processor.thumbnail_names)
        written = [main.relative] + [path.relative for path in thumbnails.values()]

        photo_id: Optional[int] = None
        try:
            processed = self.transformer.process(
                temp.storage,
                main.storage,
                {name: path.storage for name, path in thumbnails.items()},
                metadata.orientation,
            )

            raw_path = self._store_raw(request.raw_file, file_id, now)
            if raw_path is not None:
                written.append(raw_path)

            record = NewPhoto(
                user_id=request.user_id,
                category_id=request.category_id if request.category_id and request.category_id > 0 else None,
                title=title,
                description=description,
                file_path=main.relative,
                thumbnail_path=self.paths.thumbnail_base(now, file_id).relative,
                raw_file_path=raw_path,
                file_size=self._file_size(processed.main_path),
                aircraft_type=_optional(request.aircraft_type),
                airline=_optional(request.airline),
                registration=_optional(request.registration),
                airport=_optional(request.airport),
                metadata=metadata.model_copy(
                    update={"image_width": processed.width, "image_height": processed.height}
                ),
                status=PHOTO_STATUS_PENDING,
            )

            try:
                photo_id = self.store.create_photo_with_tags(record, parse_tags(request.tags))
            except Exception as exc:
                logger.error("Saving photo %s failed, removing its files: %s", file_id, exc)
                raise PersistenceError(f"Failed to save photo {file_id}") from exc
        finally:
            if photo_id is None:
                self._discard(written)
        return photo_id

    def _store_raw(self, raw: Optional[UploadedFile], file_id: str, now: datetime) -> Optional[str]:
        """Copy the RAW file next to the photo. Any failure only drops the RAW file."""
        if raw is None:
            return None
        try:
            ext = self.raw_validator.validate_upload(raw)
            target = self.paths.raw(now, file_id, ext)
            raw.stream.seek(0)
            self.blobs.write(target.relative, raw.stream)
        except (UploadRejected, StorageError, OSError) as exc:
            logger.warning("Skipping RAW file %r for %s: %s", raw.filename, file_id, exc)
            return None
        return target.relative

    @staticmethod
    def _file_size(path: str) -> Optional[int]:
        try:
            return os.path.getsize(path)
        except OSError:
            return None

    def _discard(self, paths: Iterable[str]) -> None:
        for path in paths:
            try:
                self.blobs.delete(path)
            except StorageError as exc:
                logger.warning("Could not remove %s: %s", path, exc)
