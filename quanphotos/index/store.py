from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from sqlalchemy import bindparam, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from quanphotos.core.models import ExtractedMetadata, NewPhoto, PersistedPhoto, PhotoPaths

from .schema import PhotoRow, TagRow, photo_tags

logger = logging.getLogger(__name__)

EXIF_PREFIX = "exif_"
# Columns update_photo_details may change; None keeps the stored value.
EDITABLE_COLUMNS = (
    "title",
    "description",
    "category_id",
    "aircraft_type",
    "airline",
    "registration",
    "airport",
)


class MetadataStore(Protocol):
    def create_photo_with_tags(self, record: NewPhoto, tag_names: Iterable[str]) -> int:
        ...

    def delete_photo(self, photo_id: int) -> Optional[PhotoPaths]:
        ...


def _photo_columns(record: NewPhoto) -> dict[str, object]:
    values = record.model_dump(exclude={"metadata"})
    for name, value in record.metadata.model_dump().items():
        values[EXIF_PREFIX + name] = value
    return values


def _build_photo_model(row: PhotoRow) -> PersistedPhoto:
    metadata = ExtractedMetadata(
        **{name: getattr(row, EXIF_PREFIX + name) for name in ExtractedMetadata.model_fields}
    )
    return PersistedPhoto(
        id=row.id,
        user_id=row.user_id,
        category_id=row.category_id,
        title=row.title,
        description=row.description,
        file_path=row.file_path,
        thumbnail_path=row.thumbnail_path,
        raw_file_path=row.raw_file_path,
        file_size=row.file_size,
        aircraft_type=row.aircraft_type,
        airline=row.airline,
        registration=row.registration,
        airport=row.airport,
        metadata=metadata,
        status=row.status,
        tags=[tag.name for tag in row.tags],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _insert_ignore(session: Session, table, values: dict[str, object], keys: list[str]) -> bool:
    """Insert unless a row with the same keys exists. False when the dialect has no ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table)
    else:
        return False
    session.execute(stmt.values(**values).on_conflict_do_nothing(index_elements=keys))
    return True


def get_or_create_tag(session: Session, name: str) -> int:
    """Resolve a tag id, creating the row if needed. Safe against concurrent creators."""
    if _insert_ignore(session, TagRow.__table__, {"name": name}, ["name"]):
        return session.scalar(select(TagRow.id).where(TagRow.name == name))

    existing = session.scalar(select(TagRow.id).where(TagRow.name == name))
    if existing is not None:
        return existing
    try:
        with session.begin_nested():
            tag = TagRow(name=name)
            session.add(tag)
        return tag.id
    except IntegrityError:
        # Another transaction created it between the select and the insert.
        return session.scalar(select(TagRow.id).where(TagRow.name == name))


def link_tag(session: Session, photo_id: int, tag_id: int) -> None:
    values = {"photo_id": photo_id, "tag_id": tag_id}
    if _insert_ignore(session, photo_tags, values, ["photo_id", "tag_id"]):
        return
    linked = session.scalar(
        select(func.count())
        .select_from(photo_tags)
        .where(photo_tags.c.photo_id == photo_id, photo_tags.c.tag_id == tag_id)
    )
    if not linked:
        session.execute(insert(photo_tags).values(**values))


class PhotoStore:
    """Metadata Store backed by SQLAlchemy."""

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def create_photo_with_tags(self, record: NewPhoto, tag_names: Iterable[str]) -> int:
        """Insert the photo row and link every tag in one transaction."""
        names = list(dict.fromkeys(name for name in tag_names if name))
        with self._sessions() as session, session.begin():
            row = PhotoRow(**_photo_columns(record))
            session.add(row)
            session.flush()
            for name in names:
                link_tag(session, row.id, get_or_create_tag(session, name))
            photo_id = row.id
        logger.debug("Created photo %s with %d tags", photo_id, len(names))
        return photo_id

    def load_photo(self, photo_id: int) -> Optional[PersistedPhoto]:
        with self._sessions() as session:
            row = session.get(PhotoRow, photo_id)
            if row is None:
                return None
            return _build_photo_model(row)

    def get_file_paths(self, photo_id: int) -> Optional[PhotoPaths]:
        with self._sessions() as session:
            found = session.execute(
                select(PhotoRow.file_path, PhotoRow.thumbnail_path, PhotoRow.raw_file_path).where(
                    PhotoRow.id == photo_id
                )
            ).first()
        if found is None:
            return None
        return PhotoPaths(
            file_path=found.file_path,
            thumbnail_path=found.thumbnail_path,
            raw_file_path=found.raw_file_path,
        )

    def update_photo_details(self, photo_id: int, **fields: object) -> bool:
        """Update editable columns; a field left out or passed as None keeps its stored value.

        The statement always has the same shape: every editable column is
        written as COALESCE(:new_value, column).
        """
        unknown = set(fields) - set(EDITABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        values = {}
        for name in EDITABLE_COLUMNS:
            column = PhotoRow.__table__.c[name]
            values[name] = func.coalesce(
                bindparam(f"new_{name}", fields.get(name), type_=column.type), column
            )
        values["updated_at"] = func.now()

        with self._sessions() as session, session.begin():
            result = session.execute(
                update(PhotoRow)
                .where(PhotoRow.id == photo_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def delete_photo(self, photo_id: int) -> Optional[PhotoPaths]:
        """Delete the row and its tag links; returns the artifact paths it referenced."""
        with self._sessions() as session, session.begin():
            row = session.get(PhotoRow, photo_id)
            if row is None:
                return None
            paths = PhotoPaths(
                file_path=row.file_path,
                thumbnail_path=row.thumbnail_path,
                raw_file_path=row.raw_file_path,
            )
            session.delete(row)
        return paths
