from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


photo_tags = Table(
    "photo_tags",
    Base.metadata,
    Column(
        "photo_id",
        Integer,
        ForeignKey("photos.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PhotoRow(Base):
    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String)
    raw_file_path: Mapped[Optional[str]] = mapped_column(String)
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    aircraft_type: Mapped[Optional[str]] = mapped_column(String)
    airline: Mapped[Optional[str]] = mapped_column(String)
    registration: Mapped[Optional[str]] = mapped_column(String)
    airport: Mapped[Optional[str]] = mapped_column(String)

    exif_camera_make: Mapped[Optional[str]] = mapped_column(String)
    exif_camera_model: Mapped[Optional[str]] = mapped_column(String)
    exif_serial_number: Mapped[Optional[str]] = mapped_column(String)
    exif_lens_make: Mapped[Optional[str]] = mapped_column(String)
    exif_lens_model: Mapped[Optional[str]] = mapped_column(String)
    exif_focal_length: Mapped[Optional[str]] = mapped_column(String)
    exif_focal_length_35mm: Mapped[Optional[str]] = mapped_column(String)
    exif_aperture: Mapped[Optional[str]] = mapped_column(String)
    exif_shutter_speed: Mapped[Optional[str]] = mapped_column(String)
    exif_iso: Mapped[Optional[int]] = mapped_column(Integer)
    exif_exposure_mode: Mapped[Optional[str]] = mapped_column(String)
    exif_exposure_program: Mapped[Optional[str]] = mapped_column(String)
    exif_metering_mode: Mapped[Optional[str]] = mapped_column(String)
    exif_white_balance: Mapped[Optional[str]] = mapped_column(String)
    exif_flash: Mapped[Optional[str]] = mapped_column(String)
    exif_exposure_bias: Mapped[Optional[str]] = mapped_column(String)
    exif_taken_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    exif_gps_latitude: Mapped[Optional[float]] = mapped_column(Float)
    exif_gps_longitude: Mapped[Optional[float]] = mapped_column(Float)
    exif_gps_altitude: Mapped[Optional[float]] = mapped_column(Float)
    exif_image_width: Mapped[Optional[int]] = mapped_column(Integer)
    exif_image_height: Mapped[Optional[int]] = mapped_column(Integer)
    exif_orientation: Mapped[Optional[int]] = mapped_column(Integer)
    exif_color_space: Mapped[Optional[str]] = mapped_column(String)
    exif_software: Mapped[Optional[str]] = mapped_column(String)

    status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    tags: Mapped[list["TagRow"]] = relationship(
        secondary=photo_tags, back_populates="photos", order_by="TagRow.name"
    )


class TagRow(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    photos: Mapped[list[PhotoRow]] = relationship(secondary=photo_tags, back_populates="tags")


def _enable_sqlite_foreign_keys(dbapi_connection: object, _: object) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str) -> Engine:
    engine = create_engine(database_url, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(database_url: str | Engine) -> Engine:
    engine = (
        database_url if isinstance(database_url, Engine) else create_engine_from_url(database_url)
    )
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session, future=True)
