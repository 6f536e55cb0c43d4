from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Optional

from pydantic import BaseModel, Field

PHOTO_STATUS_PENDING = "pending"


class ExtractedMetadata(BaseModel):
    """Camera and shooting metadata decoded from EXIF. Every field is optional."""

    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    serial_number: Optional[str] = None

    lens_make: Optional[str] = None
    lens_model: Optional[str] = None
    focal_length: Optional[str] = None
    focal_length_35mm: Optional[str] = None

    aperture: Optional[str] = None
    shutter_speed: Optional[str] = None
    iso: Optional[int] = None
    exposure_mode: Optional[str] = None
    exposure_program: Optional[str] = None
    metering_mode: Optional[str] = None
    white_balance: Optional[str] = None
    flash: Optional[str] = None
    exposure_bias: Optional[str] = None

    taken_at: Optional[datetime] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_altitude: Optional[float] = None

    image_width: Optional[int] = None
    image_height: Optional[int] = None
    orientation: Optional[int] = None
    color_space: Optional[str] = None
    software: Optional[str] = None

    @property
    def has_gps(self) -> bool:
        return self.gps_latitude is not None and self.gps_longitude is not None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class ProcessedImageSet(BaseModel):
    main_path: str
    thumbnail_paths: dict[str, str] = Field(default_factory=dict)
    width: int
    height: int


class NewPhoto(BaseModel):
    """Photo record handed to the metadata store. Optional attributes stay None until the DB boundary."""

    user_id: int
    category_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    file_path: str
    thumbnail_path: Optional[str] = None
    raw_file_path: Optional[str] = None
    file_size: Optional[int] = None
    aircraft_type: Optional[str] = None
    airline: Optional[str] = None
    registration: Optional[str] = None
    airport: Optional[str] = None
    metadata: ExtractedMetadata = Field(default_factory=ExtractedMetadata)
    status: str = PHOTO_STATUS_PENDING


class PersistedPhoto(NewPhoto):
    id: int
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PhotoPaths(BaseModel):
    file_path: str
    thumbnail_path: Optional[str] = None
    raw_file_path: Optional[str] = None


class UploadResult(BaseModel):
    id: int
    status: str = PHOTO_STATUS_PENDING
    title: str
    file_id: str


@dataclass
class UploadedFile:
    """A client file: its declared name and size plus a readable binary stream owned by the caller."""

    filename: str
    size: int
    stream: BinaryIO

    def peek(self, size: int) -> bytes:
        """Read up to `size` leading bytes and restore the stream position."""
        position = self.stream.tell()
        try:
            self.stream.seek(0)
            return self.stream.read(size)
        finally:
            self.stream.seek(position)


@dataclass
class UploadRequest:
    user_id: int
    file: Optional[UploadedFile]
    title: str
    raw_file: Optional[UploadedFile] = None
    description: str = ""
    aircraft_type: str = ""
    airline: str = ""
    registration: str = ""
    airport: str = ""
    category_id: Optional[int] = None
    tags: str = ""
