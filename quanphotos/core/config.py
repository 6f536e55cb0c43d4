from __future__ import annotations

import os
from dataclasses import dataclass, field

from .env import env_bool, env_int, env_list

DEFAULT_IMAGE_TYPES = ["jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif"]
DEFAULT_RAW_TYPES = ["cr2", "cr3", "nef", "arw", "raf", "orf", "rw2", "dng"]
DEFAULT_MAX_UPLOAD_SIZE = 50 * 1024 * 1024
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./quanphotos.db"


def _check_quality(name: str, quality: int) -> None:
    if not 1 <= quality <= 100:
        raise ValueError(f"{name} quality must be within 1-100, got {quality}")


@dataclass(frozen=True)
class ThumbnailSpec:
    """One fixed-size rendition. The name becomes the file suffix (`{id}_{name}.jpg`)."""

    name: str
    width: int
    height: int
    quality: int

    def __post_init__(self) -> None:
        if not self.name or not self.name.isalnum():
            raise ValueError(f"Thumbnail name must be alphanumeric, got {self.name!r}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Thumbnail {self.name} needs positive dimensions")
        _check_quality(f"Thumbnail {self.name}", self.quality)


DEFAULT_THUMBNAIL_SPECS: tuple[ThumbnailSpec, ...] = (
    ThumbnailSpec(name="sm", width=300, height=200, quality=80),
    ThumbnailSpec(name="md", width=800, height=533, quality=85),
    ThumbnailSpec(name="lg", width=1600, height=1067, quality=90),
)


@dataclass(frozen=True)
class ProcessorConfig:
    max_dimension: int = 4096
    quality: int = 92
    thumbnails: tuple[ThumbnailSpec, ...] = DEFAULT_THUMBNAIL_SPECS

    def __post_init__(self) -> None:
        if self.max_dimension <= 0:
            raise ValueError("max_dimension must be positive")
        _check_quality("Main image", self.quality)
        names = [thumb.name for thumb in self.thumbnails]
        if len(names) != len(set(names)):
            raise ValueError(f"Thumbnail names must be unique: {names}")

    @property
    def thumbnail_names(self) -> list[str]:
        return [thumb.name for thumb in self.thumbnails]

    @classmethod
    def from_env(cls) -> "ProcessorConfig":
        thumbnails = tuple(
            ThumbnailSpec(
                name=thumb.name,
                width=env_int(f"THUMB_{thumb.name.upper()}_WIDTH", thumb.width),
                height=env_int(f"THUMB_{thumb.name.upper()}_HEIGHT", thumb.height),
                quality=env_int(f"THUMB_{thumb.name.upper()}_QUALITY", thumb.quality),
            )
            for thumb in DEFAULT_THUMBNAIL_SPECS
        )
        return cls(
            max_dimension=env_int("IMAGE_MAX_DIMENSION", 4096),
            quality=env_int("IMAGE_QUALITY", 92),
            thumbnails=thumbnails,
        )


@dataclass(frozen=True)
class IngestConfig:
    storage_path: str = "./uploads"
    base_url: str = ""
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    image_types: tuple[str, ...] = tuple(DEFAULT_IMAGE_TYPES)
    raw_types: tuple[str, ...] = tuple(DEFAULT_RAW_TYPES)
    check_signatures: bool = True
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)

    def __post_init__(self) -> None:
        if self.max_upload_size <= 0:
            raise ValueError("max_upload_size must be positive")

    @classmethod
    def from_env(cls) -> "IngestConfig":
        return cls(
            storage_path=os.getenv("STORAGE_PATH", "./uploads"),
            base_url=os.getenv("STORAGE_BASE_URL", ""),
            max_upload_size=env_int("STORAGE_MAX_SIZE", DEFAULT_MAX_UPLOAD_SIZE),
            image_types=tuple(env_list("STORAGE_ALLOWED_TYPES", DEFAULT_IMAGE_TYPES)),
            raw_types=tuple(env_list("STORAGE_RAW_TYPES", DEFAULT_RAW_TYPES)),
            check_signatures=env_bool("STORAGE_CHECK_SIGNATURES", True),
            processor=ProcessorConfig.from_env(),
        )


def database_url_from_env() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
