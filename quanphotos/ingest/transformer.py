from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Mapping, Optional, Union

from PIL import Image, ImageOps

from quanphotos.core.config import ProcessorConfig, ThumbnailSpec
from quanphotos.core.models import ProcessedImageSet

from .errors import TransformError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, BinaryIO]

# EXIF orientation code -> transform that restores the upright image.
ORIENTATION_TRANSPOSE: dict[int, Image.Transpose] = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def auto_rotate(img: Image.Image, orientation: Optional[int]) -> Image.Image:
    method = ORIENTATION_TRANSPOSE.get(orientation or 1)
    if method is None:
        return img
    return img.transpose(method)


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Clamp the longer side to max_dimension, keeping the aspect ratio."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        other = int(height * max_dimension / width + 0.5)
        return max_dimension, max(other, 1)
    other = int(width * max_dimension / height + 0.5)
    return max(other, 1), max_dimension


def resize_if_needed(img: Image.Image, max_dimension: int) -> Image.Image:
    target = scaled_size(img.width, img.height, max_dimension)
    if target == img.size:
        return img
    return img.resize(target, Image.Resampling.LANCZOS)


def to_rgb(img: Image.Image) -> Image.Image:
    """Flatten onto white; JPEG has no alpha channel."""
    if img.mode == "RGB":
        return img
    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.getchannel("A"))
        return background
    return img.convert("RGB")


def fill(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover width x height, then crop the overflow from the centre."""
    return ImageOps.fit(
        img,
        (width, height),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )


def image_dimensions(path: str | Path) -> tuple[int, int]:
    """Width and height read from the header, without decoding pixels."""
    with Image.open(path) as img:
        return img.size


def _save_jpeg(img: Image.Image, target: str, quality: int) -> None:
    Path(target).parent.mkdir(parents=True, exist_ok=True)
    img.save(target, format="JPEG", quality=quality, optimize=True)


class ImageTransformer:
    """Auto-rotate, downsample and render thumbnails for one source image."""

    def __init__(self, config: ProcessorConfig | None = None) -> None:
        self.config = config or ProcessorConfig()

    def open(self, source: ImageSource) -> Image.Image:
        try:
            if isinstance(source, (bytes, bytearray)):
                source = BytesIO(source)
            with Image.open(source) as img:
                img.load()
                return img.copy()
        except Exception as exc:
            raise TransformError("open", exc) from exc

    def process(
        self,
        source: ImageSource,
        main_path: str,
        thumbnail_paths: Mapping[str, str],
        orientation: Optional[int] = None,
    ) -> ProcessedImageSet:
        """Write the main JPEG and one JPEG per configured thumbnail.

        `thumbnail_paths` maps each configured size name to its target file.
        Files already written are left in place when a later stage fails.
        """
        missing = [name for name in self.config.thumbnail_names if name not in thumbnail_paths]
        if missing:
            raise ValueError(f"No target path for thumbnail sizes: {missing}")

        img = self.open(source)
        try:
            img = auto_rotate(img, orientation)
        except Exception as exc:
            raise TransformError("rotate", exc) from exc

        try:
            img = resize_if_needed(img, self.config.max_dimension)
        except Exception as exc:
            raise TransformError("resize", exc) from exc

        try:
            img = to_rgb(img)
            _save_jpeg(img, main_path, self.config.quality)
        except Exception as exc:
            raise TransformError("encode-main", exc) from exc

        written: dict[str, str] = {}
        for thumb in self.config.thumbnails:
            written[thumb.name] = self._thumbnail(img, thumb, thumbnail_paths[thumb.name])

        logger.debug("Rendered %s at %dx%d with %d thumbnails", main_path, img.width, img.height, len(written))
        return ProcessedImageSet(
            main_path=main_path,
            thumbnail_paths=written,
            width=img.width,
            height=img.height,
        )

    def _thumbnail(self, img: Image.Image, thumb: ThumbnailSpec, target: str) -> str:
        try:
            _save_jpeg(fill(img, thumb.width, thumb.height), target, thumb.quality)
        except Exception as exc:
            raise TransformError(f"encode-thumbnail-{thumb.name}", exc) from exc
        return target
