from __future__ import annotations

import logging
import math
import numbers
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Callable, Mapping, Optional, TypeVar

from PIL import ExifTags, Image

from quanphotos.core.models import ExtractedMetadata

logger = logging.getLogger(__name__)

T = TypeVar("T")

# IFD0
IMAGE_WIDTH_TAG = 256
IMAGE_LENGTH_TAG = 257
MAKE_TAG = 271
MODEL_TAG = 272
ORIENTATION_TAG = 274
SOFTWARE_TAG = 305
DATETIME_TAG = 306  # DateTime fallback
GPS_INFO_TAG = 34853
# Exif sub-IFD
EXPOSURE_TIME_TAG = 33434
FNUMBER_TAG = 33437
EXPOSURE_PROGRAM_TAG = 34850
ISO_TAG = 34855  # PhotographicSensitivity
DATETIME_ORIGINAL_TAG = 36867
OFFSET_TIME_ORIGINAL_TAG = 36881
EXPOSURE_BIAS_TAG = 37380
METERING_MODE_TAG = 37383
FLASH_TAG = 37385
FOCAL_LENGTH_TAG = 37386
COLOR_SPACE_TAG = 40961
PIXEL_X_DIMENSION_TAG = 40962
PIXEL_Y_DIMENSION_TAG = 40963
FOCAL_LENGTH_35MM_TAG = 41989
EXPOSURE_MODE_TAG = 41986
WHITE_BALANCE_TAG = 41987
BODY_SERIAL_NUMBER_TAG = 42033
LENS_MAKE_TAG = 42035
LENS_MODEL_TAG = 42036
# GPS IFD
GPS_LATITUDE_REF_TAG = 1
GPS_LATITUDE_TAG = 2
GPS_LONGITUDE_REF_TAG = 3
GPS_LONGITUDE_TAG = 4
GPS_ALTITUDE_REF_TAG = 5
GPS_ALTITUDE_TAG = 6

EXPOSURE_PROGRAMS = {
    0: "Not defined",
    1: "Manual",
    2: "Normal program",
    3: "Aperture priority",
    4: "Shutter priority",
    5: "Creative program",
    6: "Action program",
    7: "Portrait mode",
    8: "Landscape mode",
}

METERING_MODES = {
    0: "Unknown",
    1: "Average",
    2: "Center-weighted average",
    3: "Spot",
    4: "Multi-spot",
    5: "Pattern",
    6: "Partial",
    255: "Other",
}

WHITE_BALANCES = {
    0: "Auto",
    1: "Manual",
}

FLASH_MODES = {
    0x00: "No Flash",
    0x01: "Fired",
    0x05: "Fired, Return not detected",
    0x07: "Fired, Return detected",
    0x08: "On, Did not fire",
    0x09: "On, Fired",
    0x0D: "On, Return not detected",
    0x0F: "On, Return detected",
    0x10: "Off, Did not fire",
    0x14: "Off, Did not fire, Return not detected",
    0x18: "Auto, Did not fire",
    0x19: "Auto, Fired",
    0x1D: "Auto, Fired, Return not detected",
    0x1F: "Auto, Fired, Return detected",
    0x20: "No flash function",
    0x30: "Off, No flash function",
    0x41: "Fired, Red-eye reduction",
    0x45: "Fired, Red-eye reduction, Return not detected",
    0x47: "Fired, Red-eye reduction, Return detected",
    0x49: "On, Red-eye reduction",
    0x4D: "On, Red-eye reduction, Return not detected",
    0x4F: "On, Red-eye reduction, Return detected",
    0x50: "Off, Red-eye reduction",
    0x58: "Auto, Did not fire, Red-eye reduction",
    0x59: "Auto, Fired, Red-eye reduction",
    0x5D: "Auto, Fired, Red-eye reduction, Return not detected",
    0x5F: "Auto, Fired, Red-eye reduction, Return detected",
}

EXPOSURE_MODES = {
    0: "Auto",
    1: "Manual",
    2: "Auto bracket",
}

COLOR_SPACES = {
    1: "sRGB",
    2: "Adobe RGB",
    65535: "Uncalibrated",
}


def _first(value: object) -> object:
    if isinstance(value, tuple) and value:
        return value[0]
    return value


def _is_pair(value: object) -> bool:
    return (
        isinstance(value, tuple)
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    )


def _rational(value: object) -> Optional[tuple[int, int]]:
    """Return the raw (numerator, denominator) of a rational tag value."""
    if _is_pair(value):
        return int(value[0]), int(value[1])  # type: ignore[index]
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Rational):
        # IFDRational keeps the unreduced pair as stored in the file.
        return int(value.numerator), int(value.denominator)
    if isinstance(value, float) and math.isfinite(value):
        frac = Fraction(value).limit_denominator(1_000_000)
        return frac.numerator, frac.denominator
    return None


def rational_to_float(value: object) -> Optional[float]:
    pair = _rational(value)
    if pair is None or pair[1] == 0:
        return None
    return pair[0] / pair[1]


def _int(value: object) -> Optional[int]:
    value = _first(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, bytes) and len(value) == 1:
        return value[0]
    return None


def _string(value: object) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None
    cleaned = value.replace("\x00", "").strip()
    return cleaned or None


def _lookup(table: Mapping[int, str], value: object) -> Optional[str]:
    code = _int(value)
    if code is None:
        return None
    return table.get(code)


def format_aperture(value: object) -> Optional[str]:
    f_number = rational_to_float(value)
    if f_number is None:
        return None
    return f"f/{f_number:.1f}"


def format_focal_length(value: object) -> Optional[str]:
    focal = rational_to_float(value)
    if focal is None:
        return None
    return f"{focal:.0f} mm"


def format_focal_length_35mm(value: object) -> Optional[str]:
    focal = _int(value)
    if not focal or focal < 0:
        return None
    return f"{focal} mm"


def format_shutter_speed(value: object) -> Optional[str]:
    """Exposure time as "N/D s" below one second, "S.S s" otherwise."""
    pair = _rational(value)
    if pair is None:
        return None
    num, den = pair
    if den <= 0 or num <= 0:
        return None
    if num < den:
        divisor = math.gcd(num, den)
        return f"{num // divisor}/{den // divisor} s"
    return f"{num / den:.1f} s"


def format_exposure_bias(value: object) -> Optional[str]:
    bias = rational_to_float(value)
    if bias is None:
        return None
    if bias == 0:
        return "0 EV"
    if bias > 0:
        return f"+{bias:.1f} EV"
    return f"{bias:.1f} EV"


def parse_exif_datetime(value: object, offset: object = None) -> Optional[datetime]:
    text = _string(value)
    if not text:
        return None
    try:
        parsed = datetime.strptime(text, "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None
    tz = _parse_utc_offset(_string(offset)) or timezone.utc
    return parsed.replace(tzinfo=tz)


def _parse_utc_offset(text: Optional[str]) -> Optional[timezone]:
    if not text or len(text) != 6 or text[0] not in "+-" or text[3] != ":":
        return None
    try:
        hours, minutes = int(text[1:3]), int(text[4:6])
    except ValueError:
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return timezone(delta if text[0] == "+" else -delta)


def _convert_gps_coordinate(values: object, ref: object) -> Optional[float]:
    if not isinstance(values, tuple) or len(values) != 3:
        return None
    ref_text = _string(ref)
    if ref_text is None:
        return None
    parts = [rational_to_float(v) for v in values]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts  # type: ignore[misc]
    coordinate = degrees + minutes / 60.0 + seconds / 3600.0
    if ref_text.upper() in {"S", "W"}:
        coordinate *= -1
    return coordinate


def decode_lat_lon(gps: Mapping[int, object]) -> tuple[Optional[float], Optional[float]]:
    """Decode latitude/longitude together; a failure on either side drops both."""
    lat = _convert_gps_coordinate(gps.get(GPS_LATITUDE_TAG), gps.get(GPS_LATITUDE_REF_TAG))
    lon = _convert_gps_coordinate(gps.get(GPS_LONGITUDE_TAG), gps.get(GPS_LONGITUDE_REF_TAG))
    if lat is None or lon is None:
        return None, None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None, None
    return lat, lon


def decode_altitude(gps: Mapping[int, object]) -> Optional[float]:
    altitude = rational_to_float(gps.get(GPS_ALTITUDE_TAG))
    if altitude is None:
        return None
    # 0 = above sea level, 1 = below
    if _int(gps.get(GPS_ALTITUDE_REF_TAG)) == 1:
        altitude = -altitude
    return altitude


def _field(decoder: Callable[..., Optional[T]], *values: object) -> Optional[T]:
    try:
        return decoder(*values)
    except (TypeError, ValueError, ArithmeticError, OverflowError):
        return None


def _orientation(value: object) -> Optional[int]:
    code = _int(value)
    if code is None or not 1 <= code <= 8:
        return None
    return code


def _positive_int(value: object) -> Optional[int]:
    number = _int(value)
    if number is None or number <= 0:
        return None
    return number


def metadata_from_tags(
    tags: Mapping[int, object], gps: Optional[Mapping[int, object]] = None
) -> ExtractedMetadata:
    """Build metadata from merged IFD0/Exif tags and the GPS IFD."""
    gps = gps or {}
    lat, lon = _field(decode_lat_lon, gps) or (None, None)
    width = _field(_positive_int, tags.get(IMAGE_WIDTH_TAG)) or _field(
        _positive_int, tags.get(PIXEL_X_DIMENSION_TAG)
    )
    height = _field(_positive_int, tags.get(IMAGE_LENGTH_TAG)) or _field(
        _positive_int, tags.get(PIXEL_Y_DIMENSION_TAG)
    )
    taken_at = _field(
        parse_exif_datetime, tags.get(DATETIME_ORIGINAL_TAG), tags.get(OFFSET_TIME_ORIGINAL_TAG)
    ) or _field(parse_exif_datetime, tags.get(DATETIME_TAG))

    return ExtractedMetadata(
        camera_make=_field(_string, tags.get(MAKE_TAG)),
        camera_model=_field(_string, tags.get(MODEL_TAG)),
        serial_number=_field(_string, tags.get(BODY_SERIAL_NUMBER_TAG)),
        lens_make=_field(_string, tags.get(LENS_MAKE_TAG)),
        lens_model=_field(_string, tags.get(LENS_MODEL_TAG)),
        focal_length=_field(format_focal_length, tags.get(FOCAL_LENGTH_TAG)),
        focal_length_35mm=_field(format_focal_length_35mm, tags.get(FOCAL_LENGTH_35MM_TAG)),
        aperture=_field(format_aperture, tags.get(FNUMBER_TAG)),
        shutter_speed=_field(format_shutter_speed, tags.get(EXPOSURE_TIME_TAG)),
        iso=_field(_positive_int, tags.get(ISO_TAG)),
        exposure_mode=_field(_lookup, EXPOSURE_MODES, tags.get(EXPOSURE_MODE_TAG)),
        exposure_program=_field(_lookup, EXPOSURE_PROGRAMS, tags.get(EXPOSURE_PROGRAM_TAG)),
        metering_mode=_field(_lookup, METERING_MODES, tags.get(METERING_MODE_TAG)),
        white_balance=_field(_lookup, WHITE_BALANCES, tags.get(WHITE_BALANCE_TAG)),
        flash=_field(_lookup, FLASH_MODES, tags.get(FLASH_TAG)),
        exposure_bias=_field(format_exposure_bias, tags.get(EXPOSURE_BIAS_TAG)),
        taken_at=taken_at,
        gps_latitude=lat,
        gps_longitude=lon,
        gps_altitude=_field(decode_altitude, gps),
        image_width=width,
        image_height=height,
        orientation=_field(_orientation, tags.get(ORIENTATION_TAG)),
        color_space=_field(_lookup, COLOR_SPACES, tags.get(COLOR_SPACE_TAG)),
        software=_field(_string, tags.get(SOFTWARE_TAG)),
    )


def _sub_ifd(exif: Image.Exif, tag: int) -> dict[int, object]:
    try:
        return dict(exif.get_ifd(tag))
    except Exception:
        # Pillow raises a variety of errors for broken IFD offsets.
        return {}


def read_metadata(source: str | Path | bytes | BinaryIO) -> ExtractedMetadata:
    """Extract camera/shooting metadata. Never raises; unreadable EXIF yields an empty record."""
    if isinstance(source, (bytes, bytearray)):
        source = BytesIO(source)
    try:
        with Image.open(source) as img:
            exif = img.getexif()
            if not exif:
                return ExtractedMetadata()
            tags: dict[int, object] = dict(exif.items())
            tags.update(_sub_ifd(exif, ExifTags.IFD.Exif))
            gps = _sub_ifd(exif, ExifTags.IFD.GPSInfo)
            if not gps and isinstance(tags.get(GPS_INFO_TAG), dict):
                gps = dict(tags[GPS_INFO_TAG])  # type: ignore[arg-type]
    except Exception as exc:
        # Metadata is enrichment; a broken header must not fail the upload.
        logger.debug("Metadata extraction failed: %s", exc)
        return ExtractedMetadata()

    return metadata_from_tags(tags, gps)
