from datetime import datetime, timedelta, timezone
from pathlib import Path

from PIL import Image
from PIL.TiffImagePlugin import IFDRational

from quanphotos.ingest import metadata_from_tags, read_metadata
from quanphotos.ingest.exif_reader import (
    decode_altitude,
    decode_lat_lon,
    format_aperture,
    format_exposure_bias,
    format_focal_length,
    format_shutter_speed,
    parse_exif_datetime,
    rational_to_float,
)


def _make_image(path: Path, with_exif: bool = False) -> None:
    img = Image.new("RGB", (10, 10), color="red")
    if with_exif:
        exif = Image.Exif()
        exif[36867] = "2021:01:02 03:04:05"
        exif[306] = "2021:01:02 03:04:05"
        exif[271] = "TestMake"
        exif[272] = "TestModel"
        exif[305] = "UnitTestSoftware"
        exif[274] = 6  # Orientation
        exif[34855] = 200  # ISO
        exif[42036] = "TestLens"
        img.save(path, exif=exif)
    else:
        img.save(path)


def test_shutter_speed_formatting() -> None:
    assert format_shutter_speed((1, 500)) == "1/500 s"
    assert format_shutter_speed(IFDRational(1, 500)) == "1/500 s"
    assert format_shutter_speed((10, 5000)) == "1/500 s"
    assert format_shutter_speed((3, 1)) == "3.0 s"
    assert format_shutter_speed((5, 2)) == "2.5 s"
    assert format_shutter_speed((0, 1)) is None
    assert format_shutter_speed((1, 0)) is None


def test_exposure_bias_formatting() -> None:
    assert format_exposure_bias((-3, 2)) == "-1.5 EV"
    assert format_exposure_bias((0, 1)) == "0 EV"
    assert format_exposure_bias((2, 3)) == "+0.7 EV"
    assert format_exposure_bias(IFDRational(1, 3)) == "+0.3 EV"
    assert format_exposure_bias((1, 0)) is None


def test_aperture_and_focal_length_formatting() -> None:
    assert format_aperture((28, 10)) == "f/2.8"
    assert format_aperture(IFDRational(8, 1)) == "f/8.0"
    assert format_focal_length((350, 10)) == "35 mm"
    assert format_aperture((28, 0)) is None


def test_rational_to_float_guards_zero_denominator() -> None:
    assert rational_to_float((1, 4)) == 0.25
    assert rational_to_float((1, 0)) is None
    assert rational_to_float(IFDRational(5, 0)) is None
    assert rational_to_float("not a number") is None


def test_gps_pair_decodes_together() -> None:
    gps = {
        1: "N",
        2: (IFDRational(51, 1), IFDRational(28, 1), IFDRational(3855, 100)),
        3: "W",
        4: (IFDRational(0, 1), IFDRational(27, 1), IFDRational(3, 1)),
    }
    lat, lon = decode_lat_lon(gps)
    assert round(lat, 4) == 51.4774
    assert round(lon, 4) == -0.4508


def test_gps_failure_drops_both_coordinates() -> None:
    gps = {
        1: "N",
        2: (IFDRational(51, 1), IFDRational(28, 1), IFDRational(38, 1)),
        3: "W",
        4: (IFDRational(0, 1), IFDRational(27, 0), IFDRational(3, 1)),
    }
    assert decode_lat_lon(gps) == (None, None)
    assert decode_lat_lon({1: "N", 2: gps[2]}) == (None, None)

    metadata = metadata_from_tags({}, gps)
    assert metadata.gps_latitude is None
    assert metadata.gps_longitude is None
    assert not metadata.has_gps


def test_altitude_sign_follows_reference() -> None:
    assert decode_altitude({5: b"\x00", 6: IFDRational(1234, 10)}) == 123.4
    assert decode_altitude({5: b"\x01", 6: IFDRational(1234, 10)}) == -123.4
    assert decode_altitude({5: 1, 6: (50, 1)}) == -50.0
    assert decode_altitude({5: 1}) is None


def test_enumerated_fields_map_known_codes_only() -> None:
    metadata = metadata_from_tags(
        {
            34850: 3,  # ExposureProgram
            37383: 5,  # MeteringMode
            41987: 1,  # WhiteBalance
            37385: 0x10,  # Flash
            41986: 2,  # ExposureMode
            40961: 1,  # ColorSpace
        }
    )
    assert metadata.exposure_program == "Aperture priority"
    assert metadata.metering_mode == "Pattern"
    assert metadata.white_balance == "Manual"
    assert metadata.flash == "Off, Did not fire"
    assert metadata.exposure_mode == "Auto bracket"
    assert metadata.color_space == "sRGB"

    unknown = metadata_from_tags({34850: 42, 37383: 99, 41987: 7, 37385: 0x7F, 41986: 9, 40961: 3})
    assert unknown.exposure_program is None
    assert unknown.metering_mode is None
    assert unknown.white_balance is None
    assert unknown.flash is None
    assert unknown.exposure_mode is None
    assert unknown.color_space is None


def test_metadata_from_tags_formats_exposure() -> None:
    metadata = metadata_from_tags(
        {
            271: "Canon\x00",
            272: "EOS R5",
            42033: "012345678901",
            42035: "Canon",
            33434: IFDRational(1, 1000),
            33437: IFDRational(56, 10),
            34855: (400,),
            37380: IFDRational(-2, 3),
            37386: IFDRational(400, 1),
            41989: 400,
            40962: 8192,
            40963: 5464,
            274: 12,
        }
    )
    assert metadata.camera_make == "Canon"
    assert metadata.camera_model == "EOS R5"
    assert metadata.serial_number == "012345678901"
    assert metadata.lens_make == "Canon"
    assert metadata.shutter_speed == "1/1000 s"
    assert metadata.aperture == "f/5.6"
    assert metadata.iso == 400
    assert metadata.exposure_bias == "-0.7 EV"
    assert metadata.focal_length == "400 mm"
    assert metadata.focal_length_35mm == "400 mm"
    assert (metadata.image_width, metadata.image_height) == (8192, 5464)
    assert metadata.orientation is None
    assert metadata.lens_model is None


def test_parse_exif_datetime_uses_offset_when_present() -> None:
    parsed = parse_exif_datetime("2024:05:17 14:30:00", "+08:00")
    assert parsed == datetime(2024, 5, 17, 14, 30, tzinfo=timezone(timedelta(hours=8)))
    assert parse_exif_datetime("2024:05:17 14:30:00").tzinfo == timezone.utc
    assert parse_exif_datetime("0000:00:00 00:00:00") is None
    assert parse_exif_datetime(None) is None


def test_read_metadata_from_file(tmp_path: Path) -> None:
    file_path = tmp_path / "with_exif.jpg"
    _make_image(file_path, with_exif=True)

    metadata = read_metadata(file_path)
    assert metadata.taken_at is not None
    assert metadata.taken_at.year == 2021
    assert metadata.camera_make == "TestMake"
    assert metadata.camera_model == "TestModel"
    assert metadata.software == "UnitTestSoftware"
    assert metadata.lens_model == "TestLens"
    assert metadata.orientation == 6
    assert metadata.iso == 200


def test_read_metadata_accepts_bytes(tmp_path: Path) -> None:
    file_path = tmp_path / "with_exif.jpg"
    _make_image(file_path, with_exif=True)
    assert read_metadata(file_path.read_bytes()).camera_make == "TestMake"


def test_read_metadata_without_exif_is_empty(tmp_path: Path) -> None:
    file_path = tmp_path / "plain.png"
    _make_image(file_path)
    assert read_metadata(file_path).is_empty()


def test_read_metadata_never_raises_on_garbage(tmp_path: Path) -> None:
    file_path = tmp_path / "broken.jpg"
    file_path.write_bytes(b"\xff\xd8\xff\xe1garbage")
    assert read_metadata(file_path).is_empty()
    assert read_metadata(b"").is_empty()
