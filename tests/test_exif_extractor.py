import asyncio
import io
import struct

from PIL import Image
import pytest

from core.services.interfaces import MetadataReadError
from core.services.rtk_classifier import RTKFieldClassifier
from infrastructure.exif_extractor import (
    PillowMetadataExtractor,
    altitude_from_gps,
    dms_to_decimal,
    metadata_from_tags,
    parse_xmp,
)
from infrastructure.utils import normalize_exif_datetime

DJI_XMP = (
    b'<x:xmpmeta xmlns:x="adobe:ns:meta/">'
    b'<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">'
    b'<rdf:Description rdf:about="" xmlns:drone-dji="http://www.dji.com/drone-dji/1.0/"'
    b' drone-dji:RtkFlag="50" drone-dji:RtkStdLon="0.01">'
    b"<drone-dji:RtkDiffAge>1000</drone-dji:RtkDiffAge>"
    b"</rdf:Description></rdf:RDF></x:xmpmeta>"
)


def _jpeg(**ifd0):
    img = Image.new("RGB", (8, 8))
    exif = Image.Exif()
    for tag, value in ifd0.items():
        exif[int(tag)] = value
    buf = io.BytesIO()
    img.save(buf, "JPEG", exif=exif)
    return buf.getvalue()


def test_dms_to_decimal_with_hemispheres():
    assert dms_to_decimal((37, 30, 0), "N") == pytest.approx(37.5)
    assert dms_to_decimal((122, 15, 36), "W") == pytest.approx(-122.26)
    assert dms_to_decimal(((33, 1), (52, 1), (768, 100)), b"S") == pytest.approx(-(33 + 52 / 60 + 7.68 / 3600))
    assert dms_to_decimal(12.5, "E") == 12.5
    assert dms_to_decimal((1, 2), "N") is None
    assert dms_to_decimal(None) is None


def test_altitude_reference_below_sea_level():
    assert altitude_from_gps(120.5, b"\x00") == 120.5
    assert altitude_from_gps(120.5, b"\x01") == -120.5
    assert altitude_from_gps(3, 1) == -3.0
    assert altitude_from_gps(None, 0) is None


def test_normalize_exif_datetime():
    assert normalize_exif_datetime("2024:01:02 03:04:05") == "2024-01-02T03:04:05"
    assert normalize_exif_datetime(b"2024:01:02 03:04:05\x00", "+09:00") == "2024-01-02T03:04:05+09:00"
    assert normalize_exif_datetime("2024:01:02 03:04:05", "bogus") == "2024-01-02T03:04:05"
    assert normalize_exif_datetime("    ") is None
    assert normalize_exif_datetime("0000:00:00 00:00:00") is None


def test_parse_xmp_flattens_attributes_and_elements():
    tags = parse_xmp(b"\xff\xd8garbage" + DJI_XMP + b"trailer")
    assert tags == {"RtkFlag": "50", "RtkStdLon": "0.01", "RtkDiffAge": "1000"}
    assert parse_xmp(b"no packet here") == {}
    assert parse_xmp(b"<x:xmpmeta><broken</x:xmpmeta>") == {}


def test_metadata_from_tags():
    gps = {
        "GPSLatitude": (37, 30, 0),
        "GPSLatitudeRef": "N",
        "GPSLongitude": (122, 15, 36),
        "GPSLongitudeRef": "W",
        "GPSAltitude": 120.5,
        "GPSAltitudeRef": b"\x00",
        "GPSDOP": 0.8,
    }
    exif_ifd = {"DateTimeOriginal": "2024:01:02 03:04:05", "OffsetTimeOriginal": "+09:00"}
    base = {"Make": "DJI", "Model": "M3E", "DateTime": "2030:01:01 00:00:00"}

    meta = metadata_from_tags(base, exif_ifd, gps, {"GPSDOP": "0.5", "RtkFlag": "50"}, include_rtk=True)
    assert meta.latitude == pytest.approx(37.5)
    assert meta.longitude == pytest.approx(-122.26)
    assert meta.altitude == 120.5
    assert meta.timestamp == "2024-01-02T03:04:05+09:00"
    assert (meta.make, meta.model) == ("DJI", "M3E")
    assert meta.raw_tags["GPSDOP"] == "0.5"
    assert RTKFieldClassifier().classify(meta.raw_tags).status == 50

    plain = metadata_from_tags(base, {}, {}, include_rtk=False)
    assert plain.latitude is None
    assert plain.timestamp == "2030-01-01T00:00:00"
    assert plain.raw_tags == {}


def test_extract_real_jpeg_with_appended_xmp():
    data = _jpeg(**{"271": "DJI", "272": "M3E", "306": "2024:01:02 03:04:05"}) + DJI_XMP
    meta = asyncio.run(PillowMetadataExtractor().extract(data, include_rtk=True))
    assert (meta.make, meta.model) == ("DJI", "M3E")
    assert meta.timestamp == "2024-01-02T03:04:05"
    assert meta.latitude is None and meta.longitude is None
    assert meta.raw_tags["RtkFlag"] == "50"


def test_extract_unreadable_bytes_raises_read_error():
    with pytest.raises(MetadataReadError):
        asyncio.run(PillowMetadataExtractor().extract(b"not an image"))


def oversized_jpeg(width=30000, height=30000):
    """A valid JPEG whose frame header claims a huge pixel count."""
    data = bytearray(_jpeg())
    sof = data.index(b"\xff\xc0\x00\x11\x08")
    data[sof + 5 : sof + 9] = struct.pack(">HH", height, width)
    return bytes(data)


def test_extract_oversized_header_raises_read_error():
    with pytest.raises(MetadataReadError):
        asyncio.run(PillowMetadataExtractor().extract(oversized_jpeg()))
