from fractions import Fraction

import pytest

from core.models import ImageRecord, RTKData, RtkTier
from core.services.rtk_classifier import (
    COLOR_BAD,
    COLOR_GOOD,
    COLOR_NEUTRAL,
    RTKFieldClassifier,
    resolve_first,
    to_float,
    to_int,
    to_text,
)


@pytest.fixture
def classifier():
    return RTKFieldClassifier()


def _record(rtk):
    return ImageRecord(filename="x.jpg", latitude=1.0, longitude=2.0, rtk=rtk)


def test_resolve_first_prefers_canonical_then_aliases():
    tags = {"RTKFlag": 34, "RtkFlag": 50}
    assert resolve_first(tags, ["RtkFlag", "RTKFlag"]) == 50
    assert resolve_first({"RTKFlag": 34}, ["RtkFlag", "RTKFlag"]) == 34


def test_resolve_first_skips_blank_and_falls_back_to_case_insensitive():
    tags = {"RtkFlag": "  ", "rtkstatus": "16"}
    assert resolve_first(tags, ["RtkFlag", "RtkStatus"]) == "16"
    assert resolve_first({}, ["RtkFlag"]) is None


def test_coercion_helpers():
    assert to_float("1.5") == 1.5
    assert to_float((3, 2)) == 1.5
    assert to_float("1/4") == 0.25
    assert to_float(Fraction(1, 2)) == 0.5
    assert to_float("abc") is None
    assert to_float((1, 0)) is None
    assert to_float(float("nan")) is None
    assert to_float(True) is None
    assert to_int("50") == 50
    assert to_int(34.0) == 34
    assert to_int(34.5) is None
    assert to_text(b"ASCII\x00\x00\x00RTK") == "RTK"
    assert to_text("  ") is None


def test_classify_resolves_aliases_and_coerces(classifier):
    rtk = classifier.classify(
        {
            "RtkFlag": "50",
            "GPSProcessingMethod": b"ASCII\x00\x00\x00GPS",
            "GPSHPositioningError": "0.02",
            "DOP": 0.9,
            "GPSDifferential": 1,
            "RtkDiffAge": "1000",
            "RtkStdLon": "0.01",
            "GpsAntennaOffsetUp": "not-a-number",
        }
    )
    assert rtk.status == 50
    assert rtk.processing_method == "GPS"
    assert rtk.horizontal_accuracy == 0.02
    assert rtk.dop == 0.9
    assert rtk.differential == 1
    assert rtk.correction_age == 1000.0
    assert rtk.rtk_std_lon == 0.01
    assert rtk.gps_antenna_offset_up is None
    assert rtk.vertical_accuracy is None


def test_classify_never_raises_on_empty_tags(classifier):
    assert classifier.classify({}) == RTKData()


@pytest.mark.parametrize(
    "rtk, expected",
    [
        (RTKData(status=50), RtkTier.FIXED),
        (RTKData(status=34), RtkTier.FLOAT),
        (RTKData(status=16), RtkTier.SINGLE),
        (RTKData(rtk_std_hgt=0.03), RtkTier.STD_DEV_INFERRED),
        (RTKData(differential=2), RtkTier.DIFFERENTIAL_INFERRED),
        (RTKData(status=16, rtk_std_lon=0.01), RtkTier.SINGLE),
        (RTKData(status=50, rtk_std_lon=0.01), RtkTier.FIXED),
        (RTKData(status=99, differential=1), RtkTier.DIFFERENTIAL_INFERRED),
    ],
)
def test_derive_tier_priority(classifier, rtk, expected):
    result = classifier.derive_tier(rtk)
    assert result.tier == expected
    assert result.has_rtk_data


@pytest.mark.parametrize("rtk", [None, RTKData(), RTKData(differential=0), RTKData(status=0)])
def test_derive_tier_without_evidence(classifier, rtk):
    result = classifier.derive_tier(rtk)
    assert result.tier is None
    assert not result.has_rtk_data


def test_marker_color(classifier):
    assert classifier.marker_color(RTKData(status=50), rtk_enabled=True) == COLOR_GOOD
    assert classifier.marker_color(RTKData(differential=1), rtk_enabled=True) == COLOR_GOOD
    assert classifier.marker_color(RTKData(status=16), rtk_enabled=True) == COLOR_BAD
    assert classifier.marker_color(None, rtk_enabled=True) == COLOR_BAD
    assert classifier.marker_color(RTKData(status=50), rtk_enabled=False) == COLOR_NEUTRAL


def test_status_text(classifier):
    assert classifier.status_text(50) == "RTK Fixed"
    assert classifier.status_text(34) == "RTK Float"
    assert classifier.status_text(16) == "RTK Single"
    assert classifier.status_text(0) == "No Positioning"
    assert classifier.status_text(7) == "Unknown (7)"
    assert classifier.status_text(None) is None


def test_aggregate_counts_inferred_tiers_as_fixed(classifier):
    records = [
        _record(RTKData(status=50, correction_age=1000)),
        _record(RTKData(status=34, correction_age=2000)),
        _record(RTKData(status=16)),
        _record(RTKData(rtk_std_lat=0.02)),
    ]
    agg = classifier.aggregate(records)
    assert (agg.fixed, agg.float, agg.single, agg.no_rtk) == (2, 1, 1, 0)
    assert agg.total == 4
    assert agg.avg_correction_age_ms == 1500.0


def test_aggregate_without_rtk_data(classifier):
    agg = classifier.aggregate([_record(None), _record(RTKData(status=7))])
    assert agg.no_rtk == 2
    assert agg.avg_correction_age_ms is None
