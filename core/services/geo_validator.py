"""Coordinate pair validation."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any

from core.models import ErrorReason

MAX_ABS_LATITUDE = 90.0
MAX_ABS_LONGITUDE = 180.0


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    error: ErrorReason | None = None


def is_number(value: Any) -> bool:
    """True for real numbers (int/float), excluding bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class GeoValidator:
    """Checks that a lat/lon pair is finite and within WGS84 ranges."""

    def validate(self, lat: Any, lon: Any) -> ValidationResult:
        """Return ok, or an INVALID_COORDINATES error.

        Zero/zero is a valid pair; only the absolute ranges are enforced.
        """
        if not (is_number(lat) and is_number(lon)):
            return ValidationResult(ok=False, error=ErrorReason.INVALID_COORDINATES)
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return ValidationResult(ok=False, error=ErrorReason.INVALID_COORDINATES)
        if abs(lat) > MAX_ABS_LATITUDE or abs(lon) > MAX_ABS_LONGITUDE:
            return ValidationResult(ok=False, error=ErrorReason.INVALID_COORDINATES)
        return ValidationResult(ok=True)
