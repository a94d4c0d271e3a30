"""Bounding boxes over coordinate sets with a real-world distance buffer."""

from __future__ import annotations

from collections.abc import Iterable
import math

from core.models import BoundingBox, GeoBounds

DEFAULT_BUFFER_FEET = 2000.0
FEET_TO_METERS = 0.3048
METERS_PER_DEGREE = 111320.0
MIN_COS_LATITUDE = 0.01


def buffered_bounds(bounds: BoundingBox, buffer_feet: float = DEFAULT_BUFFER_FEET) -> BoundingBox:
    """Expand `bounds` by `buffer_feet` on every side.

    The longitude delta grows with latitude; the cosine is floored at 0.01 so
    boxes near the poles stay finite. A non-positive buffer returns `bounds`.
    """
    if not buffer_feet or buffer_feet <= 0:
        return bounds
    meters = buffer_feet * FEET_TO_METERS
    lat_delta = meters / METERS_PER_DEGREE
    lat_factor = max(math.cos(math.radians(bounds.center_latitude)), MIN_COS_LATITUDE)
    lon_delta = meters / (METERS_PER_DEGREE * lat_factor)
    return BoundingBox(
        south=bounds.south - lat_delta,
        west=bounds.west - lon_delta,
        north=bounds.north + lat_delta,
        east=bounds.east + lon_delta,
    )


class GeoBoundsEngine:
    """Computes tight and buffered bounds for a set of (lat, lon) pairs."""

    def __init__(self, buffer_feet: float = DEFAULT_BUFFER_FEET) -> None:
        self.buffer_feet = buffer_feet

    def compute_bounds(self, coords: Iterable[tuple[float, float]]) -> GeoBounds | None:
        """Return bounds for `coords`, or None when there are no coordinates."""
        points = list(coords)
        if not points:
            return None
        lats = [lat for lat, _ in points]
        lons = [lon for _, lon in points]
        box = BoundingBox(south=min(lats), west=min(lons), north=max(lats), east=max(lons))
        buffered = buffered_bounds(box, self.buffer_feet) if self.buffer_feet > 0 else None
        return GeoBounds(bounds=box, buffered=buffered)

    def buffered_bounds(self, bounds: BoundingBox, buffer_feet: float | None = None) -> BoundingBox:
        feet = self.buffer_feet if buffer_feet is None else buffer_feet
        return buffered_bounds(bounds, feet)
