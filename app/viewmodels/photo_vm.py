"""Lightweight view model wrapper around `ImageRecord`."""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import ImageRecord
from core.services.interfaces import Marker
from core.services.rtk_classifier import RTKFieldClassifier


@dataclass
class PhotoVM:
    """Expose the map marker for one image."""

    record: ImageRecord
    rtk_enabled: bool = False
    classifier: RTKFieldClassifier = field(default_factory=RTKFieldClassifier)

    @property
    def marker_color(self) -> str:
        """Quality color when RTK analysis is on, neutral otherwise."""
        return self.classifier.marker_color(self.record.rtk, self.rtk_enabled)

    @property
    def marker(self) -> Marker:
        return Marker(lat=self.record.latitude, lon=self.record.longitude, color=self.marker_color)
