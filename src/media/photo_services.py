"""
Photo collaborators and EXIF helpers.

Image de-duplication and quality analysis live outside this engine; they are
reached through two narrow interfaces:
- DuplicatePhotoChecker.is_duplicate(agent_id, photo) -> bool
- PhotoQualityScorer.score(photo) -> float (0-100)

EXIF arrives as a plain dict of tag name -> value, already extracted by the
media store.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from src.core.schema import Coordinate, PhotoPayload

EXIF_TIME_FORMAT = "%Y:%m:%d %H:%M:%S"
EXIF_TIME_TAGS = ("DateTimeOriginal", "DateTimeDigitized", "DateTime")
DEFAULT_PHOTO_QUALITY = 75.0


class DuplicatePhotoChecker(ABC):

    @abstractmethod
    def is_duplicate(self, agent_id: str, photo: PhotoPayload) -> bool:
        """Has this image (or a near copy) been submitted before?"""


class NullDuplicateChecker(DuplicatePhotoChecker):
    """Used when no de-dup service is wired in: nothing is a duplicate."""

    def is_duplicate(self, agent_id: str, photo: PhotoPayload) -> bool:
        return False


class PhotoQualityScorer(ABC):

    @abstractmethod
    def score(self, photo: PhotoPayload) -> float:
        """Quality scalar in [0, 100]."""


class MetadataQualityScorer(PhotoQualityScorer):
    """
    Reads a quality score precomputed by the media store (exif["QualityScore"]),
    falling back to a neutral default.
    """

    def __init__(self, default: float = DEFAULT_PHOTO_QUALITY):
        self.default = default

    def score(self, photo: PhotoPayload) -> float:
        value = (photo.exif or {}).get("QualityScore")
        if isinstance(value, (int, float)):
            return float(min(100.0, max(0.0, value)))
        return self.default


def has_exif(photo: PhotoPayload) -> bool:
    return bool(photo.exif)


def photo_taken_at(photo: PhotoPayload) -> Optional[datetime]:
    """
    Capture time: explicit `captured_at`, else the EXIF date tags.

    EXIF dates carry no zone; they are read as UTC.
    """
    if photo.captured_at is not None:
        return photo.captured_at

    for tag in EXIF_TIME_TAGS:
        raw = (photo.exif or {}).get(tag)
        if not isinstance(raw, str):
            continue
        try:
            return datetime.strptime(raw.strip(), EXIF_TIME_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    return None


def _to_degrees(value: Any) -> Optional[float]:
    """Decimal degrees from a number or a (degrees, minutes, seconds) triple."""
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (list, tuple)) and len(value) == 3:
        try:
            d, m, s = (float(v) for v in value)
        except (TypeError, ValueError):
            return None
        return d + m / 60 + s / 3600
    return None


def exif_gps(photo: PhotoPayload) -> Optional[Coordinate]:
    """GPS position embedded in EXIF, or None if absent or unreadable."""
    exif = photo.exif or {}
    lat = _to_degrees(exif.get("GPSLatitude"))
    lon = _to_degrees(exif.get("GPSLongitude"))
    if lat is None or lon is None:
        return None

    if str(exif.get("GPSLatitudeRef", "N")).upper() == "S":
        lat = -abs(lat)
    if str(exif.get("GPSLongitudeRef", "E")).upper() == "W":
        lon = -abs(lon)

    return Coordinate(latitude=lat, longitude=lon)


def has_exif_gps(photo: PhotoPayload) -> bool:
    exif = photo.exif or {}
    return "GPSLatitude" in exif and "GPSLongitude" in exif
