"""
Location integrity checks for a single reported location.

Rules (each fires independently, 0-5 flags per call):
1. Accuracy worse than 100 m                        -> MEDIUM
2. Speed from the most recent prior sample
   > 50 m/s (180 km/h)                              -> CRITICAL
   > 30 m/s (108 km/h)                              -> HIGH
   (only when elapsed time > 0)
3. More than 8 decimal digits on either axis        -> MEDIUM
4. More than 3 history entries with the exact same
   latitude AND longitude                           -> HIGH
5. Farther than 1 km from every common location,
   with at least 10 common locations known          -> LOW

History is expected chronological (oldest first), same agent, and already
cut to the caller's window.
"""

from typing import List, Optional, Sequence

from src.core.schema import CommonLocation, Flag, FlagCategory, LocationSample, Severity
from src.geo.geo_math import decimal_precision, distance_meters, speed_meters_per_second

MAX_ACCURACY_METERS = 100.0
IMPOSSIBLE_SPEED_MPS = 50.0
SUSPICIOUS_SPEED_MPS = 30.0
MAX_COORDINATE_PRECISION = 8
MAX_EXACT_REPEATS = 3
UNUSUAL_LOCATION_RADIUS_METERS = 1000.0
MIN_COMMON_LOCATIONS = 10


class LocationIntegrityChecker:
    """
    Flags GPS accuracy, impossible-speed, precision and exact-repeat anomalies.

    Usage:
        checker = LocationIntegrityChecker()
        flags = checker.check(sample, history, profile.common_locations)
    """

    def check(
        self,
        current: LocationSample,
        history: Sequence[LocationSample],
        common_locations: Optional[Sequence[CommonLocation]] = None
    ) -> List[Flag]:
        flags = []

        for rule in (self._check_accuracy, self._check_speed,
                     self._check_precision, self._check_exact_repeats):
            flag = rule(current, history)
            if flag is not None:
                flags.append(flag)

        flag = self._check_unusual_location(current, common_locations or [])
        if flag is not None:
            flags.append(flag)

        return flags

    def _check_accuracy(self, current: LocationSample, history) -> Optional[Flag]:
        if current.accuracy <= MAX_ACCURACY_METERS:
            return None
        return Flag(
            category=FlagCategory.LOCATION,
            severity=Severity.MEDIUM,
            description=f"GPS accuracy too low ({current.accuracy:.0f}m > {MAX_ACCURACY_METERS:.0f}m)",
            evidence={"accuracy": current.accuracy},
            confidence=0.7,
        )

    def _check_speed(self, current: LocationSample, history) -> Optional[Flag]:
        if not history:
            return None

        previous = history[-1]
        speed = speed_meters_per_second(previous, current)
        if speed is None or speed <= SUSPICIOUS_SPEED_MPS:
            return None

        evidence = {
            "distance": distance_meters(previous.coordinate, current.coordinate),
            "time_diff": (current.timestamp - previous.timestamp).total_seconds(),
            "speed": speed,
            "last_location": previous.coordinate.model_dump(),
        }
        if speed > IMPOSSIBLE_SPEED_MPS:
            return Flag(
                category=FlagCategory.LOCATION,
                severity=Severity.CRITICAL,
                description=f"Impossible travel speed detected: {speed * 3.6:.1f} km/h",
                evidence=evidence,
                confidence=0.95,
            )
        return Flag(
            category=FlagCategory.LOCATION,
            severity=Severity.HIGH,
            description=f"Suspicious travel speed: {speed * 3.6:.1f} km/h",
            evidence=evidence,
            confidence=0.8,
        )

    def _check_precision(self, current: LocationSample, history) -> Optional[Flag]:
        lat_digits = decimal_precision(current.coordinate.latitude)
        lon_digits = decimal_precision(current.coordinate.longitude)
        if lat_digits <= MAX_COORDINATE_PRECISION and lon_digits <= MAX_COORDINATE_PRECISION:
            return None
        return Flag(
            category=FlagCategory.LOCATION,
            severity=Severity.MEDIUM,
            description="Suspicious coordinate precision detected",
            evidence={"latitude_digits": lat_digits, "longitude_digits": lon_digits},
            confidence=0.75,
        )

    def _check_exact_repeats(self, current: LocationSample, history) -> Optional[Flag]:
        matches = sum(
            1 for prev in history
            if prev.coordinate.latitude == current.coordinate.latitude
            and prev.coordinate.longitude == current.coordinate.longitude
        )
        if matches <= MAX_EXACT_REPEATS:
            return None
        return Flag(
            category=FlagCategory.LOCATION,
            severity=Severity.HIGH,
            description="Repeated exact coordinates",
            evidence={"exact_matches": matches, "location": current.coordinate.model_dump()},
            confidence=0.85,
        )

    def _check_unusual_location(
        self,
        current: LocationSample,
        common_locations: Sequence[CommonLocation]
    ) -> Optional[Flag]:
        if len(common_locations) < MIN_COMMON_LOCATIONS:
            return None

        nearest = min(distance_meters(current.coordinate, c) for c in common_locations)
        if nearest <= UNUSUAL_LOCATION_RADIUS_METERS:
            return None
        return Flag(
            category=FlagCategory.LOCATION,
            severity=Severity.LOW,
            description="Unusual location for this agent",
            evidence={
                "location": current.coordinate.model_dump(),
                "nearest_common_location_m": nearest,
                "common_location_count": len(common_locations),
            },
            confidence=0.6,
        )
