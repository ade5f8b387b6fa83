"""
GeoMath: pure geospatial functions.

Anything exposing `latitude` and `longitude` attributes (Coordinate,
ReportedLocation, CommonLocation, RouteStop) is accepted as a point.

Conventions:
- distances in meters, speeds in m/s, times in seconds
- Earth is a sphere of radius 6,371,000 m (Haversine)
"""

import math
from decimal import Decimal
from typing import List, Optional, Sequence

from pydantic import BaseModel

from src.core.schema import Coordinate, LocationSample

EARTH_RADIUS_METERS = 6_371_000.0

# Average travel speeds in m/s
TRAVEL_SPEEDS = {
    "walking": 1.4,    # 5 km/h
    "driving": 13.9,   # 50 km/h
    "transit": 8.3,    # 30 km/h
}


class RadiusCheck(BaseModel):
    valid: bool
    distance: float
    radius: float


class RouteStop(BaseModel):
    id: str
    latitude: float
    longitude: float


def distance_meters(a, b) -> float:
    """
    Great-circle distance between two points (Haversine formula).

    Symmetric, and exactly 0 for identical points.
    """
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = (math.sin(d_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    # Rounding can push h a hair above 1 for antipodal points
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_METERS * c


def speed_meters_per_second(a: LocationSample, b: LocationSample) -> Optional[float]:
    """
    Travel speed implied by moving from sample `a` to sample `b`.

    Returns None when the elapsed time is zero or negative: the speed is
    undefined and must be left out of anomaly checks.
    """
    elapsed = (b.timestamp - a.timestamp).total_seconds()
    if elapsed <= 0:
        return None
    return distance_meters(a.coordinate, b.coordinate) / elapsed


def is_inside_polygon(point, polygon: Sequence) -> bool:
    """
    Ray-casting point-in-polygon test.

    Longitude is the x axis, latitude the y axis. Points exactly on an edge
    get whatever the crossing count gives them, which is deterministic for a
    given vertex order. Polygons with fewer than 3 vertices contain nothing.
    """
    if len(polygon) < 3:
        return False

    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        vi, vj = polygon[i], polygon[j]
        if (vi.latitude > point.latitude) != (vj.latitude > point.latitude):
            crossing_lon = ((vj.longitude - vi.longitude) *
                            (point.latitude - vi.latitude) /
                            (vj.latitude - vi.latitude) + vi.longitude)
            if point.longitude < crossing_lon:
                inside = not inside
        j = i

    return inside


def decimal_precision(value: float) -> int:
    """
    Number of digits after the decimal point in the shortest repr of `value`.

    Whole numbers report 0. GPS chips rarely produce more than 7-8
    meaningful digits, so higher counts are a spoofing signal.
    """
    if not math.isfinite(value):
        raise ValueError(f"Non-finite coordinate: {value}")
    if value == int(value):
        return 0

    exponent = Decimal(repr(value)).normalize().as_tuple().exponent
    return max(0, -exponent)


def within_radius(point, target, radius_meters: float = 100.0) -> RadiusCheck:
    """Is `point` within `radius_meters` of `target`?"""
    distance = distance_meters(point, target)
    return RadiusCheck(valid=distance <= radius_meters, distance=distance, radius=radius_meters)


def generate_geofence(center, radius_meters: float, points: int = 16) -> List[Coordinate]:
    """Approximate a circular geofence around `center` with a regular polygon."""
    vertices = []
    angular = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    lat_scale = math.cos(math.radians(center.latitude))

    for i in range(points):
        angle = math.radians(i * 360 / points)
        lat = center.latitude + angular * math.cos(angle)
        lon = center.longitude + angular * math.sin(angle) / lat_scale
        vertices.append(Coordinate(latitude=lat, longitude=lon))

    return vertices


def estimate_travel_time(a, b, mode: str = "driving") -> int:
    """Estimated travel time in whole seconds for the given mode."""
    if mode not in TRAVEL_SPEEDS:
        raise ValueError(f"Unknown travel mode '{mode}', expected one of {sorted(TRAVEL_SPEEDS)}")
    return round(distance_meters(a, b) / TRAVEL_SPEEDS[mode])


def optimize_route(start, stops: Sequence[RouteStop]) -> List[RouteStop]:
    """
    Order stops with the nearest-neighbour heuristic, starting from `start`.

    Ties go to the stop listed first.
    """
    remaining = list(stops)
    if len(remaining) <= 1:
        return remaining

    ordered = []
    current = start
    while remaining:
        nearest_index = 0
        nearest_distance = distance_meters(current, remaining[0])
        for i in range(1, len(remaining)):
            d = distance_meters(current, remaining[i])
            if d < nearest_distance:
                nearest_distance = d
                nearest_index = i
        current = remaining.pop(nearest_index)
        ordered.append(current)

    return ordered
