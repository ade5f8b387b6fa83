"""
Tests for GeoMath

Distance accuracy against known references, speed guard, point-in-polygon,
coordinate precision and the routing helpers.
"""

import math
from datetime import timedelta

import pytest

from src.core.schema import Coordinate
from src.geo.geo_math import (
    EARTH_RADIUS_METERS,
    RouteStop,
    decimal_precision,
    distance_meters,
    estimate_travel_time,
    generate_geofence,
    is_inside_polygon,
    optimize_route,
    speed_meters_per_second,
    within_radius,
)


def coord(lat, lon):
    return Coordinate(latitude=lat, longitude=lon)


# ============================================================================
# DISTANCE
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("a, b", [
    ((-25.8627, 28.1871), (-26.1076, 28.0567)),
    ((51.5074, -0.1278), (40.7128, -74.0060)),
    ((0.0, 0.0), (0.0, 179.9)),
    ((89.9, 10.0), (-89.9, -170.0)),
])
def test_distance_is_symmetric_and_zero_on_self(a, b):
    pa, pb = coord(*a), coord(*b)

    assert distance_meters(pa, pb) == pytest.approx(distance_meters(pb, pa), rel=1e-12)
    assert distance_meters(pa, pa) == 0.0
    assert distance_meters(pb, pb) == 0.0


@pytest.mark.unit
def test_one_degree_longitude_at_equator():
    d = distance_meters(coord(0.0, 0.0), coord(0.0, 1.0))
    assert d == pytest.approx(111_195, rel=0.001)


@pytest.mark.unit
def test_half_circumference():
    d = distance_meters(coord(0.0, 0.0), coord(0.0, 180.0))
    assert d == pytest.approx(math.pi * EARTH_RADIUS_METERS, rel=0.0001)


@pytest.mark.unit
def test_pretoria_to_johannesburg_is_about_30km():
    d = distance_meters(coord(-25.8627, 28.1871), coord(-26.1076, 28.0567))
    assert 29_500 < d < 31_000


# ============================================================================
# SPEED
# ============================================================================

@pytest.mark.unit
def test_speed_undefined_when_no_time_elapsed(make_sample, weekday_morning):
    a = make_sample(-25.8627, 28.1871, weekday_morning)
    b = make_sample(-26.1076, 28.0567, weekday_morning)
    backwards = make_sample(-26.1076, 28.0567, weekday_morning - timedelta(seconds=5))

    assert speed_meters_per_second(a, b) is None
    assert speed_meters_per_second(a, backwards) is None


@pytest.mark.unit
def test_speed_is_distance_over_elapsed(make_sample, weekday_morning):
    a = make_sample(0.0, 0.0, weekday_morning)
    b = make_sample(0.0, 1.0, weekday_morning + timedelta(seconds=1000))

    assert speed_meters_per_second(a, b) == pytest.approx(111.195, rel=0.001)


# ============================================================================
# POLYGON / PRECISION
# ============================================================================

SQUARE = [coord(0, 0), coord(0, 10), coord(10, 10), coord(10, 0)]


@pytest.mark.unit
def test_point_in_polygon():
    assert is_inside_polygon(coord(5, 5), SQUARE)
    assert not is_inside_polygon(coord(15, 5), SQUARE)
    assert not is_inside_polygon(coord(5, -1), SQUARE)


@pytest.mark.unit
def test_degenerate_polygon_contains_nothing():
    assert not is_inside_polygon(coord(0, 0), [coord(0, 0), coord(1, 1)])


@pytest.mark.unit
def test_edge_points_are_deterministic():
    first = is_inside_polygon(coord(0, 5), SQUARE)
    assert all(is_inside_polygon(coord(0, 5), SQUARE) == first for _ in range(5))


@pytest.mark.unit
@pytest.mark.parametrize("value, digits", [
    (10.0, 0),
    (-25.8627, 4),
    (28.1, 1),
    (1.123456789, 9),
])
def test_decimal_precision(value, digits):
    assert decimal_precision(value) == digits


@pytest.mark.unit
def test_decimal_precision_rejects_non_finite():
    with pytest.raises(ValueError):
        decimal_precision(float("nan"))


# ============================================================================
# GEOFENCE / ROUTING
# ============================================================================

@pytest.mark.unit
def test_within_radius_reports_distance():
    check = within_radius(coord(0.0, 0.0), coord(0.0, 0.0005), radius_meters=100)

    assert check.valid
    assert check.distance == pytest.approx(55.6, rel=0.01)
    assert not within_radius(coord(0.0, 0.0), coord(0.0, 0.01), radius_meters=100).valid


@pytest.mark.unit
def test_geofence_vertices_lie_on_the_circle():
    center = coord(-25.8627, 28.1871)
    fence = generate_geofence(center, 500, points=12)

    assert len(fence) == 12
    for vertex in fence:
        assert distance_meters(center, vertex) == pytest.approx(500, rel=0.01)
    assert is_inside_polygon(center, fence)


@pytest.mark.unit
def test_estimate_travel_time():
    a, b = coord(0.0, 0.0), coord(0.0, 1.0)

    assert estimate_travel_time(a, b, "walking") == round(distance_meters(a, b) / 1.4)
    assert estimate_travel_time(a, b, "driving") < estimate_travel_time(a, b, "transit")
    with pytest.raises(ValueError):
        estimate_travel_time(a, b, "teleport")


@pytest.mark.unit
def test_optimize_route_nearest_neighbour():
    stops = [
        RouteStop(id="far", latitude=0.0, longitude=3.0),
        RouteStop(id="near", latitude=0.0, longitude=1.0),
        RouteStop(id="middle", latitude=0.0, longitude=2.0),
    ]

    ordered = optimize_route(coord(0.0, 0.0), stops)

    assert [s.id for s in ordered] == ["near", "middle", "far"]
    assert optimize_route(coord(0.0, 0.0), []) == []
