import pytest

from app.utils.geo import haversine_m, is_within_geofence


def test_same_point_is_zero():
    assert haversine_m(12.9716, 77.5946, 12.9716, 77.5946) == 0.0


def test_small_latitude_offset():
    assert haversine_m(0, 0, 0.0005, 0) == pytest.approx(55.6, abs=0.1)


def test_distance_is_symmetric():
    a = haversine_m(28.6139, 77.2090, 19.0760, 72.8777)
    b = haversine_m(19.0760, 72.8777, 28.6139, 77.2090)
    assert a == pytest.approx(b)
    # Delhi to Mumbai is roughly 1,150 km
    assert 1_100_000 < a < 1_200_000


def test_boundary_is_inclusive():
    distance = haversine_m(0.0003, 0.0002, 0, 0)

    within, measured = is_within_geofence(0.0003, 0.0002, 0, 0, distance)
    assert within is True
    assert measured == distance

    within, _ = is_within_geofence(0.0003, 0.0002, 0, 0, distance - 1)
    assert within is False


def test_fifty_metre_fence():
    assert is_within_geofence(0, 0, 0, 0, 50)[0] is True
    assert is_within_geofence(0.0005, 0, 0, 0, 50)[0] is False
