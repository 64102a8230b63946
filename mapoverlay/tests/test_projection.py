import math

import numpy as np
import pytest

from mapoverlay.features.georeferencing import projection as proj
from mapoverlay.globals.configs import EARTH_RADIUS, METERS_PER_PIXEL_AT_EQUATOR


def test_origin_maps_to_zero():
    assert proj.to_mercator(0.0, 0.0) == (0.0, 0.0)

def test_antimeridian_x():
    assert proj.lon_to_x(180.0) == pytest.approx(math.pi * EARTH_RADIUS)

def test_poles_are_infinite():
    assert proj.lat_to_y(90.0) == math.inf
    assert proj.lat_to_y(-90.0) == -math.inf

def test_nan_propagates():
    x, y = proj.to_mercator(float("nan"), 10.0)
    assert math.isnan(y)
    assert not proj.is_finite(x, y)

def test_inverse_recovers_kyoto_area_point():
    lat, lon = proj.from_mercator(*proj.to_mercator(34.853667, 135.472041))
    assert lat == pytest.approx(34.853667, abs=1e-10)
    assert lon == pytest.approx(135.472041, abs=1e-10)

def test_arrays_in_arrays_out():
    ys = proj.lat_to_y(np.array([0.0, 45.0, 90.0]))
    assert isinstance(ys, np.ndarray)
    assert ys[0] == 0.0
    assert ys[1] > 0
    assert np.isinf(ys[2])

def test_meters_per_pixel_equator_and_zoom():
    assert proj.meters_per_pixel(0.0, 0) == pytest.approx(METERS_PER_PIXEL_AT_EQUATOR)
    assert proj.meters_per_pixel(0.0, 1) == pytest.approx(METERS_PER_PIXEL_AT_EQUATOR / 2)
    assert proj.meters_per_pixel(60.0, 0) == pytest.approx(METERS_PER_PIXEL_AT_EQUATOR / 2)

def test_mercator_resolution_ignores_latitude():
    assert proj.mercator_resolution(15) == pytest.approx(proj.meters_per_pixel(0.0, 15))

def test_great_circle_one_degree_at_equator():
    expected = EARTH_RADIUS * math.pi / 180
    assert proj.great_circle_distance(0, 0, 0, 1) == pytest.approx(expected)
    assert proj.great_circle_distance(10, 20, 10, 20) == 0.0
