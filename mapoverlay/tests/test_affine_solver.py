import numpy as np
import pytest
from affine import Affine

from mapoverlay.features.georeferencing import projection as proj
from mapoverlay.features.georeferencing.affine_solver import gauss_jordan, solve_affine, transform_accuracy
from mapoverlay.features.georeferencing.errors import (
    InsufficientControlPointsError,
    NonFiniteProjectionError,
    SingularSystemError,
)
from mapoverlay.tests.builders import pair, geo_for


@pytest.fixture
def known_transform():
    x0, y0 = proj.to_mercator(34.85, 135.47)
    return Affine(2.0, 0.3, x0, 0.1, -2.5, y0)

def pairs_on(transform, pixels):
    return [pair(f"p{i}", px, py, *geo_for(transform, px, py)) for i, (px, py) in enumerate(pixels)]


class TestGaussJordan:
    def test_needs_row_swap(self):
        m = np.array([[0.0, 1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 2.0]])
        x = gauss_jordan(m, np.array([2.0, 3.0, 4.0]))
        np.testing.assert_allclose(x, [3.0, 2.0, 2.0])

    def test_singular_raises(self):
        m = np.array([[1.0, 2.0], [2.0, 4.0]])
        with pytest.raises(SingularSystemError):
            gauss_jordan(m, np.array([1.0, 2.0]))

    def test_rejects_non_square(self):
        with pytest.raises(ValueError):
            gauss_jordan(np.ones((2, 3)), np.ones(2))


def test_three_points_fit_exactly(known_transform):
    pairs = pairs_on(known_transform, [(0, 0), (400, 50), (120, 300)])
    solved = solve_affine(pairs)

    assert solved.accuracy.max_error_m <= 1e-6
    for got, want in zip(solved.transform[:6], known_transform[:6]):
        assert got == pytest.approx(want, rel=1e-6, abs=1e-6)

def test_overdetermined_exact_data(known_transform):
    pixels = [(0, 0), (400, 50), (120, 300), (800, 600), (30, 900)]
    solved = solve_affine(pairs_on(known_transform, pixels))
    assert solved.accuracy.max_error_m <= 1e-6
    assert len(solved.accuracy.per_point_errors) == 5

def test_noisy_data_is_least_squares(known_transform):
    pairs = pairs_on(known_transform, [(0, 0), (400, 50), (120, 300), (800, 600)])
    lat, lon = pairs[3].geo_point.lat, pairs[3].geo_point.lon
    pairs[3] = pair("p3", 800, 600, lat + 0.0001, lon)

    acc = solve_affine(pairs).accuracy
    assert acc.mean_error_m > 0
    assert acc.min_error_m <= acc.mean_error_m <= acc.max_error_m
    # the outlier's offset is shared with the other points
    offset = proj.lat_to_y(lat + 0.0001) - proj.lat_to_y(lat)
    assert acc.max_error_m < offset

def test_local_three_point_scenario():
    pairs = [
        pair("A", 0, 0, 0.0, 0.0),
        pair("B", 100, 0, 0.0, 0.001),
        pair("C", 0, 100, 0.001, 0.0),
    ]
    assert solve_affine(pairs).accuracy.max_error_m < 0.01

def test_collinear_points_are_singular():
    pairs = [
        pair("A", 0, 0, 34.85, 135.47),
        pair("B", 10, 10, 34.851, 135.471),
        pair("C", 20, 20, 34.852, 135.472),
    ]
    with pytest.raises(SingularSystemError):
        solve_affine(pairs)

def test_sloped_collinear_points_at_image_scale_are_singular():
    base, step = (604.4, 1663.5), (1.33, 1.27)
    pairs = [
        pair(pid, base[0] + t * step[0], base[1] + t * step[1], 34.85 + t * 1e-5, 135.47 + t * 2e-5)
        for pid, t in zip("ABC", (698, -125, 528))
    ]
    with pytest.raises(SingularSystemError):
        solve_affine(pairs)

def test_collinear_points_far_from_origin_are_singular():
    pairs = [
        pair(pid, 3000.0 + 7 * n, 4000.0 - 3 * n, 34.85 + n * 1e-4, 135.47 - n * 3e-4)
        for pid, n in zip("ABCD", (0, 150, 310, 420))
    ]
    with pytest.raises(SingularSystemError):
        solve_affine(pairs)

def test_large_image_still_fits_exactly(known_transform):
    pixels = [(0, 0), (6000, 250), (900, 4500), (5200, 3900)]
    solved = solve_affine(pairs_on(known_transform, pixels))
    assert solved.accuracy.max_error_m <= 1e-6
    assert solved.transform.a == pytest.approx(known_transform.a, rel=1e-6)

def test_duplicate_pixels_are_singular():
    pairs = [
        pair("A", 5, 5, 34.85, 135.47),
        pair("B", 5, 5, 34.851, 135.471),
        pair("C", 5, 5, 34.852, 135.473),
    ]
    with pytest.raises(SingularSystemError):
        solve_affine(pairs)

def test_two_points_are_not_enough():
    with pytest.raises(InsufficientControlPointsError) as exc:
        solve_affine([pair("A", 0, 0, 1, 1), pair("B", 1, 1, 2, 2)])
    assert exc.value.available == 2

def test_pole_is_rejected():
    pairs = [pair("A", 0, 0, 90.0, 0.0), pair("B", 1, 0, 0, 1), pair("C", 0, 1, 1, 0)]
    with pytest.raises(NonFiniteProjectionError):
        solve_affine(pairs)

def test_accuracy_of_identity_transform_on_no_pairs():
    assert transform_accuracy([], Affine.identity()).per_point_errors == ()
