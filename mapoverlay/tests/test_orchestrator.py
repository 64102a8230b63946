import math
from dataclasses import replace

import pytest

from mapoverlay.features.georeferencing import projection as proj
from mapoverlay.features.georeferencing.affine_solver import apply_affine
from mapoverlay.features.georeferencing.errors import (
    DuplicateControlPointError,
    InvalidImageDimensionsError,
    SingularSystemError,
)
from mapoverlay.features.georeferencing.models import (
    ChangeReason,
    ControlPoint,
    GeoPoint,
    StrategyKind,
)
from mapoverlay.features.georeferencing.orchestrator import TransformOrchestrator


def test_load_image_places_initial_square(orchestrator, map_view):
    p = orchestrator.placement
    assert orchestrator.state.kind is StrategyKind.UNSET
    assert orchestrator.revision == 1
    assert p.scale == 0.1
    assert p.center_lat == pytest.approx(map_view.center_lat - 0.006)
    assert p.center_lon == pytest.approx(map_view.center_lon - 0.006)
    assert p.bounds.north - p.bounds.south == pytest.approx(0.002)
    assert p.bounds.east - p.bounds.west == pytest.approx(0.002)

@pytest.mark.parametrize("width, height", [(0, 800), (1000, -1), (float("nan"), 800), (1000, float("inf"))])
def test_invalid_dimensions_change_nothing(orchestrator, map_view, width, height):
    before = (orchestrator.state, orchestrator.placement, orchestrator.revision)
    result = orchestrator.load_image(width, height, map_view)
    assert not result.success
    assert isinstance(result.error, InvalidImageDimensionsError)
    assert result.event is None
    assert (orchestrator.state, orchestrator.placement, orchestrator.revision) == before

def test_georeference_without_image_fails(map_view, park_points):
    orch = TransformOrchestrator()
    result = orch.georeference(*park_points, map_view)
    assert not result.success
    assert isinstance(result.error, InvalidImageDimensionsError)
    assert orch.state.kind is StrategyKind.UNSET

def test_no_matches_keeps_bounds(orchestrator, map_view):
    before = orchestrator.placement
    result = orchestrator.georeference([ControlPoint("A", 1, 1)], [GeoPoint("B", 1, 1)], map_view)
    assert result.success
    assert result.state.kind is StrategyKind.IMAGE_BOUNDS_ONLY
    assert result.state.transform is None
    assert result.event.placement.bounds == before.bounds

def test_single_point_is_center_only(orchestrator, map_view):
    cp, gp = ControlPoint("A", 250, 300), GeoPoint("A", 34.85, 135.47)
    result = orchestrator.georeference([cp], [gp], map_view)

    state = result.state
    assert state.kind is StrategyKind.CENTER_ONLY
    x, y = apply_affine(state.transform, cp.pixel_x, cp.pixel_y)
    lat, lon = proj.from_mercator(x, y)
    assert lat == pytest.approx(gp.lat, abs=1e-9)
    assert lon == pytest.approx(gp.lon, abs=1e-9)
    assert state.transform.b == 0 and state.transform.d == 0
    # current scale is kept
    assert result.event.placement.scale == pytest.approx(0.1)

def test_two_points_use_ground_distance(orchestrator, map_view):
    cps = [ControlPoint("A", 0, 0), ControlPoint("B", 300, 400)]
    gps = [GeoPoint("A", 34.85, 135.47), GeoPoint("B", 34.846, 135.474)]
    state = orchestrator.georeference(cps, gps, map_view).state

    assert state.kind is StrategyKind.TWO_POINT
    assert state.control_point_ids == ("A", "B")
    t = state.transform
    assert t.a == pytest.approx(-t.e)
    lat, lon = proj.from_mercator(*apply_affine(t, 0, 0))
    assert (lat, lon) == pytest.approx((34.85, 135.47), abs=1e-9)

    ground = proj.great_circle_distance(34.85, 135.47, 34.846, 135.474)
    cos_lat = math.cos(math.radians((34.85 + 34.846) / 2))
    assert t.a == pytest.approx(ground / 500 / cos_lat)

def test_coincident_two_points_fall_back_to_center_only(orchestrator, map_view):
    cps = [ControlPoint("A", 10, 10), ControlPoint("B", 10, 10)]
    gps = [GeoPoint("A", 34.85, 135.47), GeoPoint("B", 34.851, 135.471)]
    assert orchestrator.georeference(cps, gps, map_view).state.kind is StrategyKind.CENTER_ONLY

def test_three_or_more_points_solve(orchestrator, map_view, park_points):
    result = orchestrator.georeference(*park_points, map_view)
    assert result.success
    assert result.state.kind is StrategyKind.SOLVED
    assert result.state.accuracy is not None
    assert result.event.reason is ChangeReason.TRANSFORM_INSTALLED
    assert result.event.revision == orchestrator.revision == 2

def test_placement_center_is_image_center(orchestrator, map_view, park_points):
    result = orchestrator.georeference(*park_points, map_view)
    p = result.event.placement
    lat, lon = proj.from_mercator(*apply_affine(result.state.transform, 500, 400))
    assert (p.center_lat, p.center_lon) == pytest.approx((lat, lon))
    assert p.bounds.south < p.center_lat < p.bounds.north
    assert p.bounds.west < p.center_lon < p.bounds.east

def test_singular_keeps_previous_state(orchestrator, map_view, park_points):
    solved = orchestrator.georeference(*park_points, map_view)
    placement, revision = orchestrator.placement, orchestrator.revision

    cps = [ControlPoint(i, n, n) for n, i in enumerate("ABC")]
    gps = [GeoPoint(i, 34.85 + n * 0.001, 135.47 + n * 0.002) for n, i in enumerate("ABC")]
    result = orchestrator.georeference(cps, gps, map_view)

    assert not result.success
    assert isinstance(result.error, SingularSystemError)
    assert result.event is None
    assert orchestrator.state is solved.state
    assert orchestrator.placement is placement
    assert orchestrator.revision == revision

def test_each_run_starts_from_scratch(orchestrator, map_view, park_points):
    orchestrator.georeference(*park_points, map_view)
    control, geo = park_points
    result = orchestrator.georeference(control[:1], geo, map_view)
    assert result.state.kind is StrategyKind.CENTER_ONLY

def test_non_finite_pair_is_excluded(orchestrator, map_view, park_points):
    control, geo = park_points
    control = control + [ControlPoint("pole", 10, 10)]
    geo = geo + [GeoPoint("pole", 90.0, 135.0)]
    result = orchestrator.georeference(control, geo, map_view)
    assert result.excluded_ids == ("pole",)
    assert result.state.kind is StrategyKind.SOLVED
    assert "pole" not in result.state.control_point_ids

def test_zoom_change_only_rescales(orchestrator, map_view, park_points):
    solved = orchestrator.georeference(*park_points, map_view)
    before = solved.event.placement

    result = orchestrator.apply(replace(map_view, zoom=map_view.zoom + 1))
    after = result.event.placement
    assert result.state.transform is solved.state.transform
    assert after.scale == pytest.approx(before.scale * 2)
    assert after.bounds.north == pytest.approx(before.bounds.north)
    assert after.bounds.west == pytest.approx(before.bounds.west)
    assert result.event.reason is ChangeReason.VIEW_CHANGED

def test_zoom_change_without_transform_keeps_bounds(orchestrator, map_view):
    before = orchestrator.placement
    after = orchestrator.apply(replace(map_view, zoom=map_view.zoom - 2)).event.placement
    assert after.bounds == before.bounds
    assert after.scale == pytest.approx(before.scale / 4)

def test_manual_move_drops_transform(orchestrator, map_view, park_points):
    orchestrator.georeference(*park_points, map_view)
    result = orchestrator.move_image(34.86, 135.48, map_view)
    assert result.state.kind is StrategyKind.IMAGE_BOUNDS_ONLY
    assert result.event.placement.bounds.center == pytest.approx((34.86, 135.48))

def test_set_scale_rebuilds_bounds(orchestrator, map_view):
    small = orchestrator.placement.bounds
    big = orchestrator.set_scale(0.8, map_view).event.placement.bounds
    assert (big.north - big.south) > (small.north - small.south)

def test_set_scale_rejects_nonsense(orchestrator, map_view):
    with pytest.raises(ValueError):
        orchestrator.set_scale(0.0, map_view)

def test_reset_forgets_image(orchestrator, map_view):
    orchestrator.reset()
    assert orchestrator.placement is None
    assert not orchestrator.apply(map_view).success

def test_nudge_shifts_center(orchestrator, map_view):
    before = orchestrator.placement
    after = orchestrator.nudge_image(0.001, -0.002, map_view).event.placement
    assert after.center_lat == pytest.approx(before.center_lat + 0.001)
    assert after.center_lon == pytest.approx(before.center_lon - 0.002)
    assert after.scale == before.scale

def test_duplicate_control_point_id_is_a_failed_run(orchestrator, map_view, park_points):
    solved = orchestrator.georeference(*park_points, map_view)
    revision = orchestrator.revision

    control, geo = park_points
    result = orchestrator.georeference(control + [ControlPoint("gate", 5, 5)], geo, map_view)

    assert not result.success
    assert isinstance(result.error, DuplicateControlPointError)
    assert result.event is None
    assert orchestrator.state is solved.state
    assert orchestrator.revision == revision
