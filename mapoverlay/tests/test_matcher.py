import pytest

from mapoverlay.features.georeferencing.errors import DuplicateControlPointError
from mapoverlay.features.georeferencing.matcher import match_control_points
from mapoverlay.features.georeferencing.models import ControlPoint, GeoPoint


def cps(*ids):
    return [ControlPoint(pid, i * 10.0, i * 5.0) for i, pid in enumerate(ids)]

def gps(*ids):
    return [GeoPoint(pid, 34.0 + i * 0.001, 135.0) for i, pid in enumerate(ids)]


def test_order_preserved_and_unmatched_reported():
    result = match_control_points(cps("A", "B", "C"), gps("A", "C"))
    assert [p.id for p in result.matched] == ["A", "C"]
    assert result.unmatched_control_point_ids == ("B",)
    assert result.total_control_points == 3
    assert result.total_geo_points == 2

def test_output_follows_control_point_order():
    result = match_control_points(cps("C", "A"), gps("A", "B", "C"))
    assert [p.id for p in result.matched] == ["C", "A"]

def test_matching_is_case_sensitive():
    result = match_control_points(cps("gate"), gps("Gate"))
    assert result.matched_count == 0
    assert result.unmatched_control_point_ids == ("gate",)

def test_missing_id_gets_positional_placeholder():
    result = match_control_points(cps("A", "", "C"), gps("A", "C"))
    assert result.unmatched_control_point_ids == ("[1] (no id)",)

def test_duplicate_control_point_id_raises():
    with pytest.raises(DuplicateControlPointError):
        match_control_points(cps("A", "A"), gps("A"))

def test_duplicate_unmatched_control_point_is_not_an_error():
    result = match_control_points(cps("X", "X"), gps("A"))
    assert result.unmatched_control_point_ids == ("X", "X")

def test_last_geo_point_wins():
    geo = [GeoPoint("A", 1.0, 1.0), GeoPoint("A", 2.0, 2.0)]
    result = match_control_points(cps("A"), geo, verbose=True)
    assert result.matched[0].geo_point.lat == 2.0

def test_empty_inputs():
    result = match_control_points([], [])
    assert result.matched == ()
    assert result.unmatched_control_point_ids == ()
