import pytest

from mapoverlay.features.georeferencing.models import ControlPoint, GeoPoint, MapView
from mapoverlay.features.georeferencing.orchestrator import TransformOrchestrator

CENTER_LAT, CENTER_LON = 34.853667, 135.472041


@pytest.fixture
def map_view():
    return MapView(CENTER_LAT, CENTER_LON, 15)

@pytest.fixture
def orchestrator(map_view):
    orch = TransformOrchestrator()
    result = orch.load_image(1000, 800, map_view)
    assert result.success
    return orch

@pytest.fixture
def park_points():
    """Four non-collinear control points and their geo matches."""
    control = [
        ControlPoint("gate", 100, 700),
        ControlPoint("shrine", 500, 100),
        ControlPoint("pond", 900, 600),
        ControlPoint("lookout", 400, 400),
    ]
    geo = [
        GeoPoint("gate", 34.8491, 135.4663),
        GeoPoint("shrine", 34.8565, 135.4722),
        GeoPoint("pond", 34.8506, 135.4769),
        GeoPoint("lookout", 34.8537, 135.4698),
    ]
    return control, geo
