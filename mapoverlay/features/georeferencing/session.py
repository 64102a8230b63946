"""
mapoverlay/features/georeferencing/session.py

One image, one map, one set of entities: wires the orchestrator's placement
events straight into the synchronizer.
"""
from __future__ import annotations

from typing import Iterable, Optional

from mapoverlay.globals.config_models import GeorefConfig, ProjectConfig
from mapoverlay.globals.logutil import process_step, info
from mapoverlay.features.georeferencing.entities import EntityStore
from mapoverlay.features.georeferencing.models import (
    ControlPoint,
    GeoPoint,
    GeoreferenceResult,
    MapView,
)
from mapoverlay.features.georeferencing.orchestrator import TransformOrchestrator
from mapoverlay.features.georeferencing.synchronizer import EntitySynchronizer, SyncReport, pixel_to_geo


class GeoreferencingSession:
    def __init__(self, config: Optional[GeorefConfig] = None, store: Optional[EntityStore] = None):
        self.config = config or GeorefConfig()
        self.orchestrator = TransformOrchestrator(self.config)
        self.store = store if store is not None else EntityStore()
        self.synchronizer = EntitySynchronizer(self.store, verbose=self.config.verbose)

    @classmethod
    def from_project(cls, project: ProjectConfig, config: Optional[GeorefConfig] = None) -> "GeoreferencingSession":
        """Session with every entity of ``project`` registered (image not loaded yet)."""
        session = cls(config)
        for reg in project.points:
            session.store.register_point(reg)
        for reg in project.spots:
            session.store.register_spot(reg)
        for route_id, vertices in project.routes.items():
            session.store.register_route(route_id, vertices)
        for area_id, vertices in project.areas.items():
            session.store.register_area(area_id, vertices)
        info(f"Registered {len(session.store)} entities")
        return session

    @property
    def state(self):
        return self.orchestrator.state

    @property
    def placement(self):
        return self.orchestrator.placement

    def _sync(self, result: GeoreferenceResult) -> tuple[GeoreferenceResult, Optional[SyncReport]]:
        if result.event is None:
            return result, None
        return result, self.synchronizer.resync(result.event)

    def load_image(self, width, height, map_view: MapView):
        process_step(f"Loading image {width} x {height}")
        return self._sync(self.orchestrator.load_image(width, height, map_view))

    def georeference(self, control_points: Iterable[ControlPoint], geo_points: Iterable[GeoPoint],
                     map_view: MapView):
        return self._sync(self.orchestrator.georeference(control_points, geo_points, map_view))

    def move_image(self, center_lat: float, center_lon: float, map_view: MapView):
        return self._sync(self.orchestrator.move_image(center_lat, center_lon, map_view))

    def nudge_image(self, dlat: float, dlon: float, map_view: MapView):
        return self._sync(self.orchestrator.nudge_image(dlat, dlon, map_view))

    def set_scale(self, scale: float, map_view: MapView):
        return self._sync(self.orchestrator.set_scale(scale, map_view))

    def refresh(self, map_view: MapView):
        """Zoom/pan: re-place the image against the new view and resync."""
        return self._sync(self.orchestrator.apply(map_view))

    def image_to_geo(self, px: float, py: float) -> Optional[tuple[float, float]]:
        """(lat, lon) of an image pixel under the current mapping, or None without an image."""
        placement = self.orchestrator.placement
        if placement is None:
            return None
        return pixel_to_geo(px, py, self.orchestrator.state, placement)

    def clear(self) -> None:
        self.orchestrator.reset()
        self.store.clear()
