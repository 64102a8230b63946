"""
mapoverlay/features/georeferencing/synchronizer.py

Recompute the cached lat/lon of image-derived entities after a placement
change. Geographic (GPS/survey) records are never touched.

Two modes, picked from the event's state:
- ``affine``: the state carries a transform (solved or degraded); pixels go
  through it to Mercator meters, then back to lat/lon.
- ``bounds``: no transform; pixels are interpolated linearly inside the
  image's placement bounds.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from mapoverlay.globals.logutil import info, warn
from mapoverlay.features.georeferencing import projection as proj
from mapoverlay.features.georeferencing.affine_solver import apply_affine
from mapoverlay.features.georeferencing.entities import EntityStore, TrackedEntity
from mapoverlay.features.georeferencing.models import ImagePlacement, PlacementChanged, TransformState

AFFINE_MODE = "affine"
BOUNDS_MODE = "bounds"


@dataclass(frozen=True)
class EntityUpdate:
    entity_id: str
    vertex_index: Optional[int]
    lat: float
    lon: float

@dataclass
class SyncReport:
    revision: int
    mode: str
    updates: list[EntityUpdate] = field(default_factory=list)
    held: list[str] = field(default_factory=list)
    flagged: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def summary(self) -> str:
        if self.skipped:
            return f"r{self.revision}: already synchronized"
        return (f"r{self.revision} ({self.mode}): {len(self.updates)} updated, "
                f"{len(self.held)} held, {len(self.flagged)} flagged")


def sync_mode(state: TransformState) -> str:
    return AFFINE_MODE if state.has_transform else BOUNDS_MODE

def pixel_to_geo(px: float, py: float, state: TransformState, placement: ImagePlacement) -> tuple[float, float]:
    """Image pixel -> (lat, lon) under ``state``/``placement``. May return non-finite values."""
    if state.has_transform:
        x, y = apply_affine(state.transform, px, py)
        return proj.from_mercator(x, y)

    b = placement.bounds
    lon = b.west + (b.east - b.west) * px / placement.width
    lat = b.north - (b.north - b.south) * py / placement.height
    return lat, lon

def project_pixel(px: float, py: float, event: PlacementChanged) -> tuple[float, float]:
    return pixel_to_geo(px, py, event.state, event.placement)

def _label(entity_id: str, vertex_index: Optional[int]) -> str:
    return entity_id if vertex_index is None else f"{entity_id}[{vertex_index}]"


class EntitySynchronizer:
    def __init__(self, store: EntityStore, *, verbose: bool = False):
        self.store = store
        self.verbose = verbose
        self.last_revision = 0

    def resync(self, event: PlacementChanged) -> SyncReport:
        """Reposition every image-derived record for ``event``.

        Events at or below the last synchronized revision are ignored.
        """
        mode = sync_mode(event.state)
        if event.revision <= self.last_revision:
            if self.verbose:
                info(f"Ignoring placement r{event.revision}; already at r{self.last_revision}.")
            return SyncReport(revision=event.revision, mode=mode, skipped=True)

        report = SyncReport(revision=event.revision, mode=mode)
        for entity_id, vertex_index, record in self.store.iter_records():
            label = _label(entity_id, vertex_index)
            if not record.is_image_derived:
                report.held.append(label)
                continue
            self._reposition(record, entity_id, vertex_index, event, report)

        self.last_revision = event.revision
        if report.flagged:
            warn(f"Could not place {len(report.flagged)} entities: {report.flagged}")
        info(f"Entity sync {report.summary}")
        return report

    def _reposition(self, record: TrackedEntity, entity_id: str, vertex_index: Optional[int],
                    event: PlacementChanged, report: SyncReport) -> None:
        label = _label(entity_id, vertex_index)
        lat, lon = project_pixel(record.pixel_x, record.pixel_y, event)
        if not proj.is_finite(lat, lon):
            record.flagged = True
            report.flagged.append(label)
            return

        record.current_lat, record.current_lon = lat, lon
        record.flagged = False
        report.updates.append(EntityUpdate(entity_id, vertex_index, lat, lon))
        if self.verbose:
            info(f"  {label}: ({record.pixel_x:g}, {record.pixel_y:g}) px -> ({lat:.6f}, {lon:.6f})")
