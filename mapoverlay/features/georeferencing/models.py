"""
mapoverlay/features/georeferencing/models.py

Value types shared by the georeferencing engine.

Everything here is frozen: a new georeferencing run or a new placement
produces new values, and holders swap references instead of mutating.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from affine import Affine


# --- Inputs --------------------------------------------------------------
@dataclass(frozen=True)
class ControlPoint:
    """An image-space feature, in natural image pixels (y grows downward)."""
    id: str
    pixel_x: float
    pixel_y: float

@dataclass(frozen=True)
class GeoPoint:
    """An authoritative geographic feature (WGS84 degrees)."""
    id: str
    lat: float
    lon: float
    elevation: Optional[float] = None

@dataclass(frozen=True)
class MatchedPair:
    id: str
    control_point: ControlPoint
    geo_point: GeoPoint

@dataclass(frozen=True)
class MatchResult:
    """Outcome of pairing control points with geo points by id."""
    matched: tuple[MatchedPair, ...] = ()
    unmatched_control_point_ids: tuple[str, ...] = ()
    total_control_points: int = 0
    total_geo_points: int = 0

    @property
    def matched_count(self) -> int:
        return len(self.matched)


# --- Transform -----------------------------------------------------------
@dataclass(frozen=True)
class TransformAccuracy:
    """Residuals of a solved transform, in projected meters."""
    mean_error_m: float
    max_error_m: float
    min_error_m: float
    per_point_errors: tuple[float, ...] = ()

class StrategyKind(str, Enum):
    UNSET = "unset"
    IMAGE_BOUNDS_ONLY = "image_bounds_only"
    CENTER_ONLY = "center_only"
    TWO_POINT = "two_point"
    SOLVED = "solved"

@dataclass(frozen=True)
class TransformState:
    """The orchestrator's single source of truth for the current mapping.

    ``transform`` maps image pixels to Web Mercator meters and is ``None`` for
    ``UNSET`` and ``IMAGE_BOUNDS_ONLY``. ``accuracy`` only exists for ``SOLVED``.
    """
    kind: StrategyKind = StrategyKind.UNSET
    transform: Optional[Affine] = None
    accuracy: Optional[TransformAccuracy] = None
    control_point_ids: tuple[str, ...] = ()

    @property
    def has_transform(self) -> bool:
        return self.transform is not None


# --- Map surface ---------------------------------------------------------
@dataclass(frozen=True)
class MapView:
    """What the rendering surface reports about the basemap."""
    center_lat: float
    center_lon: float
    zoom: int

@dataclass(frozen=True)
class GeoBounds:
    south: float
    west: float
    north: float
    east: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.south + self.north) / 2, (self.west + self.east) / 2

@dataclass(frozen=True)
class ImagePlacement:
    """Where the image currently sits on the basemap.

    ``scale`` is relative to the basemap's meters-per-pixel at ``zoom``; the
    geographic ``bounds`` are what the rendering surface draws.
    """
    center_lat: float
    center_lon: float
    scale: float
    zoom: int
    width: float
    height: float
    bounds: GeoBounds

class ChangeReason(str, Enum):
    IMAGE_LOADED = "image_loaded"
    TRANSFORM_INSTALLED = "transform_installed"
    VIEW_CHANGED = "view_changed"
    MANUAL_MOVE = "manual_move"
    MANUAL_SCALE = "manual_scale"

@dataclass(frozen=True)
class PlacementChanged:
    """Emitted once a state/placement change is fully committed."""
    revision: int
    reason: ChangeReason
    state: TransformState
    placement: ImagePlacement


# --- Orchestrator outcome ------------------------------------------------
@dataclass(frozen=True)
class GeoreferenceResult:
    success: bool
    state: TransformState
    event: Optional[PlacementChanged] = None
    match: MatchResult = field(default_factory=MatchResult)
    excluded_ids: tuple[str, ...] = ()
    error: Optional[Exception] = None
