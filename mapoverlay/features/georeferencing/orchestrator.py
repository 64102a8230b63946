"""
mapoverlay/features/georeferencing/orchestrator.py

Transform Orchestrator
======================

Owns the one active :class:`TransformState` and the image placement, and is
the only place either changes.

Strategy selection (by matched pairs with a finite projection)
--------------------------------------------------------------
0   IMAGE_BOUNDS_ONLY  no transform; the image keeps its last bounds
1   CENTER_ONLY        translate so the pixel lands on its geo point,
                       current scale, no rotation
2   TWO_POINT          uniform scale from ground vs pixel distance,
                       anchored on the first pair, no rotation
3+  SOLVED             least-squares affine (always preferred)

Every run starts from scratch. A singular solve keeps whatever state and
placement were active before it. State and placement are replaced by
rebinding to new frozen values, and a :class:`PlacementChanged` event is
built only after both are committed.

Placement
---------
The image pixel center is mapped through the active transform to get the
geographic center. The scale is the transform's projected meters per image
pixel divided by the basemap's projected meters per pixel at the current
zoom, so a zoom change only recomputes the scale.
"""
from __future__ import annotations

import math
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from affine import Affine

from mapoverlay.globals.logutil import info, warn, error, success, process_step
from mapoverlay.globals.config_models import GeorefConfig
from mapoverlay.features.georeferencing import projection as proj
from mapoverlay.features.georeferencing.affine_solver import apply_affine, solve_affine
from mapoverlay.features.georeferencing.errors import (
    DuplicateControlPointError,
    GeoreferenceError,
    InvalidImageDimensionsError,
    NonFiniteProjectionError,
)
from mapoverlay.features.georeferencing.matcher import match_control_points
from mapoverlay.features.georeferencing.models import (
    ChangeReason,
    ControlPoint,
    GeoBounds,
    GeoPoint,
    GeoreferenceResult,
    ImagePlacement,
    MapView,
    MatchedPair,
    MatchResult,
    PlacementChanged,
    StrategyKind,
    TransformState,
)


def validate_dimensions(width, height) -> tuple[float, float]:
    try:
        w, h = float(width), float(height)
    except (TypeError, ValueError) as exc:
        raise InvalidImageDimensionsError(width, height) from exc
    if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
        raise InvalidImageDimensionsError(width, height)
    return w, h

def placement_bounds(center_lat, center_lon, scale, zoom, width, height) -> GeoBounds:
    """Axis-aligned geographic box covered by the image at ``scale``/``zoom``."""
    mpp = proj.meters_per_pixel(center_lat, zoom)
    width_m = width * scale * mpp
    height_m = height * scale * mpp

    lat_offset = math.degrees((height_m / 2) / proj.EARTH_RADIUS)
    lon_offset = math.degrees((width_m / 2) / (proj.EARTH_RADIUS * math.cos(math.radians(center_lat))))

    bounds = GeoBounds(
        south=center_lat - lat_offset,
        west=center_lon - lon_offset,
        north=center_lat + lat_offset,
        east=center_lon + lon_offset,
    )
    if not proj.is_finite(bounds.south, bounds.west, bounds.north, bounds.east):
        raise NonFiniteProjectionError("image placement", f"center=({center_lat}, {center_lon}) scale={scale}")
    return bounds

def make_placement(center_lat, center_lon, scale, zoom, width, height) -> ImagePlacement:
    bounds = placement_bounds(center_lat, center_lon, scale, zoom, width, height)
    return ImagePlacement(center_lat, center_lon, scale, zoom, width, height, bounds)

def rezoom(placement: ImagePlacement, zoom: int) -> ImagePlacement:
    """Same geographic footprint expressed at another basemap zoom."""
    if zoom == placement.zoom:
        return placement
    ratio = proj.mercator_resolution(placement.zoom) / proj.mercator_resolution(zoom)
    return replace(placement, scale=placement.scale * ratio, zoom=zoom)

def transform_scale(transform: Affine) -> float:
    """Projected meters per image pixel (geometric mean of the two axes)."""
    return math.sqrt(abs(transform.determinant))

def translation_transform(anchor: MatchedPair, meters_per_image_px: float) -> Affine:
    """Uniform scale, no rotation, pinning ``anchor``'s pixel on its geo point.

    Image y grows downward while Mercator y grows north, hence ``-k``.
    """
    k = meters_per_image_px
    x0, y0 = proj.to_mercator(anchor.geo_point.lat, anchor.geo_point.lon)
    px0, py0 = anchor.control_point.pixel_x, anchor.control_point.pixel_y
    return Affine(k, 0.0, x0 - k * px0, 0.0, -k, y0 + k * py0)


class TransformOrchestrator:
    def __init__(self, config: Optional[GeorefConfig] = None):
        self.config = config or GeorefConfig()
        self._state = TransformState()
        self._placement: Optional[ImagePlacement] = None
        self._revision = 0

    # --- read-only views ------------------------------------------------
    @property
    def state(self) -> TransformState:
        return self._state

    @property
    def placement(self) -> Optional[ImagePlacement]:
        return self._placement

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def verbose(self) -> bool:
        return bool(self.config.verbose)

    # --- internals ------------------------------------------------------
    def _commit(self, state: TransformState, placement: ImagePlacement, reason: ChangeReason) -> PlacementChanged:
        self._state = state
        self._placement = placement
        self._revision += 1
        event = PlacementChanged(self._revision, reason, state, placement)
        if self.verbose:
            b = placement.bounds
            info(
                f"Placement r{event.revision} ({reason.value}): center=({placement.center_lat:.6f}, "
                f"{placement.center_lon:.6f}) scale={placement.scale:.6f} "
                f"SW=({b.south:.6f}, {b.west:.6f}) NE=({b.north:.6f}, {b.east:.6f})"
            )
        return event

    def _require_placement(self) -> ImagePlacement:
        if self._placement is None:
            raise InvalidImageDimensionsError(None, None)
        validate_dimensions(self._placement.width, self._placement.height)
        return self._placement

    def _place(self, state: TransformState, map_view: MapView) -> ImagePlacement:
        """Placement implied by ``state`` at ``map_view``'s zoom."""
        current = self._require_placement()
        if state.transform is None:
            return rezoom(current, map_view.zoom)

        cx, cy = apply_affine(state.transform, current.width / 2, current.height / 2)
        center_lat, center_lon = proj.from_mercator(cx, cy)
        if not proj.is_finite(center_lat, center_lon):
            raise NonFiniteProjectionError("image center", f"mercator=({cx}, {cy})")

        scale = transform_scale(state.transform) / proj.mercator_resolution(map_view.zoom)
        return make_placement(center_lat, center_lon, scale, map_view.zoom, current.width, current.height)

    def _failure(self, exc: Exception, **kwargs) -> GeoreferenceResult:
        return GeoreferenceResult(success=False, state=self._state, error=exc, **kwargs)

    def _split_finite(self, pairs: Sequence[MatchedPair]) -> tuple[list[MatchedPair], list[str]]:
        usable, excluded = [], []
        for pair in pairs:
            x, y = proj.to_mercator(pair.geo_point.lat, pair.geo_point.lon)
            if proj.is_finite(x, y, pair.control_point.pixel_x, pair.control_point.pixel_y):
                usable.append(pair)
            else:
                warn(f"Excluding control point {pair.id!r}: non-finite projection.")
                excluded.append(pair.id)
        return usable, excluded

    def _current_meters_per_image_px(self, zoom: int) -> float:
        if self._placement is not None:
            return self._placement.scale * proj.mercator_resolution(self._placement.zoom)
        return self.config.default_scale * proj.mercator_resolution(zoom)

    def _two_point_state(self, pairs: Sequence[MatchedPair], map_view: MapView) -> TransformState:
        first, second = pairs
        pixel_distance = math.hypot(
            second.control_point.pixel_x - first.control_point.pixel_x,
            second.control_point.pixel_y - first.control_point.pixel_y,
        )
        ground_distance = proj.great_circle_distance(
            first.geo_point.lat, first.geo_point.lon, second.geo_point.lat, second.geo_point.lon
        )
        mid_lat = (first.geo_point.lat + second.geo_point.lat) / 2
        cos_lat = math.cos(math.radians(mid_lat))

        if pixel_distance == 0 or ground_distance == 0 or cos_lat <= 0:
            warn("Two-point strategy is degenerate (coincident points); falling back to center-only.")
            return self._center_only_state(first, map_view)

        k = (ground_distance / pixel_distance) / cos_lat
        return TransformState(
            kind=StrategyKind.TWO_POINT,
            transform=translation_transform(first, k),
            control_point_ids=(first.id, second.id),
        )

    def _center_only_state(self, pair: MatchedPair, map_view: MapView) -> TransformState:
        k = self._current_meters_per_image_px(map_view.zoom)
        return TransformState(
            kind=StrategyKind.CENTER_ONLY,
            transform=translation_transform(pair, k),
            control_point_ids=(pair.id,),
        )

    def select_strategy(self, pairs: Sequence[MatchedPair], map_view: MapView) -> TransformState:
        """Build the new state for ``pairs``; raises SingularSystemError from the solver."""
        count = len(pairs)
        if count == 0:
            return TransformState(kind=StrategyKind.IMAGE_BOUNDS_ONLY)
        if count == 1:
            return self._center_only_state(pairs[0], map_view)
        if count == 2:
            return self._two_point_state(pairs, map_view)

        solved = solve_affine(pairs, pivot_tolerance=self.config.pivot_tolerance)
        return TransformState(
            kind=StrategyKind.SOLVED,
            transform=solved.transform,
            accuracy=solved.accuracy,
            control_point_ids=tuple(p.id for p in pairs),
        )

    # --- public operations ----------------------------------------------
    def initial_placement(self, width: float, height: float, map_view: MapView) -> ImagePlacement:
        """Small square south-west of the map center, where a fresh image starts."""
        cfg = self.config
        center_lat = map_view.center_lat - cfg.initial_offset_deg
        center_lon = map_view.center_lon - cfg.initial_offset_deg
        half = cfg.initial_half_span_deg
        bounds = GeoBounds(center_lat - half, center_lon - half, center_lat + half, center_lon + half)
        return ImagePlacement(center_lat, center_lon, cfg.initial_scale, map_view.zoom, width, height, bounds)

    def load_image(self, width, height, map_view: MapView) -> GeoreferenceResult:
        """Reset to UNSET and place a newly loaded image at its initial bounds."""
        try:
            w, h = validate_dimensions(width, height)
        except InvalidImageDimensionsError as exc:
            error(str(exc))
            return self._failure(exc)

        event = self._commit(TransformState(), self.initial_placement(w, h, map_view), ChangeReason.IMAGE_LOADED)
        info(f"Image loaded ({w:g} x {h:g}); georeferencing state reset.")
        return GeoreferenceResult(success=True, state=self._state, event=event)

    def reset(self) -> None:
        """Forget the image, its placement and any transform."""
        self._state = TransformState()
        self._placement = None

    def georeference(
        self,
        control_points: Iterable[ControlPoint],
        geo_points: Iterable[GeoPoint],
        map_view: MapView,
    ) -> GeoreferenceResult:
        """Match, pick a strategy, install it and re-place the image."""
        try:
            match: MatchResult = match_control_points(control_points, geo_points, verbose=self.verbose)
        except DuplicateControlPointError as exc:
            error(f"Georeferencing failed, keeping {self._state.kind.value} state: {exc}")
            return self._failure(exc)

        process_step(
            f"Georeferencing: {match.matched_count}/{match.total_control_points} control points matched "
            f"against {match.total_geo_points} geo points"
        )
        if match.unmatched_control_point_ids:
            warn(f"Unmatched control points: {list(match.unmatched_control_point_ids)}")

        usable, excluded = self._split_finite(match.matched)
        details = dict(match=match, excluded_ids=tuple(excluded))

        try:
            self._require_placement()
            new_state = self.select_strategy(usable, map_view)
            placement = self._place(new_state, map_view)
        except GeoreferenceError as exc:
            error(f"Georeferencing failed, keeping {self._state.kind.value} state: {exc}")
            return self._failure(exc, **details)

        event = self._commit(new_state, placement, ChangeReason.TRANSFORM_INSTALLED)
        if new_state.kind is StrategyKind.SOLVED:
            acc = new_state.accuracy
            success(
                f"Affine transform solved from {len(usable)} points: "
                f"mean error={acc.mean_error_m:.4f} m, max error={acc.max_error_m:.4f} m"
            )
        else:
            warn(f"Only {len(usable)} usable control points; using degraded strategy {new_state.kind.value}.")
        return GeoreferenceResult(success=True, state=new_state, event=event, **details)

    def apply(self, map_view: MapView) -> GeoreferenceResult:
        """Re-place the image for a new map view without re-solving."""
        try:
            placement = self._place(self._state, map_view)
        except GeoreferenceError as exc:
            error(f"Could not apply placement: {exc}")
            return self._failure(exc)
        event = self._commit(self._state, placement, ChangeReason.VIEW_CHANGED)
        return GeoreferenceResult(success=True, state=self._state, event=event)

    def _manual(self, placement_fn, reason: ChangeReason) -> GeoreferenceResult:
        try:
            placement = placement_fn(self._require_placement())
        except GeoreferenceError as exc:
            error(f"Manual placement rejected: {exc}")
            return self._failure(exc)

        # a hand-placed image no longer follows the fitted transform
        state = self._state
        if state.has_transform:
            warn(f"Manual {reason.value.split('_')[-1]} overrides the {state.kind.value} transform.")
            state = TransformState(kind=StrategyKind.IMAGE_BOUNDS_ONLY)
        event = self._commit(state, placement, reason)
        return GeoreferenceResult(success=True, state=state, event=event)

    def move_image(self, center_lat: float, center_lon: float, map_view: MapView) -> GeoreferenceResult:
        def moved(current: ImagePlacement) -> ImagePlacement:
            current = rezoom(current, map_view.zoom)
            return make_placement(center_lat, center_lon, current.scale, current.zoom, current.width, current.height)
        return self._manual(moved, ChangeReason.MANUAL_MOVE)

    def nudge_image(self, dlat: float, dlon: float, map_view: MapView) -> GeoreferenceResult:
        current = self._placement
        if current is None:
            return self._failure(InvalidImageDimensionsError(None, None))
        return self.move_image(current.center_lat + dlat, current.center_lon + dlon, map_view)

    def set_scale(self, scale: float, map_view: MapView) -> GeoreferenceResult:
        if not (math.isfinite(scale) and scale > 0):
            raise ValueError(f"Scale must be a positive finite number, got {scale!r}.")

        def scaled(current: ImagePlacement) -> ImagePlacement:
            return make_placement(current.center_lat, current.center_lon, scale, map_view.zoom,
                                  current.width, current.height)
        return self._manual(scaled, ChangeReason.MANUAL_SCALE)
