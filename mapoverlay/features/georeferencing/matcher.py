"""
mapoverlay/features/georeferencing/matcher.py

Pair image-space control points with geographic points by shared id.

Matching is exact and case-sensitive. Output order follows the control
point list. Control points without an id are reported as unmatched under a
positional placeholder so malformed input can be traced upstream.
"""
from __future__ import annotations

from typing import Iterable

from mapoverlay.globals.logutil import warn
from mapoverlay.features.georeferencing.errors import DuplicateControlPointError
from mapoverlay.features.georeferencing.models import ControlPoint, GeoPoint, MatchedPair, MatchResult


def missing_id_label(index: int) -> str:
    return f"[{index}] (no id)"

def index_geo_points(geo_points: Iterable[GeoPoint]) -> dict[str, GeoPoint]:
    """id -> GeoPoint. A repeated id replaces the earlier entry."""
    index: dict[str, GeoPoint] = {}
    for gp in geo_points:
        if gp.id in index:
            warn(f"Geo point id {gp.id!r} appears more than once; using the last occurrence.")
        index[gp.id] = gp
    return index

def match_control_points(
    control_points: Iterable[ControlPoint],
    geo_points: Iterable[GeoPoint],
    *,
    verbose: bool = False,
) -> MatchResult:
    control_points = list(control_points)
    geo_points = list(geo_points)
    geo_index = index_geo_points(geo_points)

    matched: list[MatchedPair] = []
    unmatched: list[str] = []
    seen: set[str] = set()

    for i, cp in enumerate(control_points):
        if not cp.id:
            if verbose:
                warn(f"Control point {i} has no id: {cp}")
            unmatched.append(missing_id_label(i))
            continue

        gp = geo_index.get(cp.id)
        if gp is None:
            unmatched.append(cp.id)
            continue

        if cp.id in seen:
            raise DuplicateControlPointError(cp.id)
        seen.add(cp.id)
        matched.append(MatchedPair(id=cp.id, control_point=cp, geo_point=gp))

    return MatchResult(
        matched=tuple(matched),
        unmatched_control_point_ids=tuple(unmatched),
        total_control_points=len(control_points),
        total_geo_points=len(geo_points),
    )
