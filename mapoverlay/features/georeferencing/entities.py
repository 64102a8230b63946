"""
mapoverlay/features/georeferencing/entities.py

Tracked entities and the store that owns them.

A tracked entity is anything drawn on the basemap whose position may need
recomputing when the image mapping changes. Its ``origin`` decides that:

- ``IMAGE_PIXEL``: ``pixel_x``/``pixel_y`` are the source of truth and
  ``current_lat``/``current_lon`` are a cache rewritten on every change.
- ``GEOGRAPHIC``: the lat/lon are authoritative (GPS, survey) and are never
  rewritten; such records carry no pixel coordinates.

Routes and areas are :class:`CompositeEntity` objects holding one record per
vertex, so a single route can mix image-derived and GPS vertices.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, Optional, Sequence

from shapely.geometry import LineString, Point, Polygon

from mapoverlay.globals.configs import WGS84_CRS
from mapoverlay.globals.gdf_tools import to_gdf
from mapoverlay.globals.logutil import info


class EntityKind(str, Enum):
    POINT = "point"
    ROUTE_VERTEX = "route_vertex"
    SPOT = "spot"
    AREA_VERTEX = "area_vertex"

class CompositeKind(str, Enum):
    ROUTE = "route"
    AREA = "area"

class Origin(str, Enum):
    IMAGE_PIXEL = "image_pixel"
    GEOGRAPHIC = "geographic"

VERTEX_KIND = {
    CompositeKind.ROUTE: EntityKind.ROUTE_VERTEX,
    CompositeKind.AREA: EntityKind.AREA_VERTEX,
}


@dataclass(frozen=True)
class EntityRegistration:
    """Normalized record handed over by the import layer."""
    entity_id: str
    kind: EntityKind
    origin: Origin
    initial_lat: float
    initial_lon: float
    pixel_x: Optional[float] = None
    pixel_y: Optional[float] = None

    @classmethod
    def from_pixel(cls, entity_id, kind, pixel_x, pixel_y, initial_lat, initial_lon):
        return cls(entity_id, EntityKind(kind), Origin.IMAGE_PIXEL, initial_lat, initial_lon, pixel_x, pixel_y)

    @classmethod
    def from_geo(cls, entity_id, kind, lat, lon):
        return cls(entity_id, EntityKind(kind), Origin.GEOGRAPHIC, lat, lon)


@dataclass
class TrackedEntity:
    entity_id: str
    kind: EntityKind
    origin: Origin
    current_lat: float
    current_lon: float
    pixel_x: Optional[float] = None
    pixel_y: Optional[float] = None
    flagged: bool = False

    def __post_init__(self):
        self.kind = EntityKind(self.kind)
        self.origin = Origin(self.origin)
        has_pixel = self.pixel_x is not None and self.pixel_y is not None
        if self.origin is Origin.GEOGRAPHIC and (self.pixel_x is not None or self.pixel_y is not None):
            raise ValueError(f"Geographic entity {self.entity_id!r} must not carry pixel coordinates.")
        if self.origin is Origin.IMAGE_PIXEL and not has_pixel:
            raise ValueError(f"Image-pixel entity {self.entity_id!r} requires pixel_x and pixel_y.")

    @classmethod
    def from_registration(cls, reg: EntityRegistration) -> "TrackedEntity":
        return cls(
            entity_id=reg.entity_id,
            kind=reg.kind,
            origin=reg.origin,
            current_lat=reg.initial_lat,
            current_lon=reg.initial_lon,
            pixel_x=reg.pixel_x,
            pixel_y=reg.pixel_y,
        )

    @property
    def is_image_derived(self) -> bool:
        return self.origin is Origin.IMAGE_PIXEL

    @property
    def position(self) -> tuple[float, float]:
        return self.current_lat, self.current_lon


@dataclass
class CompositeEntity:
    """A route polyline or area polygon: vertex index -> per-vertex record."""
    entity_id: str
    kind: CompositeKind
    vertices: dict[int, TrackedEntity] = field(default_factory=dict)

    def ordered(self) -> list[tuple[int, TrackedEntity]]:
        return sorted(self.vertices.items())

    def positions(self) -> list[tuple[float, float]]:
        return [v.position for _, v in self.ordered()]

    @property
    def origin_label(self) -> str:
        origins = {v.origin for v in self.vertices.values()}
        return origins.pop().value if len(origins) == 1 else "mixed"


class EntityStore:
    """Arena of tracked entities keyed by id."""

    def __init__(self):
        self._singles: dict[str, TrackedEntity] = {}
        self._composites: dict[str, CompositeEntity] = {}

    def __len__(self):
        return len(self._singles) + len(self._composites)

    def __contains__(self, entity_id):
        return entity_id in self._singles or entity_id in self._composites

    # --- registration ---------------------------------------------------
    def _check_free(self, entity_id: str):
        if entity_id in self:
            raise ValueError(f"Entity id {entity_id!r} is already registered.")

    def register(self, reg: EntityRegistration) -> TrackedEntity:
        if reg.kind in (EntityKind.ROUTE_VERTEX, EntityKind.AREA_VERTEX):
            raise ValueError(f"{reg.kind.value} records belong to a route or area; use register_route/register_area.")
        self._check_free(reg.entity_id)
        entity = TrackedEntity.from_registration(reg)
        self._singles[reg.entity_id] = entity
        return entity

    def register_point(self, reg: EntityRegistration) -> TrackedEntity:
        return self.register(replace(reg, kind=EntityKind.POINT))

    def register_spot(self, reg: EntityRegistration) -> TrackedEntity:
        return self.register(replace(reg, kind=EntityKind.SPOT))

    def _register_composite(self, entity_id: str, kind: CompositeKind,
                            vertices: Sequence[EntityRegistration]) -> CompositeEntity:
        self._check_free(entity_id)
        vertex_kind = VERTEX_KIND[kind]
        composite = CompositeEntity(entity_id=entity_id, kind=kind)
        for i, reg in enumerate(vertices):
            composite.vertices[i] = TrackedEntity.from_registration(replace(reg, kind=vertex_kind))
        self._composites[entity_id] = composite
        return composite

    def register_route(self, entity_id: str, vertices: Sequence[EntityRegistration]) -> CompositeEntity:
        return self._register_composite(entity_id, CompositeKind.ROUTE, vertices)

    def register_area(self, entity_id: str, vertices: Sequence[EntityRegistration]) -> CompositeEntity:
        return self._register_composite(entity_id, CompositeKind.AREA, vertices)

    # --- access ---------------------------------------------------------
    def get(self, entity_id: str) -> TrackedEntity | CompositeEntity:
        if entity_id in self._singles:
            return self._singles[entity_id]
        return self._composites[entity_id]

    def iter_records(self) -> Iterator[tuple[str, Optional[int], TrackedEntity]]:
        """Yield (owner id, vertex index or None, record) for every record."""
        for entity_id, entity in self._singles.items():
            yield entity_id, None, entity
        for entity_id, composite in self._composites.items():
            for i, vertex in composite.ordered():
                yield entity_id, i, vertex

    def clear(self, kind: EntityKind | CompositeKind | str | None = None) -> int:
        """Drop everything, or only one kind; returns the number removed."""
        if kind is None:
            removed = len(self)
            self._singles.clear()
            self._composites.clear()
            return removed

        kind_value = kind.value if isinstance(kind, Enum) else str(kind)
        singles = [k for k, e in self._singles.items() if e.kind.value == kind_value]
        composites = [k for k, c in self._composites.items() if c.kind.value == kind_value]
        for k in singles:
            del self._singles[k]
        for k in composites:
            del self._composites[k]
        return len(singles) + len(composites)

    # --- snapshot -------------------------------------------------------
    def to_gdf(self, verbose: bool = False):
        """GeoDataFrame (lon/lat, EPSG:4326) of every entity at its cached position."""
        geoms, ids, kinds, origins = [], [], [], []

        for entity in self._singles.values():
            geoms.append(Point(entity.current_lon, entity.current_lat))
            ids.append(entity.entity_id)
            kinds.append(entity.kind.value)
            origins.append(entity.origin.value)

        for composite in self._composites.values():
            coords = [(lon, lat) for lat, lon in composite.positions()]
            if composite.kind is CompositeKind.AREA and len(coords) >= 3:
                geom = Polygon(coords)
            elif len(coords) >= 2:
                geom = LineString(coords)
            elif coords:
                geom = Point(coords[0])
            else:
                continue
            geoms.append(geom)
            ids.append(composite.entity_id)
            kinds.append(composite.kind.value)
            origins.append(composite.origin_label)

        if verbose:
            info(f"Entity snapshot: {len(geoms)} features")
        return to_gdf(geoms, {"entity_id": ids, "kind": kinds, "origin": origins}, crs=WGS84_CRS)
