"""Typed configuration models and YAML loading helpers.

This module centralizes reading YAML configuration files into
structured dataclasses instead of passing around raw dictionaries.

Currently supported configs
---------------------------
- GeorefConfig: engine defaults (scales, pivot tolerance, initial placement)
  (config/georef_defaults.yml)
- ProjectConfig: one georeferencing job: image size, map view, control
  points, geo points and the entities to keep in sync
  (config/example_project.yml)

The public entry point is :func:`read_config_file`, which knows how
to build the appropriate dataclass for each config type.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Any, List, Literal
from pathlib import Path

import yaml

from mapoverlay.globals.logutil import info, error
from mapoverlay.globals import directories, configs


# --- Dataclasses ---------------------------------------------------------
@dataclass
class GeorefConfig:
    """Engine defaults. Mirrors the keys used in ``georef_defaults.yml``."""

    # placement
    default_scale: float = configs.DEFAULT_SCALE
    initial_scale: float = configs.INITIAL_SCALE
    initial_offset_deg: float = configs.INITIAL_OFFSET_DEG
    initial_half_span_deg: float = configs.INITIAL_HALF_SPAN_DEG

    # solver
    pivot_tolerance: float = configs.PIVOT_TOLERANCE

    # map view used when a project does not give one
    default_center_lat: float = configs.DEFAULT_MAP_CENTER[0]
    default_center_lon: float = configs.DEFAULT_MAP_CENTER[1]
    default_zoom: int = configs.DEFAULT_ZOOM

    # logging
    log_file_name: str | None = None
    verbose: bool = False

@dataclass
class ProjectConfig:
    """A single georeferencing job.

    ``routes`` and ``areas`` map the composite id to its ordered vertex
    registrations. Types are imported lazily in :func:`build_project_config`
    so the engine can import this module without a cycle.
    """
    image_width: float
    image_height: float
    map_view: Any
    control_points: List[Any] = field(default_factory=list)
    geo_points: List[Any] = field(default_factory=list)
    points: List[Any] = field(default_factory=list)
    spots: List[Any] = field(default_factory=list)
    routes: Dict[str, List[Any]] = field(default_factory=dict)
    areas: Dict[str, List[Any]] = field(default_factory=dict)
    source: Path | None = None

    @property
    def entity_count(self) -> int:
        return len(self.points) + len(self.spots) + len(self.routes) + len(self.areas)

# --- YAML loader ---------------------------------------------------------

ConfigKind = Literal["georef", "project"]

def _resolve_path(path: Path | str | None, kind: ConfigKind) -> Path | None:
    """Resolve a config path or fall back to project defaults.

    For ``kind == 'georef'`` this falls back to
    ``config/georef_defaults.yml``; for ``kind == 'project'`` to the
    bundled ``config/example_project.yml``.
    """

    if path is None:
        if kind == "georef":
            return directories.CONFIG_DIR / configs.GEOREF_DEFAULTS_FILENAME
        if kind == "project":
            return directories.CONFIG_DIR / configs.EXAMPLE_PROJECT_FILENAME
        return None

    if isinstance(path, str):
        return Path(path)
    return path

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning an empty dict when it does not exist.

    Unparseable YAML or a top-level value that is not a mapping raises
    ``ValueError``.
    """
    try:
        info(f"Loading config from {path}...")
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        error(f"Config not found at {path}; using defaults where possible.")
        return {}
    except yaml.YAMLError as exc:
        error(f"Failed to load YAML config at {path}: {exc}")
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(data).__name__}.")
    info(f"Using config: {path}")
    return dict(data)

def _number(raw: Dict[str, Any], key: str, *, where: str, default=None) -> float:
    val = raw.get(key, default)
    if val is None:
        raise ValueError(f"{where}: missing required key '{key}'.")
    try:
        return float(val)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: '{key}' must be a number, got {val!r}.") from exc

def build_georef_config(raw: Dict[str, Any]) -> GeorefConfig:
    """Convert raw dict from YAML into :class:`GeorefConfig`.

    Missing keys keep the dataclass defaults; unknown keys are rejected.
    """
    defaults = GeorefConfig()
    unknown = set(raw) - set(defaults.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown georef config keys: {sorted(unknown)}")

    def pick(key: str):
        val = raw.get(key)
        return getattr(defaults, key) if val is None else val

    cfg = GeorefConfig(
        default_scale=float(pick("default_scale")),
        initial_scale=float(pick("initial_scale")),
        initial_offset_deg=float(pick("initial_offset_deg")),
        initial_half_span_deg=float(pick("initial_half_span_deg")),
        pivot_tolerance=float(pick("pivot_tolerance")),
        default_center_lat=float(pick("default_center_lat")),
        default_center_lon=float(pick("default_center_lon")),
        default_zoom=int(pick("default_zoom")),
        log_file_name=pick("log_file_name"),
        verbose=bool(pick("verbose")),
    )

    for key in ("default_scale", "initial_scale", "pivot_tolerance"):
        val = getattr(cfg, key)
        if not (math.isfinite(val) and val > 0):
            raise ValueError(f"'{key}' must be a positive number, got {val!r}.")
    return cfg

def build_project_config(raw: Dict[str, Any], *, cfg_path: Path | None,
                         defaults: GeorefConfig | None = None) -> ProjectConfig:
    """Convert raw dict from YAML into :class:`ProjectConfig`.

        Expects the following structure:
        {
            "image": {"width": number, "height": number},
            "map_view": {"center_lat": number, "center_lon": number, "zoom": int},  # optional
            "control_points": [{"id": str, "x": number, "y": number}, ...],
            "geo_points": [{"id": str, "lat": number, "lon": number, "elevation"?: number}, ...],
            "entities": {
                "points": [record, ...],
                "spots": [record, ...],
                "routes": [{"id": str, "vertices": [record, ...]}, ...],
                "areas": [{"id": str, "vertices": [record, ...]}, ...],
            },
        }

        where ``record`` is ``{"id", "origin": "image_pixel"|"geographic",
        "x"?, "y"?, "lat"?, "lon"?}``.

        Raises ValueError on malformed configs.
    """
    from mapoverlay.features.georeferencing.models import ControlPoint, GeoPoint, MapView
    from mapoverlay.features.georeferencing.entities import EntityRegistration, EntityKind, Origin

    if not raw:
        raise ValueError("Empty project configuration provided.")
    defaults = defaults or GeorefConfig()

    # 1) Image
    image_raw = raw.get("image") or {}
    width = _number(image_raw, "width", where="image")
    height = _number(image_raw, "height", where="image")

    # 2) Map view
    view_raw = raw.get("map_view") or {}
    map_view = MapView(
        center_lat=_number(view_raw, "center_lat", where="map_view", default=defaults.default_center_lat),
        center_lon=_number(view_raw, "center_lon", where="map_view", default=defaults.default_center_lon),
        zoom=int(_number(view_raw, "zoom", where="map_view", default=defaults.default_zoom)),
    )

    # 3) Control / geo points. Missing control point ids stay empty so the
    #    matcher can report them.
    control_points = [
        ControlPoint(
            id=str(cp.get("id") or ""),
            pixel_x=_number(cp, "x", where=f"control_points[{i}]"),
            pixel_y=_number(cp, "y", where=f"control_points[{i}]"),
        )
        for i, cp in enumerate(raw.get("control_points") or [])
    ]
    geo_points = []
    for i, gp in enumerate(raw.get("geo_points") or []):
        where = f"geo_points[{i}]"
        if not gp.get("id"):
            raise ValueError(f"{where}: missing required key 'id'.")
        elevation = gp.get("elevation")
        geo_points.append(GeoPoint(
            id=str(gp["id"]),
            lat=_number(gp, "lat", where=where),
            lon=_number(gp, "lon", where=where),
            elevation=None if elevation is None else float(elevation),
        ))

    # 4) Entities
    def registration(rec: Dict[str, Any], entity_id: str, kind: EntityKind, where: str) -> EntityRegistration:
        try:
            origin = Origin(rec.get("origin", Origin.IMAGE_PIXEL.value))
        except ValueError as exc:
            raise ValueError(f"{where}: unknown origin {rec.get('origin')!r}.") from exc

        if origin is Origin.GEOGRAPHIC:
            return EntityRegistration.from_geo(
                entity_id, kind, _number(rec, "lat", where=where), _number(rec, "lon", where=where)
            )
        # image-derived positions are a cache until the first resync
        return EntityRegistration.from_pixel(
            entity_id, kind,
            _number(rec, "x", where=where), _number(rec, "y", where=where),
            _number(rec, "lat", where=where, default=math.nan),
            _number(rec, "lon", where=where, default=math.nan),
        )

    entities_raw = raw.get("entities") or {}

    def singles(section: str, kind: EntityKind) -> List[EntityRegistration]:
        out = []
        for i, rec in enumerate(entities_raw.get(section) or []):
            where = f"entities.{section}[{i}]"
            if not rec.get("id"):
                raise ValueError(f"{where}: missing required key 'id'.")
            out.append(registration(rec, str(rec["id"]), kind, where))
        return out

    def composites(section: str, vertex_kind: EntityKind) -> Dict[str, List[EntityRegistration]]:
        out: Dict[str, List[EntityRegistration]] = {}
        for i, rec in enumerate(entities_raw.get(section) or []):
            where = f"entities.{section}[{i}]"
            if not rec.get("id"):
                raise ValueError(f"{where}: missing required key 'id'.")
            cid = str(rec["id"])
            if cid in out:
                raise ValueError(f"{where}: duplicate id {cid!r}.")
            out[cid] = [
                registration(v, f"{cid}[{j}]", vertex_kind, f"{where}.vertices[{j}]")
                for j, v in enumerate(rec.get("vertices") or [])
            ]
        return out

    project = ProjectConfig(
        image_width=width,
        image_height=height,
        map_view=map_view,
        control_points=control_points,
        geo_points=geo_points,
        points=singles("points", EntityKind.POINT),
        spots=singles("spots", EntityKind.SPOT),
        routes=composites("routes", EntityKind.ROUTE_VERTEX),
        areas=composites("areas", EntityKind.AREA_VERTEX),
        source=cfg_path,
    )

    if cfg_path is not None:
        info(f"Loaded project configuration from {cfg_path}")
    return project

def read_config_file(
    path: Path | str | None,
    *,
    kind: ConfigKind,  # must be specified
    defaults: GeorefConfig | None = None,
) -> GeorefConfig | ProjectConfig:
    """Read a YAML config file into a typed dataclass.

    Parameters
    ----------
    path
        Path to a YAML file, or ``None`` to use project defaults
        for the given ``kind``.
    kind
        ``"georef"`` for engine defaults (``GeorefConfig``), or
        ``"project"`` for a georeferencing job (``ProjectConfig``).
    defaults
        Engine defaults used to fill a project's missing map view.
    """

    resolved = _resolve_path(path, kind)
    if resolved is None:
        error(f"No config path could be resolved for kind={kind!r}.")
        raise ValueError("No config path could be resolved.")

    raw = load_yaml(resolved)

    if kind == "georef":
        return build_georef_config(raw)
    if kind == "project":
        return build_project_config(raw, cfg_path=resolved, defaults=defaults)

    raise ValueError(f"Unsupported config kind: {kind}")
