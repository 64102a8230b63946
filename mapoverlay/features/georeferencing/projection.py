"""
mapoverlay/features/georeferencing/projection.py

Spherical Web Mercator <-> WGS84 conversions and ground-distance helpers.

All functions accept scalars or numpy arrays. Scalars come back as ``float``,
arrays as ``np.ndarray``. Nothing raises on bad numbers: NaN and infinity
propagate, and a latitude of exactly +/-90 maps to +/-inf (Mercator's own
singularity). Callers check finiteness before acting on results.
"""
import numpy as np

from mapoverlay.globals.configs import EARTH_RADIUS, METERS_PER_PIXEL_AT_EQUATOR


def _out(value):
    value = np.asarray(value, dtype=float)
    return float(value) if value.ndim == 0 else value

def lon_to_x(lon):
    with np.errstate(all="ignore"):
        return _out(EARTH_RADIUS * np.radians(np.asarray(lon, dtype=float)))

def lat_to_y(lat):
    lat = np.asarray(lat, dtype=float)
    with np.errstate(all="ignore"):
        y = EARTH_RADIUS * np.log(np.tan(np.pi / 4 + np.radians(lat) / 2))
        # tan() never reaches exactly 0/inf in floating point, force the poles
        y = np.where(np.abs(lat) == 90.0, np.sign(lat) * np.inf, y)
    return _out(y)

def x_to_lon(x):
    with np.errstate(all="ignore"):
        return _out(np.degrees(np.asarray(x, dtype=float) / EARTH_RADIUS))

def y_to_lat(y):
    with np.errstate(all="ignore"):
        return _out(np.degrees(2 * np.arctan(np.exp(np.asarray(y, dtype=float) / EARTH_RADIUS)) - np.pi / 2))

def to_mercator(lat, lon):
    """(lat, lon) degrees -> (x, y) projected meters."""
    return lon_to_x(lon), lat_to_y(lat)

def from_mercator(x, y):
    """(x, y) projected meters -> (lat, lon) degrees."""
    return y_to_lat(y), x_to_lon(x)

def meters_per_pixel(lat, zoom):
    """Ground meters covered by one basemap pixel at ``lat`` and ``zoom``."""
    with np.errstate(all="ignore"):
        lat = np.asarray(lat, dtype=float)
        return _out(METERS_PER_PIXEL_AT_EQUATOR * np.cos(np.radians(lat)) / np.power(2.0, zoom))

def mercator_resolution(zoom):
    """Projected (not ground) meters per basemap pixel; latitude independent."""
    return meters_per_pixel(0.0, zoom)

def great_circle_distance(lat1, lon1, lat2, lon2):
    """Haversine distance in meters on the Web Mercator sphere."""
    with np.errstate(all="ignore"):
        phi1 = np.radians(np.asarray(lat1, dtype=float))
        phi2 = np.radians(np.asarray(lat2, dtype=float))
        dphi = phi2 - phi1
        dlmb = np.radians(np.asarray(lon2, dtype=float) - np.asarray(lon1, dtype=float))
        a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
        c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return _out(EARTH_RADIUS * c)

def is_finite(*values) -> bool:
    return bool(np.all(np.isfinite(np.asarray(values, dtype=float))))
