from pathlib import Path

import geopandas as gpd

from mapoverlay.globals.logutil import process_step


def export_gdf(gdf: gpd.GeoDataFrame, path: Path, verbose: bool | str = False) -> Path:
    path = Path(path); path.parent.mkdir(parents=True, exist_ok=True)
    ext = path.suffix.lower()
    driver = "GeoJSON" if ext in (".geojson", ".json") else "ESRI Shapefile" if ext == ".shp" else None

    if not driver:
        raise ValueError(f"Unsupported extension: {ext}")
    if verbose in (True, "info", "debug"):
        process_step(f"Exporting {len(gdf)} features to {path} using driver {driver}...")

    gdf.to_file(path, driver=driver)
    return path
