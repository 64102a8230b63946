import pandas as pd
import geopandas as gpd

from mapoverlay.globals.configs import WGS84_CRS


def to_gdf(geometries, metadata=None, crs=WGS84_CRS) -> gpd.GeoDataFrame:
    """Wrap shapely geometries + column metadata into a GeoDataFrame with an ``id`` column."""
    metadata = metadata or {}
    df = pd.DataFrame(metadata, index=range(len(geometries)))
    gdf = gpd.GeoDataFrame(df, geometry=list(geometries), crs=crs)
    gdf["id"] = gdf.index
    return gdf
