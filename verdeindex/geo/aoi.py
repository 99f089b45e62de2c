"""
Module `geo.aoi` defines the AOI (Area of Interest) class, which holds a single
polygon feature, its static properties and the identifier used to name outputs.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Union

import geopandas as gpd
from shapely.geometry import MultiPolygon, Polygon, box, mapping, shape
from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class AOI:
    """Area of Interest with static properties."""

    geometry: Union[Polygon, MultiPolygon]
    static_props: Dict[str, Any]

    @property
    def aoi_id(self) -> str:
        """Identifier string, from the ``id`` property (or ``system:id``)."""
        for key in ("id", "system:id", "name"):
            value = self.static_props.get(key)
            if value not in (None, ""):
                return str(value)
        return "aoi"

    @property
    def area_name(self) -> str:
        """Last ``/``-separated segment of the identifier, used in file names."""
        return self.aoi_id.rstrip("/").split("/")[-1] or "aoi"

    def bounds_geometry(self) -> BaseGeometry:
        """Axis-aligned bounding box of the geometry."""
        return box(*self.geometry.bounds)

    @classmethod
    def from_file(cls, path: str, id_col: str = "id") -> List["AOI"]:
        """
        Load a vector file (GeoJSON, Shapefile, etc.) into AOI instances.
        Reads with GeoPandas, then delegates to from_gdf.
        """
        gdf = gpd.read_file(path)
        return cls.from_gdf(gdf, id_col)

    @classmethod
    def from_geojson(cls, geojson: Union[str, dict], id_col: str = "id") -> List["AOI"]:
        """
        Parse a GeoJSON object (or path to a GeoJSON file) and return AOI instances.
        """
        if isinstance(geojson, str):
            with open(geojson, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = geojson
        if data.get("type") == "Feature":
            features = [data]
        else:
            features = data.get("features", [])
        gdf = gpd.GeoDataFrame(
            [
                {**feat.get("properties", {}), "geometry": shape(feat["geometry"])}
                for feat in features
            ],
            geometry="geometry",
            crs="EPSG:4326",
        )
        return cls.from_gdf(gdf, id_col)

    @classmethod
    def from_gdf(cls, gdf: gpd.GeoDataFrame, id_col: str = "id") -> List["AOI"]:
        """
        Build AOI instances from a GeoDataFrame.
        Ensures id_col exists (sequential from 1 when missing).
        """
        if id_col not in gdf.columns:
            gdf = gdf.copy()
            gdf[id_col] = gdf.index.astype(int) + 1
        aois: List[AOI] = []
        for _, row in gdf.iterrows():
            props: Dict = row.drop(labels="geometry").to_dict()
            if id_col != "id":
                props["id"] = props.get(id_col)
            aois.append(cls(row.geometry, props))
        return aois

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "properties": dict(self.static_props),
            "geometry": mapping(self.geometry),
        }

