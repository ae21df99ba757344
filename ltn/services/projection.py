# ltn/services/projection.py
from typing import Any, Dict, Tuple

import pyproj
import shapely
from shapely.geometry import Point, Polygon, mapping
from shapely.geometry.base import BaseGeometry


class Projection:
    """
    Converts between WGS84 and a local planar CRS measured in metres.

    The planar CRS is an azimuthal equidistant projection centred on the
    study area, so lengths near the area are close to true ground distance.
    """

    def __init__(self, center_lon: float, center_lat: float) -> None:
        self.center = (center_lon, center_lat)
        self.proj_wgs84 = pyproj.CRS("EPSG:4326")
        self.proj_planar = pyproj.CRS.from_proj4(
            f"+proj=aeqd +lat_0={center_lat} +lon_0={center_lon} "
            "+x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
        )
        self._to_planar = pyproj.Transformer.from_crs(
            self.proj_wgs84, self.proj_planar, always_xy=True
        )
        self._to_wgs84 = pyproj.Transformer.from_crs(
            self.proj_planar, self.proj_wgs84, always_xy=True
        )

    @classmethod
    def from_boundary(cls, boundary_wgs84: Polygon) -> "Projection":
        c = boundary_wgs84.centroid
        return cls(center_lon=c.x, center_lat=c.y)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def to_planar(self, geom: BaseGeometry) -> BaseGeometry:
        return shapely.transform(geom, self._to_planar.transform, interleaved=False)

    def to_wgs84(self, geom: BaseGeometry) -> BaseGeometry:
        return shapely.transform(geom, self._to_wgs84.transform, interleaved=False)

    def pt_to_planar(self, lon: float, lat: float) -> Point:
        x, y = self._to_planar.transform(lon, lat)
        return Point(x, y)

    def pt_to_wgs84(self, pt: Point) -> Tuple[float, float]:
        """
        Returns (lon, lat).
        """
        return self._to_wgs84.transform(pt.x, pt.y)

    def to_wgs84_feature(self, geom: BaseGeometry) -> Dict[str, Any]:
        """
        Wrap a planar geometry as a GeoJSON feature in WGS84, with no properties yet.
        """
        return {
            "type": "Feature",
            "geometry": mapping(self.to_wgs84(geom)),
            "properties": {},
        }
