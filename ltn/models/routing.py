# ltn/models/routing.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class Coordinate(BaseModel):
    """
    Simple latitude/longitude coordinate.
    """
    lat: float
    lon: float


class RouteGeometry(BaseModel):
    """
    Geometry of a route as a GeoJSON LineString in WGS84.

    coordinates is a list of [lon, lat] pairs, in GeoJSON order.
    """
    type: str = "LineString"
    coordinates: List[List[float]]


class RouteSummary(BaseModel):
    """
    One route, with real-world distance and travel time. The main-road
    penalty never shows up in duration_s.
    """
    kind: str
    distance_m: float
    duration_s: float
    geometry: RouteGeometry

    def to_feature(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": self.geometry.model_dump(),
            "properties": {
                "kind": self.kind,
                "distance": self.distance_m,
                "time": self.duration_s,
            },
        }


class RouteComparison(BaseModel):
    """
    The same trip routed on the original and the edited network. Either side is
    None when there's no path on that side.
    """
    before: Optional[RouteSummary] = None
    after: Optional[RouteSummary] = None

    def to_feature_collection(self) -> Dict[str, Any]:
        features = [r.to_feature() for r in (self.before, self.after) if r is not None]
        return {"type": "FeatureCollection", "features": features}


class RoadImpact(BaseModel):
    """
    Before/after trip from the midpoint of one road to the destination.
    """
    road: int
    geometry: RouteGeometry
    origin: Coordinate
    distance_before: float
    distance_after: float
    time_before: float
    time_after: float


class ImpactResult(BaseModel):
    roads: List[RoadImpact] = []
    highest_time_ratio: float = 1.0

    def to_feature_collection(self) -> Dict[str, Any]:
        features = []
        for r in self.roads:
            features.append(
                {
                    "type": "Feature",
                    "geometry": r.geometry.model_dump(),
                    "properties": {
                        "road": r.road,
                        "distance_before": r.distance_before,
                        "distance_after": r.distance_after,
                        "time_before": r.time_before,
                        "time_after": r.time_after,
                        "pt1_x": r.origin.lon,
                        "pt1_y": r.origin.lat,
                    },
                }
            )
        return {
            "type": "FeatureCollection",
            "features": features,
            "highest_time_ratio": self.highest_time_ratio,
        }
