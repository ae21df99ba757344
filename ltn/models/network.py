# ltn/models/network.py
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, NewType, Optional, Tuple

from shapely.geometry import LineString, Point

from ltn.core.config import settings

RoadID = NewType("RoadID", int)
IntersectionID = NewType("IntersectionID", int)

MPH_TO_METERS_PER_SECOND = 0.44704
KMH_TO_MPH = 0.621371

# Rough UK defaults when maxspeed is missing
DEFAULT_SPEED_BY_HIGHWAY_MPH: Dict[str, int] = {
    "motorway": 70,
    "motorway_link": 50,
    "trunk": 60,
    "trunk_link": 40,
    "primary": 40,
    "primary_link": 30,
    "secondary": 30,
    "tertiary": 30,
    "residential": 20,
    "living_street": 10,
    "service": 10,
}


def parse_speed_mph(tags: Dict[str, str]) -> int:
    """
    Speed limit in mph from `maxspeed`. A bare number is km/h, as in OSM.
    """
    raw = tags.get("maxspeed")
    if raw:
        m = re.match(r"^\s*(\d+(?:\.\d+)?)\s*(mph)?\s*$", raw)
        if m:
            value = float(m.group(1))
            if m.group(2) is None:
                value *= KMH_TO_MPH
            if value > 0:
                return max(1, int(round(value)))

    return DEFAULT_SPEED_BY_HIGHWAY_MPH.get(tags.get("highway", ""), settings.DEFAULT_SPEED_MPH)


@dataclass
class Road:
    """
    A segment of a road network. No intersections happen *within* a Road; one
    OSM way may be divided into several Roads.
    """
    id: RoadID
    src_i: IntersectionID
    dst_i: IntersectionID
    way: int
    node1: int
    node2: int
    linestring: LineString
    tags: Dict[str, str]
    speed_mph: int

    @property
    def length_m(self) -> float:
        return self.linestring.length

    def cost_seconds(self) -> float:
        """
        How long does it take a car following the speed limit to cross this road?
        """
        return self.length_m / (self.speed_mph * MPH_TO_METERS_PER_SECOND)

    def is_main_road(self) -> bool:
        return self.tags.get("highway") in settings.MAIN_ROAD_HIGHWAY_TYPES

    def to_feature(self, projection: Any) -> Dict[str, Any]:
        f = projection.to_wgs84_feature(self.linestring)
        f["properties"]["id"] = self.id
        f["properties"]["speed_mph"] = self.speed_mph
        f["properties"]["way"] = str(self.way)
        for k, v in self.tags.items():
            f["properties"][k] = v
        return f

    def __str__(self) -> str:
        return f"Road #{self.id}"


@dataclass
class Intersection:
    id: IntersectionID
    node: int
    point: Point
    # Ordered clockwise from north
    roads: List[RoadID]
    # (from, to) is not allowed. May be redundant with the road directions.
    turn_restrictions: List[Tuple[RoadID, RoadID]] = field(default_factory=list)

    def has_turn_restrictions(self) -> bool:
        return bool(self.turn_restrictions)

    def __str__(self) -> str:
        return f"Intersection #{self.id}"
