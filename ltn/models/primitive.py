# ltn/models/primitive.py
"""
The primitive graph handed over by a map data ingestor.

Ids are positions in the `intersections` / `edges` lists. Geometry is planar.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from shapely.geometry import LineString, Point


@dataclass
class PrimitiveIntersection:
    id: int
    osm_node: int
    point: Point
    edges: List[int]
    # (from edge, to edge) movements that are banned here
    turn_restrictions: List[Tuple[int, int]] = field(default_factory=list)


@dataclass
class PrimitiveEdge:
    id: int
    src: int
    dst: int
    osm_way: int
    osm_node1: int
    osm_node2: int
    linestring: LineString
    tags: Dict[str, str]


@dataclass
class PrimitiveGraph:
    intersections: List[PrimitiveIntersection]
    edges: List[PrimitiveEdge]
    # Barrier nodes lying on roads; these become existing modal filters
    barrier_points: List[Point] = field(default_factory=list)
    # OSM way -> names of bus routes using it
    bus_routes_on_ways: Dict[int, List[str]] = field(default_factory=dict)
