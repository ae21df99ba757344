# ltn/services/network.py
from time import perf_counter
from typing import List

from ltn.core.config import settings
from ltn.core.logger import logger
from ltn.models.network import Intersection, IntersectionID, Road, RoadID, parse_speed_mph
from ltn.models.primitive import PrimitiveGraph, PrimitiveIntersection
from ltn.services.geometry import bearing_from_endpoint
from ltn.services.spatial_index import SpatialIndex


class Network:
    """
    The finalised road graph: roads, intersections and the spatial index
    over them. Roads and intersections only refer to each other by id.

    Geometry and topology never change after construction.
    """

    def __init__(self, graph: PrimitiveGraph) -> None:
        t0 = perf_counter()

        self.roads: List[Road] = [
            Road(
                id=RoadID(idx),
                src_i=IntersectionID(e.src),
                dst_i=IntersectionID(e.dst),
                way=e.osm_way,
                node1=e.osm_node1,
                node2=e.osm_node2,
                linestring=e.linestring,
                tags=dict(e.tags),
                speed_mph=parse_speed_mph(e.tags),
            )
            for idx, e in enumerate(graph.edges)
        ]

        self.intersections: List[Intersection] = [
            self._finalize_intersection(idx, i) for idx, i in enumerate(graph.intersections)
        ]

        self.index = SpatialIndex(
            self.roads,
            self.intersections,
            search_radius=settings.CLOSEST_ROAD_SEARCH_RADIUS_M,
        )

        logger.info(
            f"Network ready: {len(self.roads)} roads, {len(self.intersections)} intersections "
            f"in {(perf_counter() - t0) * 1000.0:.2f} ms"
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def road(self, r: RoadID) -> Road:
        return self.roads[r]

    def intersection(self, i: IntersectionID) -> Intersection:
        return self.intersections[i]

    def edge_between(self, i1: IntersectionID, i2: IntersectionID) -> Road:
        """
        The road joining two adjacent intersections. Asking about intersections
        that aren't adjacent is a bug in the caller.
        """
        a = self.intersection(i1)
        b = self.intersection(i2)
        smaller, other = (a, b) if len(a.roads) <= len(b.roads) else (b, a)
        for r in smaller.roads:
            road = self.road(r)
            if road.src_i == other.id or road.dst_i == other.id:
                return road
        raise RuntimeError(f"no road from {a} to {b} or vice versa")

    def roads_at(self, i: IntersectionID) -> List[Road]:
        return [self.road(r) for r in self.intersection(i).roads]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _finalize_intersection(self, idx: int, value: PrimitiveIntersection) -> Intersection:
        # Sort roads clockwise, starting from north. Scale the bearing to an
        # int so equal bearings compare equal and the stable sort decides.
        def sort_key(edge_id: int) -> int:
            bearing = bearing_from_endpoint(value.point, self.roads[edge_id].linestring)
            return int(bearing * 1e6)

        roads = [RoadID(e) for e in sorted(value.edges, key=sort_key)]
        return Intersection(
            id=IntersectionID(idx),
            node=value.osm_node,
            point=value.point,
            roads=roads,
            turn_restrictions=[(RoadID(a), RoadID(b)) for a, b in value.turn_restrictions],
        )
