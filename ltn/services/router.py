# ltn/services/router.py

from dataclasses import dataclass
from time import perf_counter
from typing import Dict, List, Mapping, Optional, Set, Tuple

import networkx as nx
from shapely.geometry import LineString, Point
from shapely.strtree import STRtree

from ltn.core.logger import logger
from ltn.models.edits import DiagonalFilter, Direction, ModalFilter
from ltn.models.network import IntersectionID, Road, RoadID
from ltn.services.geometry import join_coords, slice_linestring
from ltn.services.network import Network

# A directed traversal of a road: (road, forwards). As a graph node it means
# "just reached the far end of this road".
Traversal = Tuple[RoadID, bool]

SOURCE = "source"
TARGET = "target"


@dataclass(frozen=True)
class RouteStep:
    road: RoadID
    forwards: bool
    start_fraction: float
    end_fraction: float

    @property
    def fraction_covered(self) -> float:
        return abs(self.end_fraction - self.start_fraction)


@dataclass
class Route:
    steps: List[RouteStep]

    def linestring(self, network: Network) -> LineString:
        """
        The traversed road geometry, oriented along the route and trimmed to the
        snapped start and end points.
        """
        pieces = [
            slice_linestring(network.road(s.road).linestring, s.start_fraction, s.end_fraction)
            for s in self.steps
        ]
        coords = join_coords(pieces)
        if len(coords) == 1:
            # Start and end snapped to the same spot
            coords.append(coords[0])
        return LineString(coords)

    def distance_and_time(self, network: Network) -> Tuple[float, float]:
        """
        Physical length in metres and free-flow time in seconds. No main-road
        penalty is applied here.
        """
        distance = 0.0
        time = 0.0
        for s in self.steps:
            road = network.road(s.road)
            distance += road.length_m * s.fraction_covered
            time += road.cost_seconds() * s.fraction_covered
        return distance, time


class Router:
    """
    Shortest paths over one snapshot of the edit state.

    The graph is built once from the network plus the filters, directions and
    penalty given here. It's never updated; callers build a new Router when
    the edit state changes.
    """

    def __init__(
        self,
        network: Network,
        modal_filters: Mapping[RoadID, ModalFilter],
        directions: Mapping[RoadID, Direction],
        diagonal_filters: Mapping[IntersectionID, DiagonalFilter],
        main_road_penalty: float,
    ) -> None:
        t0 = perf_counter()
        self.main_road_penalty = main_road_penalty
        self.graph = nx.DiGraph()
        self.routable: Set[RoadID] = set()

        # Nodes: every allowed traversal of an unfiltered road
        for road in network.roads:
            if road.id in modal_filters:
                continue
            for forwards in (True, False):
                if directions[road.id].allows(forwards):
                    self.graph.add_node((road.id, forwards))
                    self.routable.add(road.id)

        # Edges: movements through the intersection a traversal arrives at
        for node in list(self.graph.nodes):
            r1, forwards1 = node
            road1 = network.road(r1)
            i = road1.dst_i if forwards1 else road1.src_i
            intersection = network.intersection(i)
            diagonal_filter = diagonal_filters.get(i)

            for r2 in intersection.roads:
                if (r1, r2) in intersection.turn_restrictions:
                    continue
                if diagonal_filter is not None and not diagonal_filter.allows_movement((r1, r2)):
                    continue
                road2 = network.road(r2)
                for forwards2 in self._leaving(road2, i):
                    next_node = (r2, forwards2)
                    if next_node in self.graph:
                        self.graph.add_edge(node, next_node, weight=self.cost(road2))

        # Route endpoints snap to the nearest usable road, however far away
        self._snap_roads: List[RoadID] = sorted(
            r for r in self.routable if network.road(r).length_m > 0.0
        )
        self._snap_tree: Optional[STRtree] = None
        if self._snap_roads:
            self._snap_tree = STRtree([network.road(r).linestring for r in self._snap_roads])

        logger.info(
            f"Router built (penalty={main_road_penalty}): {self.graph.number_of_nodes()} nodes, "
            f"{self.graph.number_of_edges()} edges in {(perf_counter() - t0) * 1000.0:.2f} ms"
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def cost(self, road: Road) -> float:
        """
        Routing cost of crossing a whole road, with the main-road penalty.
        """
        cost = road.cost_seconds()
        if road.is_main_road():
            cost *= self.main_road_penalty
        return cost

    def snap(self, network: Network, pt: Point) -> Optional[Tuple[RoadID, float]]:
        """
        Closest point on a road this router can actually use. Unlike clicks,
        this isn't limited to the search radius.
        """
        if self._snap_tree is None:
            return None
        idx = self._snap_tree.nearest(pt)
        return network.index.closest_road(pt, [self._snap_roads[int(idx)]])

    def route(self, network: Network, pt1: Point, pt2: Point) -> Optional[Route]:
        """
        Shortest route between two planar points, or None if they can't be
        connected (no routable roads at all, or cut off by filters / one-ways).
        """
        start = self.snap(network, pt1)
        end = self.snap(network, pt2)
        if start is None or end is None:
            return None

        self._add_endpoints(network, start, end)
        try:
            _, path = nx.single_source_dijkstra(self.graph, SOURCE, TARGET, weight="weight")
        except nx.NetworkXNoPath:
            return None
        else:
            return self._path_to_route(start, end, path)
        finally:
            self.graph.remove_nodes_from([SOURCE, TARGET])

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _leaving(road: Road, i: IntersectionID) -> List[bool]:
        """
        Which directions of `road` start at intersection `i`.
        """
        out = []
        if road.src_i == i:
            out.append(True)
        if road.dst_i == i:
            out.append(False)
        return out

    def _add_endpoints(
        self,
        network: Network,
        start: Tuple[RoadID, float],
        end: Tuple[RoadID, float],
    ) -> None:
        """
        Temporary SOURCE and TARGET nodes. Edges out of SOURCE cost the rest of
        the start road; edges into TARGET cost the part of the end road up to
        the snapped point.
        """
        (r_start, frac_start), (r_end, frac_end) = start, end
        start_cost = self.cost(network.road(r_start))
        end_cost = self.cost(network.road(r_end))

        self.graph.add_node(SOURCE)
        self.graph.add_node(TARGET)

        for forwards in (True, False):
            node = (r_start, forwards)
            if node in self.graph:
                remaining = (1.0 - frac_start) if forwards else frac_start
                self.graph.add_edge(SOURCE, node, weight=remaining * start_cost)

        target_edges: Dict[object, Tuple[float, bool]] = {}

        def offer(u: object, weight: float, forwards: bool) -> None:
            if u not in target_edges or weight < target_edges[u][0]:
                target_edges[u] = (weight, forwards)

        for forwards in (True, False):
            node = (r_end, forwards)
            if node not in self.graph:
                continue
            covered = frac_end if forwards else (1.0 - frac_end)
            for pred in list(self.graph.predecessors(node)):
                if pred == SOURCE:
                    continue
                offer(pred, covered * end_cost, forwards)

            # Both points on the same road, already heading the right way
            if r_start == r_end:
                if forwards and frac_end >= frac_start:
                    offer(SOURCE, (frac_end - frac_start) * end_cost, True)
                elif not forwards and frac_end <= frac_start:
                    offer(SOURCE, (frac_start - frac_end) * end_cost, False)

        for u, (weight, forwards) in target_edges.items():
            self.graph.add_edge(u, TARGET, weight=weight, forwards=forwards)

    def _path_to_route(
        self,
        start: Tuple[RoadID, float],
        end: Tuple[RoadID, float],
        path: List[object],
    ) -> Route:
        (r_start, frac_start), (r_end, frac_end) = start, end
        last_forwards = self.graph.edges[path[-2], TARGET]["forwards"]

        if len(path) == 2:
            return Route(steps=[RouteStep(r_start, last_forwards, frac_start, frac_end)])

        traversals: List[Traversal] = path[1:-1]
        steps: List[RouteStep] = []

        first_road, first_forwards = traversals[0]
        steps.append(
            RouteStep(first_road, first_forwards, frac_start, 1.0 if first_forwards else 0.0)
        )
        for r, forwards in traversals[1:]:
            steps.append(RouteStep(r, forwards, 0.0 if forwards else 1.0, 1.0 if forwards else 0.0))
        steps.append(RouteStep(r_end, last_forwards, 0.0 if last_forwards else 1.0, frac_end))

        return Route(steps=steps)
