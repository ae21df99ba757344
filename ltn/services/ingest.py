# ltn/services/ingest.py
from typing import Any, Dict, List, Optional, Set, Tuple

import networkx as nx
import osmnx as ox
from shapely.geometry import LineString, Point, Polygon

from ltn.core.config import settings
from ltn.core.logger import logger
from ltn.models.primitive import PrimitiveEdge, PrimitiveGraph, PrimitiveIntersection
from ltn.services.projection import Projection

# OSM tags copied from osmnx edge attributes onto each edge
EDGE_TAGS = ("highway", "name", "maxspeed", "junction", "ref")


def download_primitive_graph(boundary_wgs84: Polygon, projection: Projection) -> PrimitiveGraph:
    """
    Download the drivable network inside a study area boundary with osmnx.
    """
    # Barrier nodes become existing modal filters
    if "barrier" not in ox.settings.useful_tags_node:
        ox.settings.useful_tags_node = list(ox.settings.useful_tags_node) + ["barrier"]

    logger.info(f"Downloading drivable OSM graph inside boundary with bounds {boundary_wgs84.bounds}")
    G: nx.MultiDiGraph = ox.graph_from_polygon(
        boundary_wgs84,
        network_type="drive",
        simplify=False,
    )
    logger.info(f"Downloaded graph: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges")

    # Most barriers sit in the middle of a street, on nodes that simplifying drops
    barrier_points = barrier_points_from_osmnx(G, projection)
    G = ox.simplify_graph(G)
    logger.info(f"Simplified graph: {G.number_of_nodes()} nodes, {G.number_of_edges()} edges")

    return primitive_graph_from_osmnx(G, projection, barrier_points)


def barrier_points_from_osmnx(G: nx.MultiDiGraph, projection: Projection) -> List[Point]:
    """
    Planar points of every barrier node, except the kinds in IGNORED_BARRIER_KINDS.
    """
    points: List[Point] = []
    for _, nd in G.nodes(data=True):
        barrier = _first(nd.get("barrier"))
        if isinstance(barrier, str) and barrier not in settings.IGNORED_BARRIER_KINDS:
            points.append(projection.pt_to_planar(nd["x"], nd["y"]))
    return points


def primitive_graph_from_osmnx(
    G: nx.MultiDiGraph,
    projection: Projection,
    barrier_points: Optional[List[Point]] = None,
) -> PrimitiveGraph:
    """
    Flatten an unprojected osmnx graph into a PrimitiveGraph.

    osmnx stores a two-way street as a pair of opposite directed edges; those
    are collapsed into one edge. One-way streets keep osmnx's orientation,
    which follows the direction of travel, and get oneway=yes.

    Pass `barrier_points` collected before simplification; otherwise only
    barriers on the nodes left in `G` are found.
    """
    edges: List[PrimitiveEdge] = []
    node_ids: Dict[Any, int] = {}
    incident: Dict[int, List[int]] = {}
    seen: Set[Tuple[Any, Any, float]] = set()
    num_loops = 0

    def intersection_id(node: Any) -> int:
        if node not in node_ids:
            node_ids[node] = len(node_ids)
            incident[node_ids[node]] = []
        return node_ids[node]

    for u, v, _, data in G.edges(keys=True, data=True):
        if u == v:
            num_loops += 1
            continue

        linestring = _edge_geometry(G, u, v, data)
        length_key = round(float(data.get("length", linestring.length)), 1)
        if data.get("oneway") is True:
            key = (u, v, length_key)
        else:
            key = (min(u, v), max(u, v), length_key)
        if key in seen:
            continue
        seen.add(key)

        src = intersection_id(u)
        dst = intersection_id(v)
        edge_id = len(edges)
        edges.append(
            PrimitiveEdge(
                id=edge_id,
                src=src,
                dst=dst,
                osm_way=int(_first(data.get("osmid", 0))),
                osm_node1=int(u),
                osm_node2=int(v),
                linestring=projection.to_planar(linestring),
                tags=_edge_tags(data),
            )
        )
        incident[src].append(edge_id)
        incident[dst].append(edge_id)

    intersections: List[PrimitiveIntersection] = []
    for node, idx in node_ids.items():
        nd = G.nodes[node]
        point = projection.pt_to_planar(nd["x"], nd["y"])
        intersections.append(
            PrimitiveIntersection(id=idx, osm_node=int(node), point=point, edges=incident[idx])
        )

    if barrier_points is None:
        barrier_points = barrier_points_from_osmnx(G.subgraph(node_ids), projection)

    logger.info(
        f"Primitive graph: {len(intersections)} intersections, {len(edges)} edges, "
        f"{len(barrier_points)} barriers ({num_loops} self-loops skipped)"
    )
    return PrimitiveGraph(intersections=intersections, edges=edges, barrier_points=barrier_points)


# ---------------------------------------------------------------------- #
# Internal helpers
# ---------------------------------------------------------------------- #


def _first(value: Any) -> Any:
    # osmnx merges attributes of simplified edges into lists
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _edge_geometry(G: nx.MultiDiGraph, u: Any, v: Any, data: Dict[str, Any]) -> LineString:
    geom: Optional[LineString] = data.get("geometry")
    if geom is not None:
        return geom
    # No shape stored: straight segment between the nodes
    return LineString(
        [(G.nodes[u]["x"], G.nodes[u]["y"]), (G.nodes[v]["x"], G.nodes[v]["y"])]
    )


def _edge_tags(data: Dict[str, Any]) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for key in EDGE_TAGS:
        value = _first(data.get(key))
        if value is not None:
            tags[key] = str(value)
    oneway = data.get("oneway")
    if oneway is True or oneway in ("yes", "true", "1"):
        tags["oneway"] = "yes"
    return tags
