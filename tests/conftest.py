# tests/conftest.py
import os
import sys
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest
from shapely.geometry import LineString, Point, box

# Add the project root directory to sys.path so that "import ltn" works
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from ltn.models.primitive import PrimitiveEdge, PrimitiveGraph, PrimitiveIntersection  # noqa: E402
from ltn.services.map_model import MapModel  # noqa: E402
from ltn.services.projection import Projection  # noqa: E402

# Somewhere in Bristol
CENTER_LON = -2.59
CENTER_LAT = 51.45

RoadSpec = Tuple[str, str, Dict[str, str]]


def build_primitive_graph(
    nodes: Dict[str, Tuple[float, float]],
    roads: Sequence[RoadSpec],
    barrier_points: Iterable[Tuple[float, float]] = (),
    bus_routes_on_ways: Optional[Dict[int, List[str]]] = None,
) -> PrimitiveGraph:
    """
    Straight roads between named planar points. Road i gets OSM way 1000 + i.
    """
    names = list(nodes)
    intersections = [
        PrimitiveIntersection(id=idx, osm_node=idx + 1, point=Point(nodes[name]), edges=[])
        for idx, name in enumerate(names)
    ]
    edges = []
    for idx, (a, b, tags) in enumerate(roads):
        src = names.index(a)
        dst = names.index(b)
        edges.append(
            PrimitiveEdge(
                id=idx,
                src=src,
                dst=dst,
                osm_way=1000 + idx,
                osm_node1=src + 1,
                osm_node2=dst + 1,
                linestring=LineString([nodes[a], nodes[b]]),
                tags=dict(tags),
            )
        )
        intersections[src].edges.append(idx)
        intersections[dst].edges.append(idx)

    return PrimitiveGraph(
        intersections=intersections,
        edges=edges,
        barrier_points=[Point(p) for p in barrier_points],
        bus_routes_on_ways=bus_routes_on_ways or {},
    )


RESIDENTIAL = {"highway": "residential"}


def grid_graph(**kwargs) -> PrimitiveGraph:
    """
    3x3 intersections, 100m apart. Intersection id = 3 * row + col.

    Roads 0-5 are horizontal (2 * row + col), roads 6-11 vertical
    (6 + 2 * col + row). The centre (intersection 4) has N=9, E=3, S=8, W=2.
    """
    nodes = {f"{c},{r}": (100.0 * c, 100.0 * r) for r in range(3) for c in range(3)}
    roads: List[RoadSpec] = []
    for r in range(3):
        for c in range(2):
            roads.append((f"{c},{r}", f"{c + 1},{r}", RESIDENTIAL))
    for c in range(3):
        for r in range(2):
            roads.append((f"{c},{r}", f"{c},{r + 1}", RESIDENTIAL))
    return build_primitive_graph(nodes, roads, **kwargs)


def chain_graph() -> PrimitiveGraph:
    """
    Three roads in a line along y=0. Road 1 is the only link between the
    two halves.
    """
    nodes = {"a": (0.0, 0.0), "b": (100.0, 0.0), "c": (200.0, 0.0), "d": (300.0, 0.0)}
    roads = [("a", "b", RESIDENTIAL), ("b", "c", RESIDENTIAL), ("c", "d", RESIDENTIAL)]
    return build_primitive_graph(nodes, roads)


def ladder_graph() -> PrimitiveGraph:
    """
    Road 1 is a 100m direct link from x to y. Without it, the only way round is
    roads 3, 4, 5 (600m). Road 0 leads into x, road 2 out of y.
    """
    nodes = {
        "o": (-100.0, 0.0),
        "x": (0.0, 0.0),
        "y": (100.0, 0.0),
        "z": (200.0, 0.0),
        "p": (0.0, 250.0),
        "q": (100.0, 250.0),
    }
    roads = [
        ("o", "x", RESIDENTIAL),
        ("x", "y", RESIDENTIAL),
        ("y", "z", RESIDENTIAL),
        ("x", "p", RESIDENTIAL),
        ("p", "q", RESIDENTIAL),
        ("q", "y", RESIDENTIAL),
    ]
    return build_primitive_graph(nodes, roads)


def main_road_graph() -> PrimitiveGraph:
    """
    A 200m primary road from a to b, or a residential detour through c.
    Residential stubs lead in and out.
    """
    nodes = {
        "s": (-100.0, 0.0),
        "a": (0.0, 0.0),
        "b": (200.0, 0.0),
        "t": (300.0, 0.0),
        "c": (100.0, 100.0),
    }
    roads = [
        ("s", "a", RESIDENTIAL),
        ("a", "b", {"highway": "primary"}),
        ("b", "t", RESIDENTIAL),
        ("a", "c", RESIDENTIAL),
        ("c", "b", RESIDENTIAL),
    ]
    return build_primitive_graph(nodes, roads)


@pytest.fixture
def projection() -> Projection:
    return Projection(center_lon=CENTER_LON, center_lat=CENTER_LAT)


@pytest.fixture
def make_model(projection):
    def make(graph: PrimitiveGraph, study_area_name: Optional[str] = "Test area") -> MapModel:
        boundary = projection.to_wgs84(box(-500.0, -500.0, 800.0, 800.0))
        return MapModel(graph, projection, boundary, study_area_name)

    return make


@pytest.fixture
def grid(make_model) -> MapModel:
    return make_model(grid_graph())
