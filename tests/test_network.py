# tests/test_network.py
import pytest
from shapely.geometry import LineString, Point

from conftest import grid_graph
from ltn.core.config import settings
from ltn.models.edits import Direction
from ltn.models.network import parse_speed_mph
from ltn.services.network import Network


@pytest.fixture
def network() -> Network:
    return Network(grid_graph())


def test_dense_ids_and_lookups(network):
    assert len(network.roads) == 12
    assert len(network.intersections) == 9
    road = network.road(3)
    assert road.id == 3
    assert (road.src_i, road.dst_i) == (4, 5)
    assert network.intersection(4).point.equals(Point(100, 100))


def test_intersection_roads_sorted_clockwise_from_north(network):
    # N, E, S, W
    assert network.intersection(4).roads == [9, 3, 8, 2]
    # Bottom-left corner: north then east
    assert network.intersection(0).roads == [6, 0]


def test_roads_at(network):
    assert [r.id for r in network.roads_at(4)] == [9, 3, 8, 2]
    assert [r.id for r in network.roads_at(8)] == [11, 5]


def test_road_to_feature(network, projection):
    f = network.road(3).to_feature(projection)

    assert f["geometry"]["type"] == "LineString"
    assert f["properties"] == {"id": 3, "speed_mph": 20, "way": "1003", "highway": "residential"}
    lon, lat = f["geometry"]["coordinates"][0]
    assert -3.0 < lon < -2.0
    assert 51.0 < lat < 52.0


def test_edge_between(network):
    assert network.edge_between(0, 1).id == 0
    assert network.edge_between(1, 0).id == 0
    assert network.edge_between(4, 7).id == 9


def test_edge_between_non_adjacent_is_fatal(network):
    with pytest.raises(RuntimeError):
        network.edge_between(0, 4)


def test_closest_road_default_search(network):
    r, fraction = network.index.closest_road(Point(50, 10))
    assert r == 0
    assert fraction == pytest.approx(0.5)


def test_closest_road_minimal_within_candidates(network):
    # Road 0 is closer, but isn't a candidate
    r, fraction = network.index.closest_road(Point(50, 10), [2, 6])
    assert r == 6
    assert fraction == pytest.approx(0.1)


def test_closest_road_nothing_nearby(network):
    assert network.index.closest_road(Point(5000, 5000)) is None


def test_nearest_intersection(network):
    assert network.index.nearest_intersection(Point(95, 105)) == 4
    assert network.index.nearest_intersection(Point(-500, 900)) == 6


def test_most_similar_road(network):
    assert network.index.most_similar_road(LineString([(1, 99), (99, 101)])) == 2


def test_road_cost_and_speed(network):
    road = network.road(0)
    assert road.speed_mph == 20
    assert road.length_m == pytest.approx(100.0)
    assert road.cost_seconds() == pytest.approx(100.0 / (20 * 0.44704))
    assert not road.is_main_road()


@pytest.mark.parametrize(
    "tags, expected",
    [
        ({"maxspeed": "30 mph"}, 30),
        ({"maxspeed": "50"}, 31),
        ({"highway": "residential"}, 20),
        ({"highway": "primary", "maxspeed": "nonsense"}, 40),
        ({"highway": "unclassified"}, settings.DEFAULT_SPEED_MPH),
    ],
)
def test_parse_speed_mph(tags, expected):
    assert parse_speed_mph(tags) == expected


@pytest.mark.parametrize(
    "tags, expected",
    [
        ({"highway": "residential"}, Direction.BOTH_WAYS),
        ({"highway": "residential", "oneway": "yes"}, Direction.FORWARDS),
        ({"highway": "residential", "oneway": "-1"}, Direction.BACKWARDS),
        ({"highway": "motorway"}, Direction.FORWARDS),
        ({"highway": "primary", "junction": "roundabout"}, Direction.FORWARDS),
    ],
)
def test_direction_from_tags(tags, expected):
    assert Direction.from_tags(tags) == expected


def test_direction_toggle_cycle():
    assert Direction.FORWARDS.toggled() == Direction.BACKWARDS
    assert Direction.BACKWARDS.toggled() == Direction.BOTH_WAYS
    assert Direction.BOTH_WAYS.toggled() == Direction.FORWARDS
