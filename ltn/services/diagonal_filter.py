# ltn/services/diagonal_filter.py
from ltn.models.edits import DiagonalFilter
from ltn.models.network import Intersection
from ltn.services.geometry import bearing_from_endpoint, diagonal_bearing
from ltn.services.network import Network


def build_diagonal_filter(intersection: Intersection, rotation: int, network: Network) -> DiagonalFilter:
    """
    Split the four clockwise-ordered roads at `intersection` into two adjacent
    pairs, starting `rotation` roads round from north.

    Only 4-way intersections can hold a diagonal filter; anything else is a bug
    in the caller.
    """
    roads = intersection.roads
    if len(roads) != 4:
        raise RuntimeError(
            f"diagonal filters only support 4-way intersections, {intersection} has {len(roads)} roads"
        )

    group_a = (roads[rotation % 4], roads[(rotation + 1) % 4])
    group_b = (roads[(rotation + 2) % 4], roads[(rotation + 3) % 4])

    bearing_1 = bearing_from_endpoint(intersection.point, network.road(group_a[0]).linestring)
    bearing_2 = bearing_from_endpoint(intersection.point, network.road(group_a[1]).linestring)

    return DiagonalFilter(
        angle=diagonal_bearing(bearing_1, bearing_2),
        group_a=group_a,
        group_b=group_b,
    )
