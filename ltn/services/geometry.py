# ltn/services/geometry.py
"""
Small geometry helpers on top of shapely.

Everything here works in planar (metre) coordinates. Bearings are compass
bearings: 0 is north, increasing clockwise, always in [0, 360).
"""
import math
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import LineString, Point, Polygon, box
from shapely.ops import substring


def limit_angle(angle: float) -> float:
    """
    Normalise any angle in degrees into [0, 360).
    """
    return angle % 360.0


def compass_bearing(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    return limit_angle(math.degrees(math.atan2(dx, dy)))


def bearing_from_endpoint(endpoint: Point, linestring: LineString) -> float:
    """
    Bearing of the first segment of `linestring` as seen leaving `endpoint`.

    `endpoint` is expected to be one of the two ends of the line; whichever end
    is closer is treated as the start.
    """
    coords = list(linestring.coords)
    first = Point(coords[0])
    last = Point(coords[-1])
    if endpoint.distance(first) <= endpoint.distance(last):
        return compass_bearing(coords[0], coords[1])
    return compass_bearing(coords[-1], coords[-2])


def diagonal_bearing(bearing_1: float, bearing_2: float) -> float:
    """
    Bisect the clockwise arc going from bearing_1 to bearing_2.
    """
    arc = limit_angle(bearing_2 - bearing_1)
    return limit_angle(bearing_1 + arc / 2.0)


def angle_of_pt_on_line(linestring: LineString, pt: Point) -> float:
    """
    Euclidean angle (degrees, counter-clockwise from east) of the segment of
    `linestring` closest to `pt`.
    """
    coords = list(linestring.coords)
    best_angle = 0.0
    best_dist = float("inf")
    for a, b in zip(coords[:-1], coords[1:]):
        d = LineString([a, b]).distance(pt)
        if d < best_dist:
            best_dist = d
            best_angle = math.degrees(math.atan2(b[1] - a[1], b[0] - a[0]))
    return best_angle


def buffer_bbox(pt: Point, radius: float) -> Polygon:
    return box(pt.x - radius, pt.y - radius, pt.x + radius, pt.y + radius)


def linestring_intersection(road: LineString, line: LineString) -> Optional[float]:
    """
    Where does `line` first cross `road`? Returns the fraction along `road`, or
    None if they don't touch.
    """
    hit = road.intersection(line)
    if hit.is_empty:
        return None

    if hit.geom_type == "Point":
        pt = hit
    elif hasattr(hit, "geoms"):
        # MultiPoint or a collection; take the first piece
        pt = Point(list(hit.geoms)[0].coords[0])
    else:
        # Overlapping segment
        pt = Point(hit.coords[0])

    return road.project(pt, normalized=True)


def slice_linestring(linestring: LineString, start: float, end: float) -> List[Tuple[float, float]]:
    """
    Coordinates of `linestring` between two fractions. If start > end, the
    result runs backwards. A zero-length slice gives a single coordinate.
    """
    piece = substring(linestring, start, end, normalized=True)
    return [tuple(c) for c in piece.coords]


def join_coords(pieces: Sequence[List[Tuple[float, float]]]) -> List[Tuple[float, float]]:
    """
    Concatenate coordinate runs, dropping the duplicated point where one run
    ends and the next begins.
    """
    out: List[Tuple[float, float]] = []
    for piece in pieces:
        for c in piece:
            if out and out[-1] == c:
                continue
            out.append(c)
    return out


def invert_polygon(polygon: Polygon) -> Polygon:
    """
    A polygon covering the whole world, with `polygon` cut out as a hole.
    Input and output are WGS84.
    """
    world = [(-180.0, -90.0), (180.0, -90.0), (180.0, 90.0), (-180.0, 90.0), (-180.0, -90.0)]
    return Polygon(world, [list(polygon.exterior.coords)])
