# ltn/services/spatial_index.py
from typing import Iterable, List, Optional, Tuple

from shapely.geometry import LineString, Point
from shapely.ops import nearest_points
from shapely.strtree import STRtree

from ltn.models.network import Intersection, IntersectionID, Road, RoadID
from ltn.services.geometry import buffer_bbox


class SpatialIndex:
    """
    Two STRtrees in planar coordinates: one over road linestrings, one over
    intersection points. Tree positions are the RoadID / IntersectionID.
    """

    def __init__(
        self,
        roads: List[Road],
        intersections: List[Intersection],
        search_radius: float,
    ) -> None:
        self.search_radius = search_radius
        self._road_geoms: List[LineString] = [r.linestring for r in roads]
        self._intersection_geoms: List[Point] = [i.point for i in intersections]
        self.road_tree = STRtree(self._road_geoms)
        self.intersection_tree = STRtree(self._intersection_geoms)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def roads_near(self, pt: Point, radius: Optional[float] = None) -> List[RoadID]:
        """
        Every road whose envelope touches a box of `radius` around `pt`.
        """
        bbox = buffer_bbox(pt, self.search_radius if radius is None else radius)
        return sorted(RoadID(int(idx)) for idx in self.road_tree.query(bbox))

    def closest_road(
        self,
        pt: Point,
        candidates: Optional[Iterable[RoadID]] = None,
    ) -> Optional[Tuple[RoadID, float]]:
        """
        Find the road closest to `pt` and the fraction along it of the closest point.

        If `candidates` isn't given, only roads near the point are searched.
        Returns None when no candidate has usable geometry.
        """
        roads = self.roads_near(pt) if candidates is None else candidates

        best: Optional[Tuple[float, RoadID, float]] = None
        for r in roads:
            ls = self._road_geoms[r]
            if ls.length == 0.0:
                continue
            hit_pt = nearest_points(ls, pt)[0]
            score = hit_pt.distance(pt)
            if best is None or score < best[0]:
                best = (score, r, ls.project(hit_pt, normalized=True))

        if best is None:
            return None
        return best[1], best[2]

    def nearest_intersection(self, pt: Point) -> Optional[IntersectionID]:
        if not self._intersection_geoms:
            return None
        return IntersectionID(int(self.intersection_tree.nearest(pt)))

    def most_similar_road(self, linestring: LineString) -> RoadID:
        """
        The road whose endpoints are closest to the endpoints of `linestring`.

        Best-effort only: if the underlying data split or merged the road since
        the linestring was recorded, this can't tell.
        """
        first = Point(linestring.coords[0])
        last = Point(linestring.coords[-1])

        best_road: Optional[RoadID] = None
        best_score = float("inf")
        for r, ls in enumerate(self._road_geoms):
            score = Point(ls.coords[0]).distance(first) + Point(ls.coords[-1]).distance(last)
            if score < best_score:
                best_score = score
                best_road = RoadID(r)

        if best_road is None:
            raise RuntimeError("most_similar_road called on an empty network")
        return best_road
