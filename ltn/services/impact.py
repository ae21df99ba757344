# ltn/services/impact.py
from time import perf_counter
from typing import TYPE_CHECKING, List, Optional, Tuple

from shapely.geometry import LineString, Point

from ltn.core.logger import logger
from ltn.models.network import RoadID
from ltn.models.routing import (
    Coordinate,
    ImpactResult,
    RoadImpact,
    RouteComparison,
    RouteGeometry,
    RouteSummary,
)
from ltn.services.router import Router

if TYPE_CHECKING:
    from ltn.services.map_model import MapModel

# Destination (rounded) and the origin roads
ImpactKey = Tuple[float, float, Tuple[RoadID, ...]]


class Impact:
    """
    Compares trips before and after edits.

    The latest `impact_to_one_destination` result is kept until the next edit
    or a question about a different destination.
    """

    def __init__(self) -> None:
        self._last_key: Optional[ImpactKey] = None
        self._last_result: Optional[ImpactResult] = None

    def invalidate_after_edits(self) -> None:
        if self._last_result is not None:
            logger.info("Dropping cached impact result")
        self._last_key = None
        self._last_result = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def compare_route(
        self,
        model: "MapModel",
        pt1: Point,
        pt2: Point,
        main_road_penalty: float,
    ) -> RouteComparison:
        """
        Route between two planar points on the original network and on the
        edited one, both with the same main-road penalty.
        """
        model.rebuild_routers(main_road_penalty)

        return RouteComparison(
            before=self._summarise(model, model.router_before_with_penalty, pt1, pt2, "before"),
            after=self._summarise(model, model.router_after, pt1, pt2, "after"),
        )

    def impact_to_one_destination(
        self,
        model: "MapModel",
        pt2: Point,
        from_roads: List[RoadID],
    ) -> ImpactResult:
        """
        From the middle of every road in `from_roads`, route to `pt2` before and
        after edits.

        Roads where either route is missing are left out of the result and of
        highest_time_ratio.
        """
        key = (round(pt2.x, 3), round(pt2.y, 3), tuple(from_roads))
        if key == self._last_key and self._last_result is not None:
            return self._last_result

        t0 = perf_counter()
        # The main road penalty isn't relevant for this question
        model.rebuild_routers(1.0)
        before_router = model.router_before
        after_router = model.router_after

        network = model.network
        result = ImpactResult()
        for r in from_roads:
            road = network.road(r)
            pt1 = road.linestring.interpolate(0.5, normalized=True)

            before = before_router.route(network, pt1, pt2)
            after = after_router.route(network, pt1, pt2)
            if before is None or after is None:
                continue

            distance_before, time_before = before.distance_and_time(network)
            distance_after, time_after = after.distance_and_time(network)
            lon, lat = model.projection.pt_to_wgs84(pt1)

            result.roads.append(
                RoadImpact(
                    road=r,
                    geometry=_geometry(model, road.linestring),
                    origin=Coordinate(lat=lat, lon=lon),
                    distance_before=distance_before,
                    distance_after=distance_after,
                    time_before=time_before,
                    time_after=time_after,
                )
            )
            if time_before > 0:
                result.highest_time_ratio = max(result.highest_time_ratio, time_after / time_before)

        logger.info(
            f"Impact to one destination: {len(result.roads)}/{len(from_roads)} roads reported, "
            f"highest time ratio {result.highest_time_ratio:.2f}, "
            f"took {(perf_counter() - t0) * 1000.0:.2f} ms"
        )
        self._last_key = key
        self._last_result = result
        return result

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _summarise(
        model: "MapModel",
        router: Router,
        pt1: Point,
        pt2: Point,
        kind: str,
    ) -> Optional[RouteSummary]:
        route = router.route(model.network, pt1, pt2)
        if route is None:
            return None
        distance, time = route.distance_and_time(model.network)
        return RouteSummary(
            kind=kind,
            distance_m=distance,
            duration_s=time,
            geometry=_geometry(model, route.linestring(model.network)),
        )


def _geometry(model: "MapModel", linestring: LineString) -> RouteGeometry:
    wgs84 = model.projection.to_wgs84(linestring)
    return RouteGeometry(coordinates=[[x, y] for x, y in wgs84.coords])
