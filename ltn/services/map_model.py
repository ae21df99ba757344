# ltn/services/map_model.py
import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shapely.geometry import LineString, Point, Polygon, mapping

from ltn.core.errors import BoundaryError
from ltn.core.logger import logger
from ltn.models.edits import (
    Command,
    DiagonalFilter,
    Direction,
    FilterKind,
    ModalFilter,
    Multiple,
    SetDiagonalFilter,
    SetDirection,
    SetModalFilter,
)
from ltn.models.network import Intersection, IntersectionID, Road, RoadID
from ltn.models.primitive import PrimitiveGraph
from ltn.models.routing import ImpactResult, RouteComparison
from ltn.services.diagonal_filter import build_diagonal_filter
from ltn.services.geometry import angle_of_pt_on_line, invert_polygon, limit_angle, linestring_intersection
from ltn.services.impact import Impact
from ltn.services.network import Network
from ltn.services.projection import Projection
from ltn.services import savefile
from ltn.services.router import Router


class MapModel:
    """
    A road network plus everything a user has done to it.

    The network itself never changes. Edits only touch the attribute maps
    (modal_filters, diagonal_filters, directions), always through the
    command methods below so they can be undone. Routers are built lazily and
    thrown away when their inputs change.

    Not safe to share between threads: the attribute maps, undo history and
    router caches are only consistent as a unit.
    """

    def __init__(
        self,
        graph: PrimitiveGraph,
        projection: Projection,
        boundary_wgs84: Polygon,
        study_area_name: Optional[str] = None,
    ) -> None:
        self.network = Network(graph)
        self.projection = projection
        self.boundary_wgs84 = boundary_wgs84
        self.study_area_name = study_area_name
        self.bus_routes_on_roads: Dict[int, List[str]] = dict(graph.bus_routes_on_ways)

        # Original network, no penalty. Used as the impact baseline.
        self.router_before: Optional[Router] = None
        # Original network with the caller's main road penalty
        self.router_before_with_penalty: Optional[Router] = None
        # Edited network; dropped after every edit
        self.router_after: Optional[Router] = None

        # Just from the basemap, existing filters
        self.original_modal_filters: Dict[RoadID, ModalFilter] = {}
        self.modal_filters: Dict[RoadID, ModalFilter] = {}
        self.diagonal_filters: Dict[IntersectionID, DiagonalFilter] = {}
        # Every road is filled out
        self.directions: Dict[RoadID, Direction] = self.original_directions()

        self.impact = Impact()

        self.undo_stack: List[Command] = []
        self.redo_queue: List[Command] = []
        # Boundary polygons in WGS84, with all of their GeoJSON properties
        self.boundaries: Dict[str, Dict[str, Any]] = {}

        # Barriers on roads become the existing filters. Add them as normal
        # edits, then forget the history.
        all_roads = [r.id for r in self.network.roads]
        for pt in graph.barrier_points:
            self.add_modal_filter(pt, all_roads, FilterKind.NO_ENTRY)
        self.original_modal_filters = dict(self.modal_filters)
        self.undo_stack.clear()
        self.redo_queue.clear()

        logger.info(
            f"MapModel ready for {study_area_name or 'unnamed study area'}: "
            f"{len(self.original_modal_filters)} existing modal filters"
        )

    # ------------------------------------------------------------------ #
    # Network access
    # ------------------------------------------------------------------ #

    def get_r(self, r: RoadID) -> Road:
        return self.network.road(r)

    def get_i(self, i: IntersectionID) -> Intersection:
        return self.network.intersection(i)

    def get_bus_routes_on_road(self, r: RoadID) -> Optional[List[str]]:
        """
        Names of bus routes along a road, if any.
        """
        return self.bus_routes_on_roads.get(self.get_r(r).way) or None

    def original_directions(self) -> Dict[RoadID, Direction]:
        return {r.id: Direction.from_tags(r.tags) for r in self.network.roads}

    # ------------------------------------------------------------------ #
    # Edits
    # ------------------------------------------------------------------ #

    def add_modal_filter(
        self,
        pt: Point,
        candidate_roads: Optional[Iterable[RoadID]],
        kind: FilterKind,
    ) -> None:
        cmd = self.modal_filter_cmd(pt, candidate_roads, kind)
        if cmd is None:
            raise RuntimeError(f"no road near ({pt.x:.1f}, {pt.y:.1f}) to put a filter on")
        self._push(cmd)

    def modal_filter_cmd(
        self,
        pt: Point,
        candidate_roads: Optional[Iterable[RoadID]],
        kind: FilterKind,
    ) -> Optional[Command]:
        """
        The command placing a filter on the road closest to `pt`, or None if no
        road is close enough. Doesn't change anything.
        """
        hit = self.network.index.closest_road(pt, candidate_roads)
        if hit is None:
            return None
        r, percent_along = hit
        return SetModalFilter(r, ModalFilter(kind=self._filter_kind_for(r, kind), percent_along=percent_along))

    def add_many_modal_filters(
        self,
        along_line: LineString,
        candidate_roads: Iterable[RoadID],
        kind: FilterKind,
    ) -> None:
        """
        Filter every candidate road that `along_line` crosses, as one edit.
        """
        edits: List[Command] = []
        for r in sorted(candidate_roads):
            percent_along = linestring_intersection(self.get_r(r).linestring, along_line)
            if percent_along is None:
                continue
            edits.append(
                SetModalFilter(r, ModalFilter(kind=self._filter_kind_for(r, kind), percent_along=percent_along))
            )
        self._push(Multiple(tuple(edits)))

    def delete_modal_filter(self, r: RoadID) -> None:
        self._push(SetModalFilter(r, None))

    def add_diagonal_filter(self, i: IntersectionID) -> None:
        self._push(SetDiagonalFilter(i, build_diagonal_filter(self.get_i(i), 0, self.network)))

    def rotate_diagonal_filter(self, i: IntersectionID) -> None:
        self._push(SetDiagonalFilter(i, build_diagonal_filter(self.get_i(i), 1, self.network)))

    def delete_diagonal_filter(self, i: IntersectionID) -> None:
        self._push(SetDiagonalFilter(i, None))

    def toggle_direction(self, r: RoadID) -> None:
        self._push(SetDirection(r, self.directions[r].toggled()))

    def undo(self) -> None:
        # Holding down the undo key can outrun the UI's own check for an
        # empty stack
        if not self.undo_stack:
            return
        cmd = self._apply(self.undo_stack.pop())
        self.redo_queue.append(cmd)
        self._after_edited()

    def redo(self) -> None:
        if not self.redo_queue:
            return
        cmd = self._apply(self.redo_queue.pop(0))
        self.undo_stack.append(cmd)
        self._after_edited()

    @property
    def undo_length(self) -> int:
        return len(self.undo_stack)

    @property
    def redo_length(self) -> int:
        return len(self.redo_queue)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def rebuild_routers(self, main_road_penalty: float) -> None:
        """
        Lazily build whichever routers are missing or were built for a
        different penalty.
        """
        if self.router_before is None:
            self.router_before = Router(
                self.network,
                self.original_modal_filters,
                self.original_directions(),
                {},
                1.0,
            )

        if (
            self.router_before_with_penalty is None
            or self.router_before_with_penalty.main_road_penalty != main_road_penalty
        ):
            if main_road_penalty == 1.0:
                self.router_before_with_penalty = self.router_before
            else:
                self.router_before_with_penalty = Router(
                    self.network,
                    self.original_modal_filters,
                    self.original_directions(),
                    {},
                    main_road_penalty,
                )

        if self.router_after is None or self.router_after.main_road_penalty != main_road_penalty:
            self.router_after = Router(
                self.network,
                self.modal_filters,
                self.directions,
                self.diagonal_filters,
                main_road_penalty,
            )

    def compare_route(self, pt1: Point, pt2: Point, main_road_penalty: float) -> RouteComparison:
        return self.impact.compare_route(self, pt1, pt2, main_road_penalty)

    def impact_to_one_destination(self, pt2: Point, from_roads: List[RoadID]) -> ImpactResult:
        return self.impact.impact_to_one_destination(self, pt2, from_roads)

    # ------------------------------------------------------------------ #
    # Boundaries
    # ------------------------------------------------------------------ #

    def set_boundary(self, name: str, feature: Dict[str, Any]) -> None:
        """
        Create or replace a named neighbourhood boundary (a WGS84 polygon feature).
        """
        f = copy.deepcopy(feature)
        props = f.get("properties") or {}
        props["kind"] = "boundary"
        props["name"] = name
        f["properties"] = props
        self.boundaries[name] = f

    def delete_boundary(self, name: str) -> None:
        if name not in self.boundaries:
            raise BoundaryError(f"No boundary named {name}")
        del self.boundaries[name]

    def rename_boundary(self, old_name: str, new_name: str) -> None:
        if old_name not in self.boundaries:
            raise BoundaryError(f"No boundary named {old_name}")
        if new_name in self.boundaries:
            raise BoundaryError(f"There's already a boundary named {new_name}")
        f = self.boundaries.pop(old_name)
        f["properties"]["name"] = new_name
        self.boundaries[new_name] = f

    def invert_study_area_boundary(self) -> Polygon:
        """
        A polygon covering the world minus a hole for the study area, in WGS84.
        """
        return invert_polygon(self.boundary_wgs84)

    def get_bounds(self) -> Tuple[float, float, float, float]:
        """
        (min lon, min lat, max lon, max lat) of the study area.
        """
        return self.boundary_wgs84.bounds

    # ------------------------------------------------------------------ #
    # Rendering
    # ------------------------------------------------------------------ #

    def render_modal_filters(self) -> Dict[str, Any]:
        features = []
        for r, modal_filter in sorted(self.modal_filters.items()):
            ls = self.get_r(r).linestring
            pt = ls.interpolate(modal_filter.percent_along, normalized=True)
            f = self.projection.to_wgs84_feature(pt)
            f["properties"].update(
                {
                    "filter_kind": modal_filter.kind.value,
                    "road": r,
                    # Drawn across the road
                    "angle": limit_angle(angle_of_pt_on_line(ls, pt) + 90.0),
                    "edited": modal_filter != self.original_modal_filters.get(r),
                }
            )
            features.append(f)
        return {"type": "FeatureCollection", "features": features}

    def render_intersections(self) -> Dict[str, Any]:
        features = []
        for i in self.network.intersections:
            f = self.projection.to_wgs84_feature(i.point)
            f["properties"]["intersection_id"] = i.id
            f["properties"]["has_turn_restrictions"] = i.has_turn_restrictions()
            diagonal_filter = self.diagonal_filters.get(i.id)
            if diagonal_filter is not None:
                f["properties"]["diagonal_filter"] = {
                    "angle": diagonal_filter.angle,
                    "group_a": list(diagonal_filter.group_a),
                    "group_b": list(diagonal_filter.group_b),
                }
            features.append(f)
        return {"type": "FeatureCollection", "features": features}

    def study_area_boundary_feature(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": mapping(self.boundary_wgs84),
            "properties": {"kind": "study_area_boundary"},
        }

    # ------------------------------------------------------------------ #
    # Savefiles
    # ------------------------------------------------------------------ #

    def to_savefile(self) -> Dict[str, Any]:
        return savefile.to_savefile(self)

    def load_savefile(self, gj: Dict[str, Any]) -> None:
        savefile.load_savefile(self, gj)

    def reset_to_baseline(self) -> None:
        """
        Forget every edit, including the undo history and named boundaries.
        """
        self.boundaries.clear()
        self.modal_filters = dict(self.original_modal_filters)
        self.diagonal_filters = {}
        self.directions = self.original_directions()
        self.undo_stack.clear()
        self.redo_queue.clear()

    def apply_without_history(self, cmd: Command) -> None:
        """
        Apply a command that can't be undone, like loading a savefile.
        """
        self._apply(cmd)
        self._after_edited()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _filter_kind_for(self, r: RoadID, kind: FilterKind) -> FilterKind:
        # Buses still need to get through
        if kind != FilterKind.BUS_GATE and self.get_bus_routes_on_road(r):
            logger.info(f"Using a bus_gate instead of {kind.value} for {self.get_r(r)}")
            return FilterKind.BUS_GATE
        return kind

    def _push(self, cmd: Command) -> None:
        undo_cmd = self._apply(cmd)
        self.undo_stack.append(undo_cmd)
        self.redo_queue.clear()
        self._after_edited()

    def _apply(self, cmd: Command) -> Command:
        """
        Apply a command and return the command that undoes it.
        """
        if isinstance(cmd, SetModalFilter):
            prev = self.modal_filters.get(cmd.road)
            if cmd.filter is not None:
                logger.info(f"added a filter to {self.get_r(cmd.road)} at {cmd.filter.percent_along:.2f}")
                self.modal_filters[cmd.road] = cmd.filter
            else:
                logger.info(f"deleted a filter from {self.get_r(cmd.road)}")
                self.modal_filters.pop(cmd.road, None)
            return SetModalFilter(cmd.road, prev)

        if isinstance(cmd, SetDiagonalFilter):
            prev_diagonal = self.diagonal_filters.get(cmd.intersection)
            if cmd.filter is not None:
                logger.info(f"added filter to {self.get_i(cmd.intersection)}: {cmd.filter}")
                self.diagonal_filters[cmd.intersection] = cmd.filter
            else:
                removed = self.diagonal_filters.pop(cmd.intersection, None)
                logger.info(f"removed filter from {self.get_i(cmd.intersection)}: {removed}")
            return SetDiagonalFilter(cmd.intersection, prev_diagonal)

        if isinstance(cmd, SetDirection):
            logger.info(f"changed direction of {self.get_r(cmd.road)} to {cmd.direction.value}")
            prev_direction = self.directions[cmd.road]
            self.directions[cmd.road] = cmd.direction
            return SetDirection(cmd.road, prev_direction)

        if isinstance(cmd, Multiple):
            # Undo in reverse, in case two commands touch the same thing
            undo_list = [self._apply(c) for c in cmd.commands]
            return Multiple(tuple(reversed(undo_list)))

        raise TypeError(f"Unknown command {cmd!r}")

    def _after_edited(self) -> None:
        self.router_after = None
        self.impact.invalidate_after_edits()
