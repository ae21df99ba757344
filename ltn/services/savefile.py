# ltn/services/savefile.py
"""
Savefiles hold only the edits, never the network.

RoadIDs and IntersectionIDs aren't stable across loads, so every edit is
stored as WGS84 geometry and matched back onto whatever network is loaded.
That matching is best-effort: if the map data split or merged a road in
between, an edit can land on the wrong piece.
"""
import copy
from typing import TYPE_CHECKING, Any, Dict, List

from pydantic import ValidationError
from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from ltn.core.errors import SavefileError
from ltn.core.logger import logger
from ltn.models.edits import (
    Command,
    Direction,
    FilterKind,
    Multiple,
    SetDiagonalFilter,
    SetDirection,
    SetModalFilter,
)
from ltn.models.savefile import Savefile, SavefileFeature
from ltn.services.diagonal_filter import build_diagonal_filter

if TYPE_CHECKING:
    from ltn.services.map_model import MapModel


def to_savefile(model: "MapModel") -> Dict[str, Any]:
    """
    A FeatureCollection with everything that differs from the basemap, plus
    the boundaries and the study area polygon.
    """
    features: List[Dict[str, Any]] = []

    # Edited filters only
    for r, modal_filter in sorted(model.modal_filters.items()):
        if modal_filter == model.original_modal_filters.get(r):
            continue
        pt = model.get_r(r).linestring.interpolate(modal_filter.percent_along, normalized=True)
        f = model.projection.to_wgs84_feature(pt)
        f["properties"]["kind"] = "modal_filter"
        f["properties"]["filter_kind"] = modal_filter.kind.value
        features.append(f)

    # Basemap filters that were deleted entirely
    for r, modal_filter in sorted(model.original_modal_filters.items()):
        if r in model.modal_filters:
            continue
        pt = model.get_r(r).linestring.interpolate(modal_filter.percent_along, normalized=True)
        f = model.projection.to_wgs84_feature(pt)
        f["properties"]["kind"] = "deleted_existing_modal_filter"
        features.append(f)

    original_directions = model.original_directions()
    for road in model.network.roads:
        direction = model.directions[road.id]
        if direction != original_directions[road.id]:
            f = model.projection.to_wgs84_feature(road.linestring)
            f["properties"]["kind"] = "direction"
            f["properties"]["direction"] = direction.value
            features.append(f)

    features.extend(copy.deepcopy(f) for f in model.boundaries.values())
    features.append(model.study_area_boundary_feature())

    for i, diagonal_filter in sorted(model.diagonal_filters.items()):
        intersection = model.get_i(i)
        f = model.projection.to_wgs84_feature(intersection.point)
        f["properties"]["kind"] = "diagonal_filter"
        f["properties"]["split_offset"] = diagonal_filter.split_offset(intersection)
        features.append(f)

    logger.info(f"Saving {len(features)} features")
    return {
        "type": "FeatureCollection",
        "features": features,
        "study_area_name": model.study_area_name,
    }


def load_savefile(model: "MapModel", gj: Dict[str, Any]) -> None:
    """
    Replace all edits in `model` with the ones in `gj`.

    Every feature is parsed and matched before anything changes, so a bad
    savefile raises SavefileError and leaves the model untouched. The loaded
    edits can't be undone.
    """
    try:
        savefile = Savefile.model_validate(gj)
    except ValidationError as e:
        raise SavefileError(f"Savefile isn't a valid FeatureCollection: {e}") from e

    cmds: List[Command] = []
    boundaries: Dict[str, Dict[str, Any]] = {}

    for idx, f in enumerate(savefile.features):
        kind = _str_prop(f, "kind")

        if kind == "modal_filter":
            filter_kind = _parse(FilterKind, _str_prop(f, "filter_kind"))
            pt = _planar(model, f, "Point")
            cmd = model.modal_filter_cmd(pt, None, filter_kind)
            if cmd is None:
                raise _unmatched(kind, pt)
            cmds.append(cmd)

        elif kind == "deleted_existing_modal_filter":
            pt = _planar(model, f, "Point")
            hit = model.network.index.closest_road(pt)
            if hit is None:
                raise _unmatched(kind, pt)
            cmds.append(SetModalFilter(hit[0], None))

        elif kind == "direction":
            direction = _parse(Direction, _str_prop(f, "direction"))
            linestring = _planar(model, f, "LineString")
            cmds.append(SetDirection(model.network.index.most_similar_road(linestring), direction))

        elif kind == "boundary":
            name = _str_prop(f, "name")
            _planar(model, f, "Polygon", "MultiPolygon")
            if name in boundaries:
                raise SavefileError(f"Multiple boundaries named {name} in savefile")
            boundaries[name] = copy.deepcopy(gj["features"][idx])

        elif kind == "study_area_boundary":
            # Informational only
            pass

        elif kind == "diagonal_filter":
            pt = _planar(model, f, "Point")
            i = model.network.index.nearest_intersection(pt)
            if i is None:
                raise _unmatched(kind, pt)
            split_offset = f.props().get("split_offset")
            if not isinstance(split_offset, int) or isinstance(split_offset, bool) or split_offset < 0:
                raise SavefileError(f"diagonal_filter split_offset must be an unsigned integer, not {split_offset!r}")
            intersection = model.get_i(i)
            if len(intersection.roads) != 4:
                raise SavefileError(
                    f"diagonal_filter matched {intersection}, which has {len(intersection.roads)} roads, not 4"
                )
            cmds.append(SetDiagonalFilter(i, build_diagonal_filter(intersection, split_offset, model.network)))

        else:
            raise SavefileError(f"Unknown kind in savefile: {kind}")

    model.reset_to_baseline()
    model.boundaries = boundaries
    # Keep the undo stack empty; undoing shouldn't wipe out the whole savefile
    model.apply_without_history(Multiple(tuple(cmds)))

    logger.info(
        f"Loaded savefile for {savefile.study_area_name or 'unnamed study area'}: "
        f"{len(cmds)} edits, {len(boundaries)} boundaries"
    )


# ---------------------------------------------------------------------- #
# Internal helpers
# ---------------------------------------------------------------------- #


def _str_prop(f: SavefileFeature, key: str) -> str:
    props = f.props()
    if key not in props:
        raise SavefileError(f"Feature doesn't have a {key} property")
    value = props[key]
    if not isinstance(value, str):
        raise SavefileError(f"Feature's {key} property isn't a string")
    return value


def _parse(enum_cls: Any, value: str) -> Any:
    try:
        return enum_cls.parse(value)
    except ValueError as e:
        raise SavefileError(str(e)) from e


def _planar(model: "MapModel", f: SavefileFeature, *geom_types: str) -> BaseGeometry:
    if f.geometry is None:
        raise SavefileError(f"{_kind(f)} feature has no geometry")
    try:
        geom = shape(f.geometry)
    except (ShapelyError, KeyError, TypeError, ValueError) as e:
        raise SavefileError(f"{_kind(f)} feature has invalid geometry: {e}") from e
    if geom.geom_type not in geom_types or geom.is_empty:
        raise SavefileError(f"{_kind(f)} feature needs a {' or '.join(geom_types)}, not {geom.geom_type}")
    return model.projection.to_planar(geom)


def _kind(f: SavefileFeature) -> str:
    return str(f.props().get("kind"))


def _unmatched(kind: str, pt: BaseGeometry) -> SavefileError:
    logger.warning(f"Couldn't match {kind} at ({pt.x:.1f}, {pt.y:.1f}) to the network")
    return SavefileError(f"{kind} at ({pt.x:.1f}, {pt.y:.1f}) doesn't match anything in the network")
