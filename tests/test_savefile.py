# tests/test_savefile.py
import copy
import json

import pytest
from shapely.geometry import Point, box, mapping

from conftest import grid_graph
from ltn.core.errors import SavefileError
from ltn.models.edits import Direction, FilterKind


@pytest.fixture
def make_grid(make_model):
    def make():
        return make_model(grid_graph(barrier_points=[(50.0, 200.0)]))

    return make


def boundary_feature(projection):
    return {
        "type": "Feature",
        "geometry": mapping(projection.to_wgs84(box(0.0, 100.0, 200.0, 200.0))),
        "properties": {"colour": "blue"},
    }


def edit_everything(model, projection):
    model.add_modal_filter(Point(150, 100), None, FilterKind.NO_ENTRY)
    model.add_modal_filter(Point(20, 0), None, FilterKind.SCHOOL_STREET)
    model.delete_modal_filter(4)
    model.toggle_direction(0)
    model.toggle_direction(7)
    model.toggle_direction(7)
    model.add_diagonal_filter(4)
    model.rotate_diagonal_filter(4)
    model.set_boundary("north", boundary_feature(projection))


def kinds(gj):
    return sorted(f["properties"]["kind"] for f in gj["features"])


def test_unedited_savefile_only_has_the_study_area(make_grid):
    gj = make_grid().to_savefile()
    assert kinds(gj) == ["study_area_boundary"]
    assert gj["study_area_name"] == "Test area"


def test_savefile_holds_only_the_edits(make_grid, projection):
    model = make_grid()
    edit_everything(model, projection)
    gj = model.to_savefile()

    assert kinds(gj) == [
        "boundary",
        "deleted_existing_modal_filter",
        "diagonal_filter",
        "direction",
        "direction",
        "modal_filter",
        "modal_filter",
        "study_area_boundary",
    ]
    diagonal = next(f for f in gj["features"] if f["properties"]["kind"] == "diagonal_filter")
    assert diagonal["properties"]["split_offset"] == 1
    # Plain JSON
    json.dumps(gj)


def test_round_trip_onto_a_fresh_network(make_grid, projection):
    model = make_grid()
    edit_everything(model, projection)
    gj = json.loads(json.dumps(model.to_savefile()))

    fresh = make_grid()
    fresh.load_savefile(gj)

    assert fresh.modal_filters.keys() == model.modal_filters.keys()
    for r, modal_filter in model.modal_filters.items():
        assert fresh.modal_filters[r].kind == modal_filter.kind
        assert fresh.modal_filters[r].percent_along == pytest.approx(modal_filter.percent_along, abs=1e-6)
    assert fresh.directions == model.directions
    assert fresh.directions[0] == Direction.FORWARDS
    assert fresh.directions[7] == Direction.BACKWARDS
    assert fresh.diagonal_filters == model.diagonal_filters
    assert list(fresh.boundaries) == ["north"]
    assert fresh.boundaries["north"]["properties"]["colour"] == "blue"

    # A loaded file can't be undone
    assert fresh.undo_length == 0
    assert fresh.redo_length == 0


def test_loading_replaces_previous_edits(make_grid, projection):
    saved = make_grid()
    saved.add_modal_filter(Point(150, 100), None, FilterKind.NO_ENTRY)
    gj = saved.to_savefile()

    model = make_grid()
    model.add_diagonal_filter(4)
    model.toggle_direction(3)
    model.set_boundary("old", boundary_feature(projection))
    model.load_savefile(gj)

    assert model.diagonal_filters == {}
    assert model.directions == model.original_directions()
    assert model.boundaries == {}
    assert set(model.modal_filters) == {3, 4}
    assert model.router_after is None


def test_loading_drops_the_edited_router(make_grid):
    model = make_grid()
    model.rebuild_routers(1.0)
    model.load_savefile(make_grid().to_savefile())
    assert model.router_after is None


@pytest.fixture
def edited(make_grid):
    model = make_grid()
    model.add_modal_filter(Point(150, 100), None, FilterKind.NO_ENTRY)
    return model


def assert_unchanged(model, filters, undo_length):
    assert model.modal_filters == filters
    assert model.undo_length == undo_length


def savefile_of(feature):
    return {"type": "FeatureCollection", "features": [feature]}


def point_feature(projection, x, y, **props):
    f = projection.to_wgs84_feature(Point(x, y))
    f["properties"].update(props)
    return f


def test_unknown_kind_fails_without_changing_anything(edited, projection):
    filters = dict(edited.modal_filters)
    gj = savefile_of(point_feature(projection, 50, 0, kind="something_else"))

    with pytest.raises(SavefileError, match="Unknown kind"):
        edited.load_savefile(gj)
    assert_unchanged(edited, filters, 1)


def test_error_after_valid_features_is_still_atomic(edited, projection):
    filters = dict(edited.modal_filters)
    gj = {
        "type": "FeatureCollection",
        "features": [
            point_feature(projection, 50, 0, kind="modal_filter", filter_kind="no_entry"),
            point_feature(projection, 50, 100, kind="modal_filter"),
        ],
    }

    with pytest.raises(SavefileError, match="filter_kind"):
        edited.load_savefile(gj)
    assert_unchanged(edited, filters, 1)


@pytest.mark.parametrize(
    "props, message",
    [
        ({"kind": "modal_filter", "filter_kind": "moat"}, "Invalid FilterKind"),
        ({"kind": "modal_filter", "filter_kind": 3}, "isn't a string"),
        ({"kind": "diagonal_filter", "split_offset": "1"}, "unsigned integer"),
        ({"kind": "diagonal_filter", "split_offset": -1}, "unsigned integer"),
        ({"filter_kind": "no_entry"}, "kind"),
    ],
)
def test_malformed_properties(edited, projection, props, message):
    with pytest.raises(SavefileError, match=message):
        edited.load_savefile(savefile_of(point_feature(projection, 100, 100, **props)))


def test_bad_direction(edited, projection):
    f = projection.to_wgs84_feature(edited.get_r(0).linestring)
    f["properties"] = {"kind": "direction", "direction": "sideways"}
    with pytest.raises(SavefileError, match="Invalid Direction"):
        edited.load_savefile(savefile_of(f))


def test_wrong_geometry_type(edited, projection):
    f = point_feature(projection, 100, 100, kind="direction", direction="forwards")
    with pytest.raises(SavefileError, match="LineString"):
        edited.load_savefile(savefile_of(f))


def test_duplicate_boundary_names(edited, projection):
    f = boundary_feature(projection)
    f["properties"] = {"kind": "boundary", "name": "same"}
    gj = {"type": "FeatureCollection", "features": [f, copy.deepcopy(f)]}

    with pytest.raises(SavefileError, match="Multiple boundaries"):
        edited.load_savefile(gj)


@pytest.mark.parametrize(
    "geometry",
    [
        None,
        {"type": "Point", "coordinates": [-2.59, 51.45]},
        {"type": "LineString", "coordinates": [[-2.59, 51.45], [-2.58, 51.45]]},
    ],
)
def test_boundary_must_be_a_polygon(edited, geometry):
    filters = dict(edited.modal_filters)
    f = {"type": "Feature", "geometry": geometry, "properties": {"kind": "boundary", "name": "north"}}

    with pytest.raises(SavefileError, match="boundary feature"):
        edited.load_savefile(savefile_of(f))
    assert_unchanged(edited, filters, 1)
    assert edited.boundaries == {}


def test_multipolygon_boundary_loads(edited, projection):
    polygon = mapping(projection.to_wgs84(box(0.0, 0.0, 100.0, 100.0)))
    f = {
        "type": "Feature",
        "geometry": {"type": "MultiPolygon", "coordinates": [polygon["coordinates"]]},
        "properties": {"kind": "boundary", "name": "two parts"},
    }
    edited.load_savefile(savefile_of(f))
    assert list(edited.boundaries) == ["two parts"]


def test_filter_that_matches_no_road(edited, projection):
    filters = dict(edited.modal_filters)
    gj = savefile_of(point_feature(projection, 5000, 5000, kind="modal_filter", filter_kind="no_entry"))

    with pytest.raises(SavefileError, match="doesn't match"):
        edited.load_savefile(gj)
    assert_unchanged(edited, filters, 1)


def test_diagonal_filter_must_land_on_a_4_way(edited, projection):
    gj = savefile_of(point_feature(projection, 0, 0, kind="diagonal_filter", split_offset=0))
    with pytest.raises(SavefileError, match="not 4"):
        edited.load_savefile(gj)


def test_not_a_feature_collection(edited):
    with pytest.raises(SavefileError):
        edited.load_savefile({"type": "FeatureCollection", "features": "nope"})
    with pytest.raises(SavefileError):
        edited.load_savefile({"type": "Feature", "features": []})


def test_study_area_boundary_is_ignored_on_load(edited, projection):
    f = boundary_feature(projection)
    f["properties"] = {"kind": "study_area_boundary"}
    edited.load_savefile(savefile_of(f))
    assert edited.modal_filters == edited.original_modal_filters
