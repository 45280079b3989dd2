import math

import pytest

from mapconsole.core.errors import CoordinateConversionError, MapDataError
from mapconsole.core.models import MapMetadata, Vec3, ViewState
from mapconsole.core.map_module import WorldPixelMapper


def test_fit_scale_and_map_rect(scenario_mapper):
    # 5 m × 5 m 地图放进 800×600：min(160, 120) * 0.8
    assert scenario_mapper.fit_scale == pytest.approx(96.0)
    assert scenario_mapper.effective_scale == pytest.approx(96.0)
    assert scenario_mapper.map_rect() == pytest.approx((160.0, 60.0, 480.0, 480.0))


def test_world_origin_maps_to_map_center(scenario_meta, scenario_mapper):
    eff = scenario_mapper.effective_scale
    map_w = scenario_meta.world_width * eff
    map_h = scenario_meta.world_height * eff
    expected_x = (800 - map_w) / 2 + (0 - scenario_meta.origin.x) * eff
    expected_y = (600 - map_h) / 2 + (scenario_meta.world_height - (0 - scenario_meta.origin.y)) * eff

    cx, cy = scenario_mapper.world_to_canvas(0.0, 0.0)
    assert (cx, cy) == pytest.approx((expected_x, expected_y))
    assert (cx, cy) == pytest.approx((400.0, 300.0))


def test_world_y_grows_upward_on_canvas(scenario_mapper):
    _, low = scenario_mapper.world_to_canvas(0.0, -1.0)
    _, high = scenario_mapper.world_to_canvas(0.0, 1.0)
    assert high < low


def test_click_round_trip_for_reference_point(scenario_mapper):
    cx, cy = scenario_mapper.world_to_canvas(1.0, -0.5)
    wx, wy = scenario_mapper.canvas_to_world(cx, cy)
    assert wx == pytest.approx(1.0, abs=1e-3)
    assert wy == pytest.approx(-0.5, abs=1e-3)


@pytest.mark.parametrize(
    "view",
    [
        ViewState(),
        ViewState(0.1, (0.0, 0.0)),
        ViewState(5.0, (-350.0, 120.5)),
        ViewState(2.37, (1e4, -1e4)),
    ],
)
def test_round_trip_inside_bounds(scenario_meta, view):
    mapper = WorldPixelMapper(scenario_meta, view, 1024, 333)
    for i in range(11):
        for j in range(11):
            wx = scenario_meta.origin.x + scenario_meta.world_width * i / 10
            wy = scenario_meta.origin.y + scenario_meta.world_height * j / 10
            back = mapper.canvas_to_world(*mapper.world_to_canvas(wx, wy))
            assert back == pytest.approx((wx, wy), abs=1e-3)


def test_offset_translates_canvas_position(scenario_meta):
    base = WorldPixelMapper(scenario_meta, ViewState(), 800, 600)
    moved = WorldPixelMapper(scenario_meta, ViewState(1.0, (30.0, -12.0)), 800, 600)
    bx, by = base.world_to_canvas(0.3, 0.7)
    mx, my = moved.world_to_canvas(0.3, 0.7)
    assert (mx - bx, my - by) == pytest.approx((30.0, -12.0))


def test_zero_container_rejects_click(scenario_meta):
    mapper = WorldPixelMapper(scenario_meta, ViewState(), 0, 0)
    assert mapper.effective_scale == 0
    with pytest.raises(CoordinateConversionError):
        mapper.canvas_to_world(10.0, 10.0)


def test_non_finite_inputs_are_rejected(scenario_mapper):
    with pytest.raises(CoordinateConversionError):
        scenario_mapper.canvas_to_world(math.nan, 0.0)
    with pytest.raises(CoordinateConversionError):
        scenario_mapper.world_to_canvas(math.inf, 0.0)


def test_cell_centers_agree_with_bitmap_rows(scenario_mapper):
    # 栅格 (col 10, row 5) 的中心应落在位图第 94 行的贴图区间内
    wx, wy = scenario_mapper.grid_to_world(10, 5)
    cx, cy = scenario_mapper.world_to_canvas(wx, wy)
    left, top, width, height = scenario_mapper.map_rect()
    px = width / 100
    assert left + 10 * px <= cx < left + 11 * px
    assert top + 94 * px <= cy < top + 95 * px


def test_world_to_grid(scenario_mapper):
    assert scenario_mapper.world_to_grid(0.0, 0.0) == (50, 50)
    assert scenario_mapper.world_to_grid(-2.5, -2.5) == (0, 0)
    assert scenario_mapper.world_to_grid(-2.575, 0.0) == (-2, 50)
    assert scenario_mapper.grid_to_world(50, 50) == pytest.approx((0.025, 0.025))
    assert scenario_mapper.contains_world(2.49, 2.49)
    assert not scenario_mapper.contains_world(2.5, 0.0)


def test_display_to_canvas(scenario_mapper):
    assert scenario_mapper.display_to_canvas(100, 50, 400, 300) == pytest.approx((200.0, 100.0))
    with pytest.raises(CoordinateConversionError):
        scenario_mapper.display_to_canvas(1, 1, 0, 300)


def test_metadata_validation():
    with pytest.raises(MapDataError):
        MapMetadata(width=0, height=10, resolution=0.05)
    with pytest.raises(MapDataError):
        MapMetadata(width=10, height=10, resolution=0.0)
    with pytest.raises(MapDataError):
        MapMetadata(width=10, height=10, resolution=0.05, origin=Vec3(math.nan, 0, 0))
    with pytest.raises(MapDataError):
        MapMetadata.from_dict({"width": 10, "height": 10, "resolution": 0.05})
    with pytest.raises(MapDataError):
        MapMetadata.from_dict({"width": 10.5, "height": 10, "resolution": 0.05, "origin": {"x": 0, "y": 0}})


def test_metadata_accepts_both_origin_shapes():
    flat = MapMetadata.from_dict({"width": 4, "height": 2, "resolution": 0.5,
                                  "origin": {"x": 1, "y": 2, "z": 0}})
    nested = MapMetadata.from_dict({"width": 4, "height": 2, "resolution": 0.5,
                                    "origin": {"position": {"x": 1, "y": 2, "z": 0}}})
    assert flat == nested
    assert flat.world_width == 2.0
