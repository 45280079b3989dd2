import threading

import pytest
from PIL import Image

from mapconsole.core.errors import MapConsoleError, MapDataError
from mapconsole.core.models import OccupancyGrid, MapMetadata, RobotPose, ViewState
from mapconsole.core.map_module import MapSurface, SurfaceStatus
from mapconsole.core.pose import PoseFeed
from mapconsole.core.viewport import WheelEvent
from mapconsole.render import PilRenderer

from .conftest import occupancy_message

SCENARIO_ORIGIN = (-2.5, -2.5)


def _surface(renderer, provider=None, **kwargs):
    kwargs.setdefault("background_loads", False)
    return MapSurface(renderer, provider, **kwargs)


@pytest.fixture
def loaded(recording, provider):
    """100×100 / 0.05 m 地图，原点 (-2.5, -2.5)，已同步加载"""
    provider.add("a", 100, 100, origin=SCENARIO_ORIGIN)
    provider.add("b", 40, 20, resolution=0.1)
    clicks = []
    surface = _surface(recording, provider, click_consumer=lambda x, y: clicks.append((x, y)))
    surface.refresh_maps()
    surface.clicks = clicks
    return surface


def _ops(recording):
    return [c.op for c in recording.calls]


# ---- 加载 ----
def test_refresh_selects_first_map_and_renders(loaded, recording):
    assert loaded.status is SurfaceStatus.READY
    assert loaded.state.selected_id == "a"
    assert _ops(recording) == ["clear", "blit_raster"]
    blit = recording.of("blit_raster")[0]
    assert (blit["left"], blit["top"], blit["width"], blit["height"]) == pytest.approx((160, 60, 480, 480))
    assert blit["bitmap"].size == (100, 100)
    assert not loaded.dirty


def test_refresh_prefers_active_map(recording, provider):
    provider.add("a", 10, 10)
    provider.add("b", 10, 10, is_active=True)
    changes = []
    surface = _surface(recording, provider, on_map_change=changes.append)
    summaries = surface.refresh_maps()
    assert [s.id for s in summaries] == ["a", "b"]
    assert surface.state.selected_id == "b"
    assert changes == ["b"]

    surface.refresh_maps()
    assert changes == ["b"]
    assert provider.fetches == ["b"]


def test_refresh_skips_broken_entries(recording, provider):
    provider.add("good", 10, 10)
    provider.entries.insert(0, {"id": "broken", "width": 0, "height": 10, "resolution": 0.05,
                                "origin": {"x": 0, "y": 0}})
    surface = _surface(recording, provider)
    assert [s.id for s in surface.refresh_maps()] == ["good"]


def test_placeholder_before_any_map(recording):
    surface = _surface(recording)
    surface.render()
    assert _ops(recording) == ["clear", "draw_text"]
    text = recording.of("draw_text")[0]
    assert text["text"] == "No map"
    assert text["position"] == (400, 300)


def test_cell_count_mismatch_is_unavailable(recording, provider):
    provider.add("bad", 10, 10, raster=occupancy_message(10, 10, cells=[0] * 99))
    surface = _surface(recording, provider)
    surface.refresh_maps()
    assert surface.status is SurfaceStatus.UNAVAILABLE
    assert recording.of("blit_raster") == []
    assert recording.of("draw_text")[0]["text"] == "Map unavailable"


def test_fetch_failure_leaves_surface_empty(recording, provider):
    provider.add("gone", 10, 10, raster=OSError("disk gone"))
    surface = _surface(recording, provider)
    surface.refresh_maps()
    assert surface.status is SurfaceStatus.EMPTY
    assert "disk gone" in surface.state.message
    assert recording.of("draw_text")[0]["text"] == "No map"


def test_select_unknown_map(loaded):
    with pytest.raises(KeyError):
        loaded.select_map("nope")


def test_select_without_provider(recording):
    with pytest.raises(MapConsoleError):
        _surface(recording).select_map("a")


def test_switching_maps_resets_view(loaded, recording):
    loaded.zoom_in()
    loaded.pointer_down(0, 0)
    loaded.pointer_move(50, 50)
    loaded.pointer_up(50, 50)
    assert loaded.view != ViewState()

    ticket = loaded.select_map("b")
    assert ticket is not None and ticket.done
    assert loaded.view == ViewState()
    assert loaded.state.metadata.width == 40
    assert recording.of("blit_raster")[0]["bitmap"].size == (40, 20)
    # 已加载的同一张地图不重复加载
    assert loaded.select_map("b") is None


def test_stale_load_never_reaches_canvas(recording, provider):
    provider.add("a", 40, 40)
    provider.add("b", 20, 10)
    provider.add("c", 10, 10, is_active=True)
    provider.gates["a"] = threading.Event()
    surface = _surface(recording, provider, background_loads=True)
    surface.refresh_maps()

    ticket_a = surface.select_map("a")
    ticket_b = surface.select_map("b")
    assert ticket_b.wait(5)
    assert not ticket_b.stale

    provider.gates["a"].set()
    assert ticket_a.wait(5)
    assert ticket_a.stale

    surface.flush()
    assert surface.state.selected_id == "b"
    assert surface.status is SurfaceStatus.READY
    assert recording.of("blit_raster")[0]["bitmap"].size == (20, 10)


def test_show_grid_without_provider(recording, empty_grid):
    surface = _surface(recording)
    surface.show_grid(empty_grid, "live")
    assert surface.status is SurfaceStatus.READY
    assert surface.state.selected_id == "live"
    assert len(recording.of("blit_raster")) == 1

    bad = OccupancyGrid.from_cells(MapMetadata(width=3, height=3, resolution=0.1), [0] * 8)
    surface.show_grid(bad, "live")
    assert surface.status is SurfaceStatus.UNAVAILABLE


# ---- 点击 / 视口 ----
def test_click_at_center_maps_to_world_origin(loaded):
    loaded.pointer_down(400, 300)
    assert loaded.pointer_up(400, 300) is True
    ((wx, wy),) = loaded.clicks
    assert wx == pytest.approx(0.0, abs=1e-6)
    assert wy == pytest.approx(0.0, abs=1e-6)


def test_drag_does_not_click(loaded, recording):
    loaded.pointer_down(400, 300)
    loaded.pointer_move(450, 300)
    assert loaded.pointer_up(450, 300) is False
    assert loaded.clicks == []
    assert recording.of("blit_raster")[0]["left"] == pytest.approx(210)


def test_click_without_consumer_is_ignored(loaded):
    loaded.set_click_consumer(None)
    loaded.pointer_down(400, 300)
    assert loaded.pointer_up(400, 300) is True
    assert loaded.clicks == []


def test_click_while_loading_is_ignored(recording, provider):
    provider.add("a", 10, 10)
    provider.gates["a"] = threading.Event()
    clicks = []
    surface = _surface(recording, provider, background_loads=True,
                       click_consumer=lambda x, y: clicks.append((x, y)))
    surface.refresh_maps()
    assert surface.status is SurfaceStatus.LOADING
    assert recording.of("draw_text")[0]["text"] == "Loading map..."
    surface.pointer_down(400, 300)
    surface.pointer_up(400, 300)
    assert clicks == []
    provider.gates["a"].set()
    surface.close()


def test_display_size_scales_pointer(loaded):
    loaded.set_display_size(400, 300)
    loaded.pointer_down(200, 150)
    loaded.pointer_up(200, 150)
    assert loaded.clicks[0] == pytest.approx((0.0, 0.0), abs=1e-6)

    loaded.set_display_size(None)
    loaded.pointer_down(200, 150)
    loaded.pointer_up(200, 150)
    assert loaded.clicks[1][0] < -1.0


def test_wheel_rerenders_scaled_map(loaded, recording):
    event = WheelEvent(delta_y=-100)
    assert loaded.wheel(event) == pytest.approx(1.1)
    assert event.default_prevented
    assert recording.of("blit_raster")[0]["width"] == pytest.approx(528)
    loaded.reset_view()
    assert recording.of("blit_raster")[0]["width"] == pytest.approx(480)


def test_resize_refits(loaded, recording):
    loaded.resize(400, 300)
    assert recording.of("blit_raster")[0]["width"] == pytest.approx(240)


# ---- 叠加层 ----
def test_overlay_draw_order(loaded, recording):
    loaded.set_nav_points([
        {"id": "p1", "name": "P1", "position": {"x": 0, "y": 0, "z": 0}, "type": "start", "order": 1},
        {"id": "p2", "name": "P2", "position": {"x": 1, "y": 0, "z": 0}, "type": "end", "order": 2},
    ])
    loaded.set_road_segments([
        {"id": "r1", "startPointId": "p1", "endPointId": "p2", "sprayParams": {"pumpStatus": True}},
    ])
    loaded.update_pose({"x": 0.5, "y": 0.5, "theta": 0.0})

    assert _ops(recording) == [
        "clear", "blit_raster",
        "draw_line", "draw_line", "draw_line",
        "fill_circle", "draw_text", "fill_circle", "draw_text",
        "fill_circle", "draw_line",
    ]
    assert recording.of("fill_circle")[-1]["fill"] == "#fa8c16"


def test_invalid_pose_update_is_ignored(loaded, caplog):
    loaded.update_pose(RobotPose(1.0, 1.0))
    loaded.update_pose({"garbage": 1})
    assert loaded.state.pose == RobotPose(1.0, 1.0)
    assert "Ignoring pose update" in caplog.text
    loaded.update_pose(None)
    assert loaded.state.pose is None


def test_pose_from_other_thread_waits_for_flush(loaded, recording):
    feed = PoseFeed()
    loaded.attach_pose_feed(feed)
    worker = threading.Thread(target=feed.publish, args=(RobotPose(0.0, 0.0, 0.0),))
    worker.start()
    worker.join()

    assert loaded.dirty
    assert recording.of("fill_circle") == []
    assert loaded.flush() is True
    (robot,) = recording.of("fill_circle")
    assert robot["center"] == pytest.approx((400, 300))
    assert loaded.flush() is False

    loaded.detach_pose_feed()
    feed.publish(RobotPose(1.0, 1.0))
    assert loaded.state.pose == RobotPose(0.0, 0.0, 0.0)


def test_attach_picks_up_latest_pose(loaded):
    feed = PoseFeed()
    feed.publish(RobotPose(0.1, 0.2))
    loaded.attach_pose_feed(feed)
    assert loaded.state.pose == RobotPose(0.1, 0.2)


# ---- 快照 ----
def test_snapshot_with_pillow_backend(tmp_path):
    renderer = PilRenderer(200, 200)
    surface = _surface(renderer)
    meta = MapMetadata(width=10, height=10, resolution=0.1)
    surface.show_grid(OccupancyGrid.from_cells(meta, [100] * 100))

    out = tmp_path / "snap.png"
    surface.snapshot(out)
    with Image.open(out) as img:
        assert img.getpixel((100, 100)) == (0, 0, 0, 255)
        assert img.getpixel((5, 5)) == (245, 245, 245, 255)


def test_snapshot_needs_saving_backend(loaded, tmp_path):
    with pytest.raises(MapConsoleError):
        loaded.snapshot(tmp_path / "x.png")


# ---- 异常载荷 ----
def test_unexpected_failure_in_show_grid(recording, empty_grid, monkeypatch, caplog):
    surface = _surface(recording)

    def broken_decode(grid):
        raise TypeError("decoder bug")

    monkeypatch.setattr(surface._decoder, "decode", broken_decode)
    surface.show_grid(empty_grid, "live")
    assert surface.status is SurfaceStatus.UNAVAILABLE
    assert "Unexpected failure decoding occupancy grid" in caplog.text


def test_failing_map_change_listener_is_logged(recording, provider, caplog):
    provider.add("a", 100, 100, origin=SCENARIO_ORIGIN)

    def boom(map_id):
        raise RuntimeError("host listener bug")

    surface = _surface(recording, provider, on_map_change=boom)
    surface.refresh_maps()

    assert surface.state.selected_id == "a"
    assert surface.status is SurfaceStatus.READY
    assert not surface.dirty
    assert _ops(recording) == ["clear", "blit_raster"]
    assert "Map change listener raised" in caplog.text


def _surface_with_idle_default(recording, provider):
    # 激活地图 "idle" 先被默认选中，之后 select_map 返回可等待的 ticket
    provider.add("idle", 10, 10, is_active=True)
    surface = _surface(recording, provider, background_loads=True)
    surface.refresh_maps()
    return surface


def test_non_numeric_cells_still_finish_loading(recording, provider):
    provider.add("odd", 2, 2, raster=occupancy_message(2, 2, cells=["x", 0, 0, 0]))
    surface = _surface_with_idle_default(recording, provider)

    ticket = surface.select_map("odd")
    assert ticket.wait(5)
    assert ticket.error is None

    surface.flush()
    assert surface.status is SurfaceStatus.READY
    assert recording.of("blit_raster")[0]["bitmap"].getpixel((0, 0)) == (205, 205, 205, 255)


def test_unexpected_decode_failure_marks_map_unavailable(recording, provider, monkeypatch):
    provider.add("a", 10, 10)
    surface = _surface_with_idle_default(recording, provider)

    def broken_decode(grid):
        raise RuntimeError("decoder bug")

    monkeypatch.setattr(surface._decoder, "decode", broken_decode)
    ticket = surface.select_map("a")
    assert ticket.wait(5)
    assert isinstance(ticket.error, MapDataError)

    surface.flush()
    assert surface.status is SurfaceStatus.UNAVAILABLE
    assert "decoder bug" in surface.state.message
    assert recording.of("draw_text")[0]["text"] == "Map unavailable"
