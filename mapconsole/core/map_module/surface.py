# mapconsole/core/map_module/surface.py
"""
地图画布
职责：
1. 持有 MapState（地图列表、选中地图、位图、导航图、位姿、状态）
2. 组合解码器、坐标变换、视口与叠加层，状态变化 → 标记 dirty → 重绘
3. 点击换算为世界坐标后交给宿主
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum, unique
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from PIL import Image

from mapconsole.core.errors import (
    AssetLoadError,
    CoordinateConversionError,
    MapConsoleError,
    MapDataError,
)
from mapconsole.core.models import (
    MapMetadata,
    MapSummary,
    NavPoint,
    OccupancyGrid,
    RoadSegment,
    RobotPose,
    ViewState,
)
from mapconsole.core.pose import PoseFeed, normalize_pose
from mapconsole.core.viewport import ViewportController, WheelEvent
from mapconsole.render.base import Renderer
from mapconsole.settings import ViewerSettings
from mapconsole.utils.logging import log, log_performance

from .coordinate_mapper import WorldPixelMapper
from .map_loader import LoadResult, LoadTicket, MapDataProvider, MapLoader
from .overlay import OverlayRenderer
from .raster_decoder import GridRasterDecoder

ClickConsumer = Callable[[float, float], None]


@unique
class SurfaceStatus(Enum):
    EMPTY = "empty"  # 未选地图，或栅格获取失败
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"  # 地图数据损坏


PLACEHOLDER_TEXT = {
    SurfaceStatus.EMPTY: "No map",
    SurfaceStatus.LOADING: "Loading map...",
    SurfaceStatus.UNAVAILABLE: "Map unavailable",
}


@dataclass(frozen=True, eq=False)
class MapState:
    """一次重绘所需的全部输入"""

    maps: Tuple[MapSummary, ...] = ()
    selected_id: Optional[str] = None
    metadata: Optional[MapMetadata] = None
    bitmap: Optional[Image.Image] = None
    nav_points: Tuple[NavPoint, ...] = ()
    road_segments: Tuple[RoadSegment, ...] = ()
    pose: Optional[RobotPose] = None
    status: SurfaceStatus = SurfaceStatus.EMPTY
    message: str = ""


class MapSurface:
    """Own the map-viewing session and redraw whenever its state changes.

    状态变化只标记为 dirty；在创建它的线程（UI 线程）上且 ``auto_render`` 为真时立即重绘，
    来自加载线程 / 推送线程的变化等宿主在下一个 tick 调用 :meth:`flush`。
    """

    def __init__(
        self,
        renderer: Renderer,
        provider: Optional[MapDataProvider] = None,
        settings: Optional[ViewerSettings] = None,
        *,
        click_consumer: Optional[ClickConsumer] = None,
        on_map_change: Optional[Callable[[str], None]] = None,
        auto_render: bool = True,
        background_loads: bool = True,
    ) -> None:
        self.settings = settings or ViewerSettings()
        self.renderer = renderer
        self.overlay = OverlayRenderer(renderer, self.settings.style)
        self.viewport = ViewportController(self.settings.viewport, on_click=self._handle_click)
        self.viewport.add_listener(self._on_view_change)

        self._provider = provider
        self._decoder = GridRasterDecoder()
        self._loader = (
            MapLoader(provider, self._decoder, background=background_loads) if provider else None
        )
        self._click_consumer = click_consumer
        self._on_map_change = on_map_change
        self._auto_render = auto_render

        self._lock = threading.RLock()
        self._ui_thread = threading.get_ident()
        self._state = MapState()
        self._display_size: Optional[Tuple[float, float]] = None
        self._dirty = True
        self._batch_depth = 0
        self._pose_feed: Optional[PoseFeed] = None

    # ------------------------------------------------------------------ #
    # 查询                                                               #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> MapState:
        with self._lock:
            return self._state

    @property
    def status(self) -> SurfaceStatus:
        return self.state.status

    @property
    def view(self) -> ViewState:
        return self.viewport.view

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def mapper(self) -> Optional[WorldPixelMapper]:
        meta = self.state.metadata
        if meta is None:
            return None
        width, height = self.renderer.size
        return WorldPixelMapper(
            metadata=meta,
            view=self.viewport.view,
            container_width=width,
            container_height=height,
            fit_factor=self.settings.viewport.fit_factor,
        )

    # ------------------------------------------------------------------ #
    # 地图选择 / 加载                                                     #
    # ------------------------------------------------------------------ #
    def refresh_maps(self) -> List[MapSummary]:
        """重新读取地图列表；未选中地图时默认选中激活地图（否则第一张）"""
        if self._provider is None:
            raise MapConsoleError("no map provider configured")
        try:
            entries = self._provider.list_maps()
        except MapConsoleError:
            raise
        except Exception as e:  # noqa: BLE001
            raise AssetLoadError(f"list maps failed: {e}") from e

        summaries: List[MapSummary] = []
        for entry in entries:
            try:
                summaries.append(MapSummary.from_dict(entry))
            except MapDataError as e:
                log.warning("Skipping map entry %r: %s", entry.get("name", entry.get("id")), e)
        log.info("Map list refreshed: %d map(s)", len(summaries))

        with self._changing():
            self._state = replace(self._state, maps=tuple(summaries))
            if self._state.selected_id is None and summaries:
                default = next((m for m in summaries if m.is_active), summaries[0])
                self.select_map(default.id)
                if self._on_map_change is not None:
                    try:
                        self._on_map_change(default.id)
                    except Exception:  # noqa: BLE001
                        log.exception("Map change listener raised")
        return summaries

    def select_map(self, map_id: str) -> Optional[LoadTicket]:
        """切换地图：作废上一张的加载、重置视图、异步加载新地图"""
        if self._loader is None:
            raise MapConsoleError("no map provider configured")
        with self._changing():
            summary = self._find_map(map_id)
            if summary.id == self._state.selected_id and self._state.status in (
                SurfaceStatus.LOADING,
                SurfaceStatus.READY,
            ):
                return None
            self.viewport.reset_view()
            self._state = replace(
                self._state,
                selected_id=summary.id,
                metadata=summary.metadata,
                bitmap=None,
                status=SurfaceStatus.LOADING,
                message="",
            )
            self._mark_dirty()
            return self._loader.load(summary, self._on_loaded, self._on_failed)

    def show_grid(self, grid: OccupancyGrid, map_id: Optional[str] = None) -> None:
        """直接显示一帧原始占据栅格（例如实时建图），同步解码"""
        with self._changing():
            if self._loader is not None:
                self._loader.cancel()
            same_map = self._state.metadata == grid.metadata and map_id == self._state.selected_id
            if not same_map:
                self.viewport.reset_view()
            try:
                bitmap = self._decoder.decode(grid)
            except MapDataError as e:
                log.error("Occupancy grid rejected: %s", e)
                self._set_failed(e, grid.metadata, map_id)
                return
            except Exception as e:  # noqa: BLE001
                log.exception("Unexpected failure decoding occupancy grid")
                self._set_failed(MapDataError(f"cannot decode occupancy grid: {e!r}"), grid.metadata, map_id)
                return
            self._state = replace(
                self._state,
                selected_id=map_id,
                metadata=grid.metadata,
                bitmap=bitmap,
                status=SurfaceStatus.READY,
                message="",
            )
            self._mark_dirty()

    def _find_map(self, map_id: str) -> MapSummary:
        for summary in self._state.maps:
            if map_id in (summary.id, summary.name):
                return summary
        raise KeyError(f"unknown map {map_id!r}")

    def _on_loaded(self, result: LoadResult) -> None:
        with self._changing():
            if not self._loader.is_current(result.token) or result.map_id != self._state.selected_id:
                log.debug("Late result for %s ignored", result.map_id)
                return
            self._state = replace(
                self._state,
                metadata=result.metadata,
                bitmap=result.bitmap,
                status=SurfaceStatus.READY,
                message="",
            )
            self._mark_dirty()

    def _on_failed(self, token: int, map_id: str, error: MapConsoleError) -> None:
        with self._changing():
            if not self._loader.is_current(token) or map_id != self._state.selected_id:
                return
            self._set_failed(error, self._state.metadata, map_id)

    def _set_failed(self, error: MapConsoleError, metadata: Optional[MapMetadata], map_id: Optional[str]) -> None:
        # 数据损坏 → “地图不可用”；获取失败 → 空白占位，由调用方决定是否重试
        status = SurfaceStatus.UNAVAILABLE if isinstance(error, MapDataError) else SurfaceStatus.EMPTY
        self._state = replace(
            self._state,
            selected_id=map_id,
            metadata=metadata,
            bitmap=None,
            status=status,
            message=str(error),
        )
        self._mark_dirty()

    # ------------------------------------------------------------------ #
    # 叠加数据                                                           #
    # ------------------------------------------------------------------ #
    def set_nav_points(self, points: Iterable[Union[NavPoint, Mapping[str, Any]]]) -> None:
        items = tuple(p if isinstance(p, NavPoint) else NavPoint.from_dict(p) for p in points)
        with self._changing():
            self._state = replace(self._state, nav_points=items)
            self._mark_dirty()

    def set_road_segments(self, segments: Iterable[Union[RoadSegment, Mapping[str, Any]]]) -> None:
        items = tuple(s if isinstance(s, RoadSegment) else RoadSegment.from_dict(s) for s in segments)
        with self._changing():
            self._state = replace(self._state, road_segments=items)
            self._mark_dirty()

    def update_pose(self, pose: Union[RobotPose, Mapping[str, Any], None]) -> None:
        """整体替换位姿；无法解析的消息丢弃"""
        if pose is not None and not isinstance(pose, RobotPose):
            try:
                pose = normalize_pose(pose)
            except ValueError as e:
                log.warning("Ignoring pose update: %s", e)
                return
        with self._changing():
            if pose == self._state.pose:
                return
            self._state = replace(self._state, pose=pose)
            self._mark_dirty()

    def attach_pose_feed(self, feed: PoseFeed) -> None:
        self.detach_pose_feed()
        self._pose_feed = feed
        feed.add_listener(self._on_pose)
        if feed.latest is not None:
            self.update_pose(feed.latest)

    def detach_pose_feed(self) -> None:
        if self._pose_feed is not None:
            self._pose_feed.remove_listener(self._on_pose)
            self._pose_feed = None

    def _on_pose(self, _old: Optional[RobotPose], new: RobotPose) -> None:
        self.update_pose(new)

    # ------------------------------------------------------------------ #
    # 点击 / 输入                                                        #
    # ------------------------------------------------------------------ #
    def set_click_consumer(self, consumer: Optional[ClickConsumer]) -> None:
        """None 表示只读预览模式"""
        self._click_consumer = consumer

    def set_display_size(self, width: Optional[float], height: Optional[float] = None) -> None:
        """指针坐标以显示像素给出且与画布尺寸不同时设置；None 取消换算"""
        self._display_size = None if width is None else (float(width), float(height))

    def resize(self, width: int, height: int) -> None:
        with self._changing():
            self.renderer.resize(int(width), int(height))
            self._mark_dirty()

    def pointer_down(self, x: float, y: float) -> None:
        self.viewport.pointer_down(*self._to_canvas(x, y))

    def pointer_move(self, x: float, y: float) -> None:
        self.viewport.pointer_move(*self._to_canvas(x, y))

    def pointer_up(self, x: float, y: float) -> bool:
        return self.viewport.pointer_up(*self._to_canvas(x, y))

    def pointer_leave(self) -> None:
        self.viewport.pointer_leave()

    def wheel(self, event: Union[WheelEvent, float]) -> float:
        return self.viewport.wheel(event)

    def zoom_in(self) -> float:
        return self.viewport.zoom_in()

    def zoom_out(self) -> float:
        return self.viewport.zoom_out()

    def reset_view(self) -> None:
        self.viewport.reset_view()

    def _to_canvas(self, x: float, y: float) -> Tuple[float, float]:
        if self._display_size is None:
            return x, y
        width, height = self.renderer.size
        dw, dh = self._display_size
        if dw <= 0 or dh <= 0:
            return x, y
        return x * width / dw, y * height / dh

    def _handle_click(self, cx: float, cy: float) -> None:
        consumer = self._click_consumer
        if consumer is None:
            return
        mapper = self.mapper
        if mapper is None or self.status is not SurfaceStatus.READY:
            log.debug("Click ignored: no map ready")
            return
        try:
            wx, wy = mapper.canvas_to_world(cx, cy)
        except CoordinateConversionError as e:
            log.warning("Click ignored: %s", e)
            return
        log.info("Map click at canvas (%.1f, %.1f) -> world (%.3f, %.3f)", cx, cy, wx, wy)
        consumer(wx, wy)

    def _on_view_change(self, _old: ViewState, _new: ViewState) -> None:
        with self._changing():
            self._mark_dirty()

    # ------------------------------------------------------------------ #
    # 重绘                                                               #
    # ------------------------------------------------------------------ #
    @contextmanager
    def _changing(self) -> Iterator[None]:
        """合并一次操作内的多处变化，结束时最多重绘一次"""
        with self._lock:
            self._batch_depth += 1
            try:
                yield
            finally:
                self._batch_depth -= 1
        if (
            self._batch_depth == 0
            and self._dirty
            and self._auto_render
            and threading.get_ident() == self._ui_thread
        ):
            self.render()

    def _mark_dirty(self) -> None:
        self._dirty = True

    def flush(self) -> bool:
        """宿主 tick：有变化才重绘，返回是否重绘"""
        if not self._dirty:
            return False
        self.render()
        return True

    @log_performance(threshold_ms=16.0)
    def render(self) -> None:
        with self._lock:
            state = self._state
            mapper = self.mapper
            self._dirty = False

        style = self.settings.style
        self.renderer.clear(style.background)
        if state.status is not SurfaceStatus.READY or state.bitmap is None or mapper is None:
            width, height = self.renderer.size
            self.renderer.draw_text(
                (width / 2, height / 2), PLACEHOLDER_TEXT[state.status], style.placeholder_text, 16
            )
            return

        left, top, map_w, map_h = mapper.map_rect()
        self.renderer.blit_raster(state.bitmap, left, top, map_w, map_h)
        self.overlay.draw_road_segments(mapper, state.road_segments, state.nav_points)
        self.overlay.draw_nav_points(mapper, state.nav_points)
        self.overlay.draw_robot(mapper, state.pose)

    def snapshot(self, path: Union[str, os.PathLike]) -> None:
        """重绘并导出当前画面（需要支持 save 的后端）"""
        save = getattr(self.renderer, "save", None)
        if save is None:
            raise MapConsoleError(f"{type(self.renderer).__name__} cannot export snapshots")
        self.render()
        save(path)

    def close(self) -> None:
        self.detach_pose_feed()
        self.viewport.remove_listener(self._on_view_change)
        if self._loader is not None:
            self._loader.cancel()
