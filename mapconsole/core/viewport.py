# mapconsole/core/viewport.py
"""
视口控制器
职责：
1. 持有 ViewState（缩放倍数 + 平移）
2. 指针 / 滚轮 / 按钮 / 双指缩放 → 视图状态变化
3. 区分拖拽与点击：拖拽结束不触发点击
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, unique
from typing import Callable, List, Optional, Tuple, TypeAlias, Union

from mapconsole.settings import ViewportSettings
from mapconsole.utils.logging import log

from .models import ViewState


@unique
class PointerState(Enum):
    IDLE = "idle"
    PANNING = "panning"


@dataclass
class WheelEvent:
    """宿主的滚轮事件；不是所有宿主都允许阻止默认行为"""

    delta_y: float
    cancelable: bool = True
    default_prevented: bool = False

    def prevent_default(self) -> None:
        if self.cancelable:
            self.default_prevented = True


ViewListener: TypeAlias = Callable[[ViewState, ViewState], None]
ClickHandler: TypeAlias = Callable[[float, float], None]


class ViewportController:
    """Pan/zoom state machine over {IDLE, PANNING}."""

    def __init__(
        self,
        settings: Optional[ViewportSettings] = None,
        on_click: Optional[ClickHandler] = None,
    ) -> None:
        self.settings = settings or ViewportSettings()
        self.on_click = on_click

        self._view = ViewState()
        self._state = PointerState.IDLE
        self._drag_anchor: Tuple[float, float] = (0.0, 0.0)
        self._press_pos: Tuple[float, float] = (0.0, 0.0)
        self._dragged = False
        self._pinch_base: Optional[float] = None
        self._listeners: List[ViewListener] = []

    # ------------------------------------------------------------------- #
    #  查询
    # ------------------------------------------------------------------- #
    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def state(self) -> PointerState:
        return self._state

    def clamp_scale(self, scale: float) -> float:
        if not math.isfinite(scale):
            return self._view.scale
        return max(self.settings.min_scale, min(self.settings.max_scale, scale))

    # ------------------------------------------------------------------- #
    #  指针
    # ------------------------------------------------------------------- #
    def pointer_down(self, x: float, y: float) -> None:
        ox, oy = self._view.offset
        self._state = PointerState.PANNING
        self._drag_anchor = (x - ox, y - oy)
        self._press_pos = (x, y)
        self._dragged = False

    def pointer_move(self, x: float, y: float) -> None:
        if self._state is not PointerState.PANNING:
            return
        if not self._dragged:
            if math.hypot(x - self._press_pos[0], y - self._press_pos[1]) <= self.settings.drag_threshold:
                return  # 手抖，不算拖拽
            self._dragged = True
        ax, ay = self._drag_anchor
        self._replace_view(self._view.with_offset(x - ax, y - ay))

    def pointer_up(self, x: float, y: float) -> bool:
        """返回本次抬起是否构成点击"""
        is_click = self._state is PointerState.PANNING and not self._dragged
        self._state = PointerState.IDLE
        self._dragged = False
        if is_click and self.on_click is not None:
            try:
                self.on_click(x, y)
            except Exception:  # noqa: BLE001
                log.exception("Click handler raised")
        return is_click

    def pointer_leave(self) -> None:
        self._state = PointerState.IDLE
        self._dragged = False

    # ------------------------------------------------------------------- #
    #  缩放
    # ------------------------------------------------------------------- #
    def wheel(self, event: Union[WheelEvent, float]) -> float:
        """乘法缩放：deltaY > 0 缩小，否则放大"""
        if isinstance(event, WheelEvent):
            if event.cancelable:
                event.prevent_default()
            delta_y = event.delta_y
        else:
            delta_y = float(event)
        factor = self.settings.wheel_zoom_out if delta_y > 0 else self.settings.wheel_zoom_in
        return self.set_scale(self._view.scale * factor)

    def zoom_in(self) -> float:
        return self.set_scale(self._view.scale * self.settings.button_factor)

    def zoom_out(self) -> float:
        return self.set_scale(self._view.scale / self.settings.button_factor)

    def set_scale(self, scale: float) -> float:
        clamped = self.clamp_scale(scale)
        if clamped != self._view.scale:
            self._replace_view(self._view.with_scale(clamped))
        return clamped

    def pinch_start(self) -> None:
        self._pinch_base = self._view.scale

    def pinch(self, ratio: float) -> float:
        """ratio = 当前双指距离 / 起始双指距离"""
        if self._pinch_base is None:
            self.pinch_start()
        return self.set_scale(self._pinch_base * ratio)

    def pinch_end(self) -> None:
        self._pinch_base = None

    def reset_view(self) -> None:
        self._state = PointerState.IDLE
        self._dragged = False
        self._pinch_base = None
        if self._view != ViewState():
            self._replace_view(ViewState())

    # ------------------------------------------------------------------- #
    #  监听器管理
    # ------------------------------------------------------------------- #
    def add_listener(self, fn: ViewListener) -> None:
        if fn not in self._listeners:
            self._listeners.append(fn)

    def remove_listener(self, fn: ViewListener) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    def _replace_view(self, new_view: ViewState) -> None:
        old_view = self._view
        self._view = new_view
        for fn in self._listeners.copy():
            try:
                fn(old_view, new_view)
            except Exception:  # noqa: BLE001
                log.exception("View listener raised")
