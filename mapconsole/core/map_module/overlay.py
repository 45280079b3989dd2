# mapconsole/core/map_module/overlay.py
"""
叠加层绘制
职责：
1. 导航点：按类型着色的圆点 + 顺序编号
2. 路段：按喷洒泵状态着色的线段，终点画 V 形箭头
3. 机器人：圆形标记，已知朝向时画朝向线
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, Optional, Sequence

from mapconsole.core.errors import CoordinateConversionError
from mapconsole.core.models import NavPoint, RoadSegment, RobotPose
from mapconsole.render.base import Point, Renderer
from mapconsole.settings import OverlayStyle
from mapconsole.utils.logging import log

from .coordinate_mapper import WorldPixelMapper


def arrowhead(start: Point, end: Point, length: float, half_angle: float) -> tuple[Point, Point]:
    """V 形箭头两翼的端点，箭尖位于 end"""
    angle = math.atan2(end[1] - start[1], end[0] - start[0])
    left = (
        end[0] - length * math.cos(angle - half_angle),
        end[1] - length * math.sin(angle - half_angle),
    )
    right = (
        end[0] - length * math.cos(angle + half_angle),
        end[1] - length * math.sin(angle + half_angle),
    )
    return left, right


class OverlayRenderer:
    """Draw the navigation graph and robot pose over the raster."""

    def __init__(self, renderer: Renderer, style: Optional[OverlayStyle] = None) -> None:
        self.renderer = renderer
        self.style = style or OverlayStyle()

    # ------------------------------------------------------------------ #
    def draw_nav_points(self, mapper: WorldPixelMapper, points: Iterable[NavPoint]) -> int:
        """返回实际绘制的点数"""
        st = self.style
        drawn = 0
        for point in points:
            try:
                center = mapper.world_to_canvas(point.position.x, point.position.y)
            except CoordinateConversionError as e:
                log.warning("Skip nav point %s: %s", point.id, e)
                continue
            self.renderer.fill_circle(
                center,
                st.point_radius,
                fill=st.point_color(point.type),
                outline=st.point_outline,
                outline_width=st.point_outline_width,
            )
            if st.point_label:
                self.renderer.draw_text(center, str(point.order), st.point_label_color, st.point_label_size)
            drawn += 1
        return drawn

    def draw_road_segments(
        self,
        mapper: WorldPixelMapper,
        segments: Iterable[RoadSegment],
        points: Sequence[NavPoint],
    ) -> int:
        """端点缺失的路段直接跳过；返回实际绘制的路段数"""
        st = self.style
        by_id: Dict[str, NavPoint] = {p.id: p for p in points}
        drawn = 0
        for seg in segments:
            start_pt = by_id.get(seg.start_point_id)
            end_pt = by_id.get(seg.end_point_id)
            if start_pt is None or end_pt is None:
                log.debug(
                    "Skip segment %s: unknown endpoint(s) %s -> %s",
                    seg.id, seg.start_point_id, seg.end_point_id,
                )
                continue
            # 两端都换算成功后才开始画，避免半截路段
            try:
                start = mapper.world_to_canvas(start_pt.position.x, start_pt.position.y)
                end = mapper.world_to_canvas(end_pt.position.x, end_pt.position.y)
            except CoordinateConversionError as e:
                log.warning("Skip segment %s: %s", seg.id, e)
                continue

            color = st.segment_pump_on_color if seg.spray_params.pump_status else st.segment_idle_color
            self.renderer.draw_line(start, end, color, st.segment_width)
            if start != end:
                left, right = arrowhead(start, end, st.arrow_length, st.arrow_half_angle)
                self.renderer.draw_line(end, left, color, st.segment_width)
                self.renderer.draw_line(end, right, color, st.segment_width)
            drawn += 1
        return drawn

    def draw_robot(self, mapper: WorldPixelMapper, pose: Optional[RobotPose]) -> bool:
        if pose is None:
            return False
        st = self.style
        try:
            center = mapper.world_to_canvas(pose.x, pose.y)
        except CoordinateConversionError as e:
            log.warning("Skip robot marker: %s", e)
            return False
        self.renderer.fill_circle(
            center,
            st.robot_radius,
            fill=st.robot_color,
            outline=st.robot_outline,
            outline_width=st.robot_outline_width,
        )
        if pose.yaw is not None and math.isfinite(pose.yaw):
            # 画布 Y 轴向下，朝向的 y 分量取反
            tip = (
                center[0] + st.robot_heading_length * math.cos(pose.yaw),
                center[1] - st.robot_heading_length * math.sin(pose.yaw),
            )
            self.renderer.draw_line(center, tip, st.robot_heading_color, st.robot_outline_width)
        return True
