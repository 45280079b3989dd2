"""
读取 `config/viewer.yaml`

- 视口参数（缩放范围、滚轮 / 按钮倍率、拖拽阈值、自适应留白）
- 叠加层样式（颜色、半径、箭头）
- 位姿话题列表、日志配置

缺失的键使用默认值，未知的键忽略。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Final, Mapping, Optional, Tuple, Type, TypeVar, Union

import yaml

from mapconsole.core.errors import MapConsoleError
from mapconsole.utils.logging import level_from_name, log, logManager

DEFAULT_CONFIG_PATH: Final[Path] = Path(__file__).resolve().parent / "config/viewer.yaml"

T = TypeVar("T")


@dataclass(frozen=True)
class ViewportSettings:
    min_scale: float = 0.1
    max_scale: float = 5.0
    wheel_zoom_in: float = 1.1
    wheel_zoom_out: float = 0.9
    button_factor: float = 1.2
    drag_threshold: float = 3.0
    fit_factor: float = 0.8

    def __post_init__(self) -> None:
        if not 0 < self.min_scale <= self.max_scale:
            raise MapConsoleError(f"invalid scale range [{self.min_scale}, {self.max_scale}]")
        if self.button_factor <= 1 or self.wheel_zoom_in <= 1 or not 0 < self.wheel_zoom_out < 1:
            raise MapConsoleError("zoom factors must move the scale in the named direction")
        if self.fit_factor <= 0 or self.drag_threshold < 0:
            raise MapConsoleError("fit_factor must be > 0 and drag_threshold >= 0")


@dataclass(frozen=True)
class OverlayStyle:
    background: str = "#f5f5f5"
    placeholder_text: str = "#8c8c8c"
    point_radius: float = 8
    point_outline: str = "#ffffff"
    point_outline_width: int = 2
    point_label: bool = True
    point_label_color: str = "#ffffff"
    point_label_size: int = 12
    point_colors: Dict[str, str] = field(
        default_factory=lambda: {"start": "#52c41a", "waypoint": "#1890ff", "end": "#ff4d4f"}
    )
    point_default_color: str = "#999999"
    segment_width: int = 3
    segment_pump_on_color: str = "#52c41a"
    segment_idle_color: str = "#999999"
    arrow_length: float = 15
    arrow_half_angle_deg: float = 30
    robot_color: str = "#fa8c16"
    robot_radius: float = 12
    robot_outline: str = "#ffffff"
    robot_outline_width: int = 3
    robot_heading_length: float = 24
    robot_heading_color: str = "#ffffff"

    @property
    def arrow_half_angle(self) -> float:
        return math.radians(self.arrow_half_angle_deg)

    def point_color(self, point_type: str) -> str:
        return self.point_colors.get(point_type, self.point_default_color)


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[str] = None
    filters: Dict[str, str] = field(default_factory=dict)  # 模块前缀 → 最低级别


@dataclass(frozen=True)
class ViewerSettings:
    viewport: ViewportSettings = field(default_factory=ViewportSettings)
    style: OverlayStyle = field(default_factory=OverlayStyle)
    pose_topics: Tuple[str, ...] = ("/robot_pose", "/amcl_pose", "/odom")
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _build(cls: Type[T], section: Any, name: str) -> T:
    if section is None:
        return cls()
    if not isinstance(section, Mapping):
        raise MapConsoleError(f"config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(section) - known
    if unknown:
        log.debug("ignoring unknown keys in '%s': %s", name, sorted(unknown))
    kwargs = {k: v for k, v in section.items() if k in known}
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise MapConsoleError(f"bad value in config section '{name}': {e}") from e


def load_settings(path: Optional[Union[str, Path]] = None) -> ViewerSettings:
    """读取 YAML 配置；path 为空时使用包内默认配置"""
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        raw = yaml.safe_load(cfg_path.read_text("utf-8")) or {}
    except OSError as e:
        raise MapConsoleError(f"cannot read config {cfg_path}: {e}") from e
    except yaml.YAMLError as e:
        raise MapConsoleError(f"malformed config {cfg_path}: {e}") from e
    if not isinstance(raw, Mapping):
        raise MapConsoleError(f"config root must be a mapping: {cfg_path}")

    style_section = raw.get("style")
    if isinstance(style_section, Mapping) and isinstance(style_section.get("point_colors"), Mapping):
        # 只覆盖给出的类型
        colors = {**OverlayStyle().point_colors, **style_section["point_colors"]}
        style_section = {**style_section, "point_colors": colors}

    topics = raw.get("pose_topics")
    settings = ViewerSettings(
        viewport=_build(ViewportSettings, raw.get("viewport"), "viewport"),
        style=_build(OverlayStyle, style_section, "style"),
        pose_topics=tuple(topics) if topics else ViewerSettings().pose_topics,
        logging=_build(LoggingSettings, raw.get("logging"), "logging"),
    )
    log.debug("settings loaded from %s", cfg_path)
    return settings


def apply_logging(settings: ViewerSettings) -> None:
    """按配置初始化日志并挂载模块过滤"""
    cfg = settings.logging
    logManager.setup_logging(
        console_level=level_from_name(cfg.level),
        log_file=cfg.file,
        force=True,
    )
    for prefix, level in (cfg.filters or {}).items():
        logManager.add_module_filter(prefix, level_from_name(level))
