"""
地图控制台日志管理

关键特性
--------
1. 线程安全的一次性初始化（重复调用无副作用，force=True 可重建）
2. 控制台彩色输出（自动检测 colorama & TTY）
3. 按大小/时间滚动的文件日志，自动创建目录
4. 运行期动态调级、模块前缀过滤（配置文件 logging.filters）
5. 渲染 / 解码耗时监控装饰器
"""

from __future__ import annotations

import datetime as _dt
import logging
import os
import sys
import threading
import time
from functools import wraps
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Callable, Optional, Union

LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def level_from_name(name: Union[str, int]) -> int:
    """'info' / 'INFO' / 20 → logging.INFO；未知名称抛 ValueError。"""
    if isinstance(name, int):
        return name
    try:
        return LOG_LEVELS[str(name).upper()]
    except KeyError:
        raise ValueError(f"unknown log level: {name!r}") from None


# ----------------------------------------------------------------------
# 格式化器
class ConsoleFormatter(logging.Formatter):
    """[2026-03-02 09:12:34.567] [    INFO] [mapconsole.core.map_loader] message"""

    _FMT = "[%(asctime)s] [%(levelname)8s] [%(name)s] %(message)s"
    _DATEFMT = "%Y-%m-%d %H:%M:%S.%f"

    def __init__(self, colored: bool = False) -> None:
        super().__init__(self._FMT, datefmt=self._DATEFMT)
        self._colored = colored and _supports_color()

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if self._colored:
            msg = _colorize(record.levelno, msg)
        return msg

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        ts = _dt.datetime.fromtimestamp(record.created)
        return ts.strftime(datefmt or self._DATEFMT)[:-3]  # 毫秒


def _supports_color() -> bool:
    return sys.stdout.isatty() and ("colorama" in sys.modules or _try_import_colorama())


def _try_import_colorama() -> bool:
    try:
        import colorama  # type: ignore
    except ModuleNotFoundError:
        return False
    colorama.just_fix_windows_console()
    return True


_COLOR_MAP = {
    logging.DEBUG: 36,
    logging.INFO: 32,
    logging.WARNING: 33,
    logging.ERROR: 31,
    logging.CRITICAL: 41,
}


def _colorize(level: int, text: str) -> str:
    code = _COLOR_MAP.get(level)
    return f"\x1b[{code}m{text}\x1b[0m" if code else text


class _PrefixLevelFilter(logging.Filter):
    """丢弃 name 以 prefix 开头且低于 level 的记录"""

    def __init__(self, prefix: str, level: int) -> None:
        super().__init__()
        self.prefix = prefix
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return not (record.name.startswith(self.prefix) and record.levelno < self.level)


# ----------------------------------------------------------------------
# 日志管理器
class LogManager:
    """集中管理 console / file handler"""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._setup_done = False
        self._default_level = logging.INFO
        self._console_handler: Optional[logging.Handler] = None
        self._file_handler: Optional[logging.Handler] = None
        self._filters: list[_PrefixLevelFilter] = []

    def setup_logging(
        self,
        *,
        console_level: int = logging.INFO,
        log_file: Optional[Union[str, os.PathLike[str]]] = None,
        file_level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        rotation: str = "size",  # 'size' | 'time'
        encoding: str = "utf-8",
        colored: bool = True,
        force: bool = False,
    ) -> None:
        """初始化根日志。rotation='time' 时按天切分。"""
        with self._lock:
            if self._setup_done and not force:
                return
            if rotation not in ("size", "time"):
                raise ValueError("rotation must be 'size' or 'time'")

            root = logging.getLogger()
            for h in (self._console_handler, self._file_handler):
                if h is not None and h in root.handlers:
                    h.flush()
                    h.close()
                    root.removeHandler(h)
            self._file_handler = None

            fmt = ConsoleFormatter(colored=colored)

            ch = logging.StreamHandler(sys.stdout)
            ch.setLevel(console_level)
            ch.setFormatter(fmt)
            root.addHandler(ch)
            self._console_handler = ch

            if log_file:
                log_path = Path(log_file)
                log_path.parent.mkdir(parents=True, exist_ok=True)
                if rotation == "time":
                    fh: logging.Handler = TimedRotatingFileHandler(
                        str(log_path), when="midnight", encoding=encoding, backupCount=backup_count
                    )
                else:
                    fh = RotatingFileHandler(
                        str(log_path),
                        mode="a",
                        encoding=encoding,
                        maxBytes=max_bytes,
                        backupCount=backup_count,
                    )
                fh.setLevel(file_level)
                # 文件不带颜色码
                fh.setFormatter(ConsoleFormatter(colored=False))
                root.addHandler(fh)
                self._file_handler = fh

            levels = [console_level, file_level] if self._file_handler else [console_level]
            root.setLevel(min(levels))
            self._default_level = console_level
            self._setup_done = True
            logging.getLogger(__name__).debug(
                "logging ready (%s)", "console+file" if self._file_handler else "console only"
            )

    def get_logger(self, name: str) -> logging.Logger:
        if not self._setup_done:
            self.setup_logging(console_level=self._default_level)
        return logging.getLogger(name)

    def set_level(self, level: int, handler_type: str = "all") -> None:
        """handler_type ∈ {'console', 'file', 'all'}"""
        with self._lock:
            if handler_type in ("console", "all") and self._console_handler:
                self._console_handler.setLevel(level)
                self._default_level = level
            if handler_type in ("file", "all") and self._file_handler:
                self._file_handler.setLevel(level)
            handlers = [h for h in (self._console_handler, self._file_handler) if h]
            if handlers:
                logging.getLogger().setLevel(min(h.level for h in handlers))

    def add_module_filter(self, module_prefix: str, min_level: int) -> None:
        """限制指定模块前缀的最低日志级别（挂在 handler 上，子 logger 同样生效）"""
        with self._lock:
            flt = _PrefixLevelFilter(module_prefix, min_level)
            self._filters.append(flt)
            for h in (self._console_handler, self._file_handler):
                if h is not None:
                    h.addFilter(flt)

    def get_stats(self) -> dict[str, object]:
        return {
            "setup_done": self._setup_done,
            "root_level": logging.getLevelName(logging.getLogger().level),
            "console_level": (
                logging.getLevelName(self._console_handler.level) if self._console_handler else None
            ),
            "file_level": (
                logging.getLevelName(self._file_handler.level) if self._file_handler else None
            ),
            "filters": [(f.prefix, logging.getLevelName(f.level)) for f in self._filters],
        }


# ----------------------------------------------------------------------
# 装饰器
def log_performance(logger_name: Optional[str] = None, threshold_ms: float = 50.0):
    """监控函数耗时，超过阈值 WARNING，否则 DEBUG"""

    def decorator(func: Callable[..., object]):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = logManager.get_logger(logger_name or func.__module__)
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed = (time.perf_counter() - start) * 1000
                if elapsed > threshold_ms:
                    logger.warning("%s took %.1f ms", func.__qualname__, elapsed)
                else:
                    logger.debug("%s took %.1f ms", func.__qualname__, elapsed)

        return wrapper

    return decorator


logManager = LogManager()


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, os.PathLike[str]]] = None,
    file_level: int = logging.DEBUG,
    **kwargs,
) -> None:
    """顶层快捷初始化；其余参数透传"""
    logManager.setup_logging(console_level=level, log_file=log_file, file_level=file_level, **kwargs)


# ----------------------------------------------------------------------
# 全局日志代理
class LoggerProxy:
    """`log.info(...)` 自动使用调用方模块的 logger"""

    def __getattr__(self, name: str) -> Callable[..., None]:
        caller_mod = sys._getframe(1).f_globals.get("__name__", "__main__")
        return getattr(logManager.get_logger(caller_mod), name)


log = LoggerProxy()
