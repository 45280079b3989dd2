# mapconsole/utils/__init__.py

"""
通用工具模块

提供日志与推送消息解码
"""

from .logging import (
    level_from_name,
    log,
    logManager,
    log_performance,
    setup_logging,
)
from .msg_codec import decode_frame, json_to_uint8_array, uint8_array_to_json

__all__ = [
    # === 日志 ===
    "setup_logging",
    "log",
    "logManager",
    "log_performance",
    "level_from_name",
    # === 编解码 ===
    "decode_frame",
    "json_to_uint8_array",
    "uint8_array_to_json",
]
