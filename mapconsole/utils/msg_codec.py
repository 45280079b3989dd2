"""
推送消息解码

位姿推送通道上的帧可能是 dict、JSON 字符串、bytes 或 uint8 数组，
统一解码为 dict 后再交给业务层。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Union

from .logging import log

Frame = Union[Dict[str, Any], str, bytes, bytearray, Sequence[int]]


def uint8_array_to_json(uint8_array: Sequence[int]) -> Optional[Dict[str, Any]]:
    """
    将 UInt8 数组转换为 JSON 字典

    Returns:
        解析后的字典；解码失败或顶层不是对象时返回 None
    """
    try:
        data = json.loads(bytes(uint8_array).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        log.error("uint8 array -> json failed: %s", e)
        return None
    if not isinstance(data, dict):
        log.error("uint8 array decoded to %s, expected object", type(data).__name__)
        return None
    log.debug("uint8 array -> json: %d bytes", len(uint8_array))
    return data


def json_to_uint8_array(data: Dict[str, Any]) -> List[int]:
    """dict → 紧凑 JSON → UTF-8 字节列表"""
    return list(json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def decode_frame(frame: Frame) -> Optional[Dict[str, Any]]:
    """任意帧 → dict，无法解析时返回 None（调用方负责丢弃）"""
    if isinstance(frame, dict):
        return frame
    if isinstance(frame, str):
        try:
            data = json.loads(frame)
        except ValueError as e:
            log.error("invalid json frame: %s", e)
            return None
        return data if isinstance(data, dict) else None
    if isinstance(frame, (bytes, bytearray)):
        return uint8_array_to_json(frame)
    if isinstance(frame, (list, tuple)):
        if not all(isinstance(b, int) and 0 <= b <= 255 for b in frame):
            log.error("frame is not a uint8 array")
            return None
        return uint8_array_to_json(frame)
    log.error("unsupported frame type: %s", type(frame).__name__)
    return None
