# mapconsole/infrastructure/topic_sub.py

"""
推送话题订阅器

持久连接（rosbridge / socket.io 等）由宿主维护，收到的每一帧交给
:meth:`TopicSubscriber.dispatch` 或 :meth:`TopicSubscriber.on_envelope`；
本模块负责解码、按话题缓存并调用回调。
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from mapconsole.core.pose import PoseFeed
from mapconsole.utils.logging import log
from mapconsole.utils.msg_codec import Frame, decode_frame

MessageCallback = Callable[[Dict[str, Any]], Any]

DEFAULT_POSE_TOPICS = ("/robot_pose", "/amcl_pose", "/odom")


class TopicSubscriber:
    """按话题分发推送消息，并缓存最近的若干条"""

    def __init__(self) -> None:
        self._callbacks: Dict[str, List[MessageCallback]] = {}
        self._message_cache: Dict[str, Deque[Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def subscribe(self, topic: str, callback: Optional[MessageCallback] = None, cache_size: int = 100) -> None:
        """
        注册话题

        Args:
            topic: 话题名称
            callback: 消息回调，参数为解码后的消息字典
            cache_size: 本地缓存最大条数（0 表示不缓存）
        """
        with self._lock:
            callbacks = self._callbacks.setdefault(topic, [])
            if callback is not None and callback not in callbacks:
                callbacks.append(callback)
            if cache_size > 0 and topic not in self._message_cache:
                self._message_cache[topic] = deque(maxlen=cache_size)
        log.info("Subscribed to %s", topic)

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            self._callbacks.pop(topic, None)
            self._message_cache.pop(topic, None)
        log.info("Unsubscribed from %s", topic)

    @property
    def topics(self) -> List[str]:
        with self._lock:
            return list(self._callbacks)

    # ------------------------------------------------------------------ #
    def dispatch(self, topic: str, frame: Frame) -> bool:
        """处理一帧；未订阅或无法解码时返回 False"""
        with self._lock:
            if topic not in self._callbacks:
                return False
            callbacks = list(self._callbacks[topic])
        msg = decode_frame(frame)
        if msg is None:
            log.warning("Undecodable frame on %s dropped", topic)
            return False

        with self._lock:
            cache = self._message_cache.get(topic)
            if cache is not None:
                cache.append({**msg, "_timestamp": time.time()})

        for cb in callbacks:
            try:
                cb(msg)
            except Exception:  # noqa: BLE001
                log.exception("Callback for %s raised", topic)
        return True

    def on_envelope(self, frame: Frame) -> bool:
        """rosbridge 风格信封 {op: 'publish', topic, msg}"""
        envelope = decode_frame(frame)
        if envelope is None or "topic" not in envelope or "msg" not in envelope:
            log.debug("Not a topic envelope: %r", frame)
            return False
        return self.dispatch(envelope["topic"], envelope["msg"])

    # ------------------------------------------------------------------ #
    def get_latest_message(self, topic: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cache = self._message_cache.get(topic)
            if cache:
                return dict(cache[-1])
        return None

    def get_message_history(self, topic: str, count: int = -1) -> List[Dict[str, Any]]:
        """最近 count 条；count <= 0 返回全部缓存"""
        with self._lock:
            cache = self._message_cache.get(topic)
            if not cache:
                return []
            items = list(cache)
        return items if count <= 0 else items[-count:]

    def clear_cache(self, topic: Optional[str] = None) -> None:
        with self._lock:
            targets = [topic] if topic is not None else list(self._message_cache)
            for t in targets:
                if t in self._message_cache:
                    self._message_cache[t].clear()

    def attach_pose_feed(self, feed: PoseFeed, topics: Iterable[str] = DEFAULT_POSE_TOPICS) -> None:
        """把位姿话题接到 PoseFeed；只保留最新一条，无需缓存"""
        for topic in topics:
            self.subscribe(topic, feed.on_message, cache_size=0)
