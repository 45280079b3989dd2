"""
基础设施适配层

- LocalMapProvider: 本地地图目录数据源
- TopicSubscriber: 推送话题订阅 / 缓存 / 分发
"""

from .map_provider import LocalMapProvider
from .topic_sub import DEFAULT_POSE_TOPICS, TopicSubscriber

__all__ = ["LocalMapProvider", "TopicSubscriber", "DEFAULT_POSE_TOPICS"]
