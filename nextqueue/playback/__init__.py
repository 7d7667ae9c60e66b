"""
播放模块 - 协调队列和外部播放引擎

该模块负责自动推进、随机播放和重复模式策略，
以及把队列状态变化翻译为播放引擎命令。
"""

from .playback_coordinator import PlaybackCoordinator
from .playback_event import AdvanceDirection, AdvanceReason, PlaybackEventType
from .shuffle_tracker import ShuffleTracker
from .logging_engine import LoggingPlaybackEngine

__all__ = [
    "PlaybackCoordinator",
    "AdvanceDirection",
    "AdvanceReason",
    "PlaybackEventType",
    "ShuffleTracker",
    "LoggingPlaybackEngine"
]
