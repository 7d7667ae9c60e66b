"""
队列管理模块 - 处理播放队列的状态和持久化

该模块负责队列的所有变更操作以及队列快照的持久化。
不涉及任何播放策略，播放相关的决策属于 playback 模块。
"""

from .queue_store import QueueStore
from .persistence_manager import PersistenceManager, MemoryPersistenceManager
from .duplicate_detector import DuplicateDetector
from .track import Track, QueueEntry, QueueSnapshot, QueueState, RepeatMode, InsertPosition

__all__ = [
    "QueueStore",
    "PersistenceManager",
    "MemoryPersistenceManager",
    "DuplicateDetector",
    "Track",
    "QueueEntry",
    "QueueSnapshot",
    "QueueState",
    "RepeatMode",
    "InsertPosition"
]
