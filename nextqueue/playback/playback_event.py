"""
播放事件定义 - 推进方向、推进原因和协调器对外发布的事件类型
"""

from enum import Enum


class AdvanceDirection(Enum):
    """推进方向"""
    NEXT = "next"
    PREVIOUS = "previous"


class AdvanceReason(Enum):
    """
    推进原因

    只有 TRACK_ENDED（引擎报告媒体自然结束）会触发单曲重复，
    手动跳过总是推进到下一首。
    """
    MANUAL = "manual"
    TRACK_ENDED = "track_ended"


class PlaybackEventType(Enum):
    """协调器发布给观察者的事件"""
    TRACK_CHANGED = "track_changed"    # 引擎加载了新的曲目
    QUEUE_CHANGED = "queue_changed"    # 队列条目或模式变化
    QUEUE_FINISHED = "queue_finished"  # 到达队尾且不重复
    PLAYBACK_ERROR = "playback_error"  # 引擎命令失败
