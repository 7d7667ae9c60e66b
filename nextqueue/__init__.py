"""
NextQueue - 媒体播放队列

有序、可变的曲目列表和单一的当前位置，
在插入、移除、重排、去重以及播放事件下保持一致，并通过本地存储跨进程恢复。
"""

__version__ = "1.0.0"
