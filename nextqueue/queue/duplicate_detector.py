"""
重复检测器 - 识别队列中的重复曲目

重复判定使用 (id, name) 组合作为键。这个键比完整的曲目身份更窄
（不考虑艺术家和专辑），可能把同名的不同曲目视为重复，
属于产品策略，修改前需要确认需求。
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from .track import QueueEntry, Track


@dataclass(frozen=True)
class TrackIdentifier:
    """
    曲目标识符 - 用于去重比较

    frozen 数据类，可以直接用作集合元素和字典键。
    """
    track_id: Union[str, int]
    name: Optional[str]

    @classmethod
    def from_track(cls, track: Track) -> "TrackIdentifier":
        return cls(track_id=track.id, name=track.name)


class DuplicateDetector:
    """
    重复检测器

    按顺序扫描队列，保留每个键的第一次出现，之后的出现视为重复。
    """

    def __init__(self):
        self.logger = logging.getLogger("nextqueue.queue.duplicate_detector")

    def get_identifier(self, track: Track) -> TrackIdentifier:
        """获取曲目的去重键"""
        return TrackIdentifier.from_track(track)

    def is_duplicate(self, first: Track, second: Track) -> bool:
        """检查两个曲目是否按去重键相同"""
        return self.get_identifier(first) == self.get_identifier(second)

    def find_duplicate_indices(self, entries: Sequence[QueueEntry]) -> Dict[int, int]:
        """
        查找重复条目

        Args:
            entries: 按队列顺序排列的条目

        Returns:
            {重复条目索引: 保留的第一次出现的索引}
        """
        first_seen: Dict[TrackIdentifier, int] = {}
        duplicates: Dict[int, int] = {}

        for index, entry in enumerate(entries):
            identifier = self.get_identifier(entry.track)
            if identifier in first_seen:
                duplicates[index] = first_seen[identifier]
            else:
                first_seen[identifier] = index

        if duplicates:
            self.logger.debug(f"发现 {len(duplicates)} 个重复条目: {sorted(duplicates)}")

        return duplicates

    def find_entries_for_track(self, entries: Sequence[QueueEntry], track: Track) -> List[int]:
        """
        查找与给定曲目重复的所有条目索引

        Args:
            entries: 队列条目
            track: 要比较的曲目

        Returns:
            按队列顺序排列的索引列表
        """
        identifier = self.get_identifier(track)
        return [
            index for index, entry in enumerate(entries)
            if self.get_identifier(entry.track) == identifier
        ]
