"""
曲目数据模型 - 定义曲目、队列条目和队列快照的数据结构

提供播放队列使用的统一数据模型，所有模型都可以序列化为 JSON 安全的字典。
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


SNAPSHOT_VERSION = "1.0"


class RepeatMode(Enum):
    """重复模式"""
    NONE = "none"  # 播放到队尾停止
    ONE = "one"    # 自然结束时重播当前曲目
    ALL = "all"    # 到达边界时回绕

    def cycle(self) -> "RepeatMode":
        """按 none -> all -> one -> none 的顺序切换"""
        order = [RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class InsertPosition(Enum):
    """插入位置"""
    NEXT = "next"
    END = "end"


@dataclass(frozen=True)
class Track:
    """
    曲目数据类

    描述一个可播放的曲目。身份由 id 决定，
    标题按 title -> name 的顺序回退。
    """
    id: Union[str, int]
    title: Optional[str] = None
    name: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    duration_ms: Optional[int] = None
    artwork_ref: Optional[str] = None

    @property
    def display_title(self) -> str:
        """获取用于显示的标题"""
        return self.title or self.name or "Unknown Track"

    @property
    def display_artist(self) -> str:
        """获取用于显示的艺术家"""
        return self.artist or "Unknown Artist"

    def format_duration(self) -> str:
        """
        格式化时长为可读字符串

        Returns:
            格式化的时长字符串 (例: "3:45")，时长未知时返回空字符串
        """
        if not self.duration_ms:
            return ""
        minutes = self.duration_ms // 60000
        seconds = (self.duration_ms % 60000) // 1000
        return f"{minutes}:{seconds:02d}"

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式（用于持久化）"""
        return {
            'id': self.id,
            'title': self.title,
            'name': self.name,
            'artist': self.artist,
            'album': self.album,
            'duration_ms': self.duration_ms,
            'artwork_ref': self.artwork_ref
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """
        从字典创建曲目对象

        Args:
            data: 曲目信息字典

        Returns:
            曲目对象

        Raises:
            ValueError: 数据缺少 id 或字段类型无效
        """
        if not isinstance(data, dict):
            raise ValueError("曲目数据必须是字典")
        track_id = data.get('id')
        if isinstance(track_id, bool) or not isinstance(track_id, (str, int)):
            raise ValueError(f"无效的曲目ID: {track_id!r}")

        duration_ms = data.get('duration_ms')
        if duration_ms is not None and (isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float))):
            raise ValueError(f"无效的曲目时长: {duration_ms!r}")

        return cls(
            id=track_id,
            title=data.get('title'),
            name=data.get('name'),
            artist=data.get('artist'),
            album=data.get('album'),
            duration_ms=int(duration_ms) if duration_ms is not None else None,
            artwork_ref=data.get('artwork_ref')
        )

    def __str__(self) -> str:
        duration = self.format_duration()
        suffix = f" ({duration})" if duration else ""
        return f"{self.display_title} - {self.display_artist}{suffix}"


def generate_queue_id() -> str:
    """生成队列条目ID，每次添加都是新的值"""
    return uuid.uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class QueueEntry:
    """
    队列条目数据类

    包装一个曲目以及队列内的元数据。
    added_at 只用于诊断，排序只由队列中的位置决定。
    """
    track: Track
    queue_id: str = field(default_factory=generate_queue_id)
    added_at: int = field(default_factory=_now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式（用于持久化）"""
        return {
            'track': self.track.to_dict(),
            'queue_id': self.queue_id,
            'added_at': self.added_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        """
        从字典创建队列条目

        Raises:
            ValueError: 数据无效
        """
        if not isinstance(data, dict):
            raise ValueError("队列条目数据必须是字典")
        queue_id = data.get('queue_id')
        if not isinstance(queue_id, str) or not queue_id:
            raise ValueError(f"无效的队列条目ID: {queue_id!r}")
        added_at = data.get('added_at', 0)
        if isinstance(added_at, bool) or not isinstance(added_at, (int, float)):
            raise ValueError(f"无效的添加时间: {added_at!r}")

        return cls(
            track=Track.from_dict(data.get('track')),
            queue_id=queue_id,
            added_at=int(added_at)
        )

    def __repr__(self) -> str:
        return f"QueueEntry(queue_id='{self.queue_id}', title='{self.track.display_title}')"


@dataclass
class QueueSnapshot:
    """
    队列快照 - 持久化的队列状态子集

    不包含 is_playing 等播放引擎的瞬态状态。
    """
    entries: List[QueueEntry] = field(default_factory=list)
    current_index: int = -1
    repeat_mode: RepeatMode = RepeatMode.NONE
    shuffle_mode: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """转换为 JSON 安全的字典"""
        return {
            'entries': [entry.to_dict() for entry in self.entries],
            'current_index': self.current_index,
            'repeat_mode': self.repeat_mode.value,
            'shuffle_mode': self.shuffle_mode,
            'version': SNAPSHOT_VERSION
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueSnapshot":
        """
        从字典恢复队列快照

        Args:
            data: 快照字典

        Returns:
            队列快照

        Raises:
            ValueError: 数据格式无效或存在重复的队列条目ID
        """
        if not isinstance(data, dict):
            raise ValueError("快照数据必须是字典")

        raw_entries = data.get('entries')
        if not isinstance(raw_entries, list):
            raise ValueError("快照缺少 entries 列表")

        current_index = data.get('current_index', -1)
        if isinstance(current_index, bool) or not isinstance(current_index, int):
            raise ValueError(f"无效的当前索引: {current_index!r}")

        shuffle_mode = data.get('shuffle_mode', False)
        if not isinstance(shuffle_mode, bool):
            raise ValueError(f"无效的随机模式: {shuffle_mode!r}")

        entries = [QueueEntry.from_dict(item) for item in raw_entries]
        queue_ids = {entry.queue_id for entry in entries}
        if len(queue_ids) != len(entries):
            raise ValueError("快照中存在重复的队列条目ID")

        return cls(
            entries=entries,
            current_index=current_index,
            repeat_mode=RepeatMode(data.get('repeat_mode', RepeatMode.NONE.value)),
            shuffle_mode=shuffle_mode
        )


@dataclass(frozen=True)
class QueueState:
    """
    队列状态 - 提供给 UI 的只读视图

    is_playing 只是播放引擎状态的镜像，不具有权威性。
    """
    entries: Tuple[QueueEntry, ...] = ()
    current_index: int = -1
    repeat_mode: RepeatMode = RepeatMode.NONE
    shuffle_mode: bool = False
    is_playing: bool = False

    @property
    def current_entry(self) -> Optional[QueueEntry]:
        if 0 <= self.current_index < len(self.entries):
            return self.entries[self.current_index]
        return None

    @property
    def current_track(self) -> Optional[Track]:
        entry = self.current_entry
        return entry.track if entry else None

    @property
    def has_next(self) -> bool:
        return self.current_index + 1 < len(self.entries)

    @property
    def has_previous(self) -> bool:
        return 0 < self.current_index < len(self.entries)

    @property
    def upcoming(self) -> Tuple[QueueEntry, ...]:
        """当前曲目之后的条目（"接下来播放"）"""
        return self.entries[self.current_index + 1:]

    @property
    def total_duration_ms(self) -> int:
        return sum(entry.track.duration_ms or 0 for entry in self.entries)

    def to_snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            entries=list(self.entries),
            current_index=self.current_index,
            repeat_mode=self.repeat_mode,
            shuffle_mode=self.shuffle_mode
        )
