"""
队列存储 - 管理有序曲目列表和当前索引

负责队列的所有变更操作，包括添加、移除、重排、去重。
每个操作都保证当前索引仍然指向用户感知为"正在播放"的曲目。
变更只发生在内存中，由 commit() 在每个外部事件结束时统一持久化。
"""

import logging
from typing import Any, Dict, List, Optional, Union

from nextqueue.core.interfaces import IPersistenceManager
from .duplicate_detector import DuplicateDetector
from .track import (
    InsertPosition,
    QueueEntry,
    QueueSnapshot,
    QueueState,
    RepeatMode,
    Track,
)


class QueueStore:
    """
    队列存储实现

    独占队列状态。调用方需要串行化所有变更（单一逻辑线程），
    因此内部不加锁。除了本类的变更操作，任何代码都不能修改当前索引。
    """

    def __init__(
        self,
        persistence_manager: Optional[IPersistenceManager] = None,
        duplicate_detector: Optional[DuplicateDetector] = None
    ):
        """
        初始化队列存储

        Args:
            persistence_manager: 持久化管理器（可选）
            duplicate_detector: 重复检测器（可选）
        """
        self.logger = logging.getLogger("nextqueue.queue.store")

        # 队列状态
        self._entries: List[QueueEntry] = []
        self._current_index = -1
        self._repeat_mode = RepeatMode.NONE
        self._shuffle_mode = False
        self._is_playing = False  # 瞬态，不持久化

        # 是否有未提交的持久化状态变更
        self._dirty = False

        self._persistence_manager = persistence_manager
        self._duplicate_detector = duplicate_detector or DuplicateDetector()

        self.logger.debug("队列存储初始化完成")

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    @property
    def shuffle_mode(self) -> bool:
        return self._shuffle_mode

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def get_entries(self) -> List[QueueEntry]:
        """获取条目列表的副本"""
        return list(self._entries)

    def get_entry(self, index: int) -> Optional[QueueEntry]:
        """获取指定索引的条目，越界时返回None"""
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def get_current_entry(self) -> Optional[QueueEntry]:
        return self.get_entry(self._current_index)

    def find_index(self, queue_id: str) -> int:
        """
        按队列条目ID查找位置

        Returns:
            条目索引，不存在时返回 -1
        """
        for index, entry in enumerate(self._entries):
            if entry.queue_id == queue_id:
                return index
        return -1

    def index_of_track(self, track_id: Union[str, int]) -> int:
        """
        按曲目ID查找第一个匹配的位置

        Returns:
            条目索引，不存在时返回 -1
        """
        for index, entry in enumerate(self._entries):
            if entry.track.id == track_id:
                return index
        return -1

    def get_next_track(self) -> Optional[Track]:
        """
        查看当前索引之后的曲目

        纯查询，不考虑重复和随机模式（这些策略属于播放协调器）。

        Returns:
            下一首曲目，到达边界时返回None
        """
        entry = self.get_entry(self._current_index + 1)
        return entry.track if entry else None

    def get_previous_track(self) -> Optional[Track]:
        """
        查看当前索引之前的曲目

        Returns:
            上一首曲目，到达边界或没有当前曲目时返回None
        """
        if self._current_index <= 0:
            return None
        entry = self.get_entry(self._current_index - 1)
        return entry.track if entry else None

    def get_state(self) -> QueueState:
        """获取只读的队列状态视图"""
        return QueueState(
            entries=tuple(self._entries),
            current_index=self._current_index,
            repeat_mode=self._repeat_mode,
            shuffle_mode=self._shuffle_mode,
            is_playing=self._is_playing
        )

    def get_queue_info(self) -> Dict[str, Any]:
        """
        获取队列信息

        Returns:
            包含队列信息的字典
        """
        state = self.get_state()
        current_track = state.current_track
        return {
            'queue_length': len(state.entries),
            'current_index': state.current_index,
            'current_track': current_track.display_title if current_track else None,
            'upcoming_count': len(state.upcoming),
            'total_duration_ms': state.total_duration_ms,
            'repeat_mode': state.repeat_mode.value,
            'shuffle_mode': state.shuffle_mode,
            'is_playing': state.is_playing
        }

    # ------------------------------------------------------------------
    # 变更操作
    # ------------------------------------------------------------------

    def _mark_dirty(self) -> None:
        self._dirty = True

    def add_to_queue(self, track: Track, position: Union[InsertPosition, str] = InsertPosition.END) -> str:
        """
        添加曲目到队列

        "next" 插入到当前索引之后（没有当前曲目时插入到队首），
        "end" 追加到队尾。插入点总在当前索引之后，因此当前索引不需要调整。

        Args:
            track: 曲目
            position: 插入位置

        Returns:
            新条目的队列ID
        """
        try:
            position = InsertPosition(position)
        except ValueError:
            self.logger.warning(f"未知的插入位置: {position!r}，追加到队尾")
            position = InsertPosition.END

        entry = QueueEntry(track=track)

        if position == InsertPosition.NEXT:
            insert_at = self._current_index + 1 if self._current_index >= 0 else 0
            self._entries.insert(insert_at, entry)
        else:
            insert_at = len(self._entries)
            self._entries.append(entry)

        existing = self._duplicate_detector.find_entries_for_track(self._entries, track)
        if len(existing) > 1:
            self.logger.debug(f"曲目已在队列中出现 {len(existing) - 1} 次: {track.display_title}")

        self._mark_dirty()
        self.logger.info(f"添加曲目到队列: {track.display_title} (位置 {insert_at}, 条目 {entry.queue_id})")
        return entry.queue_id

    def remove_from_queue(self, queue_id: str) -> bool:
        """
        从队列中移除条目

        移除当前曲目时当前索引变为 -1，由播放协调器决定接下来播放什么。

        Args:
            queue_id: 队列条目ID

        Returns:
            是否移除了条目
        """
        removed_index = self.find_index(queue_id)
        if removed_index == -1:
            self.logger.debug(f"移除条目失败，条目不存在: {queue_id}")
            return False

        entry = self._entries.pop(removed_index)

        if removed_index < self._current_index:
            self._current_index -= 1
        elif removed_index == self._current_index:
            self._current_index = -1

        self._mark_dirty()
        self.logger.info(
            f"从队列移除: {entry.track.display_title} (位置 {removed_index}, 当前索引 {self._current_index})"
        )
        return True

    def reorder_queue(self, from_index: int, to_index: int) -> bool:
        """
        移动条目到新位置

        被移动的条目越过当前条目时，窗口内的所有条目平移一位。

        Args:
            from_index: 原位置
            to_index: 目标位置

        Returns:
            是否执行了移动
        """
        length = len(self._entries)
        if not (0 <= from_index < length and 0 <= to_index < length) or from_index == to_index:
            self.logger.debug(f"忽略无效的重排: {from_index} -> {to_index} (队列长度 {length})")
            return False

        moved = self._entries.pop(from_index)
        self._entries.insert(to_index, moved)

        current = self._current_index
        if from_index == current:
            self._current_index = to_index
        elif from_index < current <= to_index:
            self._current_index = current - 1
        elif to_index <= current < from_index:
            self._current_index = current + 1

        self._mark_dirty()
        self.logger.debug(
            f"重排队列: {moved.track.display_title} {from_index} -> {to_index}, "
            f"当前索引 {current} -> {self._current_index}"
        )
        return True

    def clear_queue(self) -> int:
        """
        清空队列

        Returns:
            清除的条目数量
        """
        count = len(self._entries)
        self._entries.clear()
        self._current_index = -1
        self._mark_dirty()
        self.logger.info(f"清空队列: 移除了 {count} 个条目")
        return count

    def set_current_index(self, index: int) -> int:
        """
        设置当前索引

        越界的值被限制到 [-1, 长度-1]。

        Args:
            index: 新的当前索引

        Returns:
            实际生效的当前索引
        """
        clamped = max(-1, min(index, len(self._entries) - 1))
        if clamped != index:
            self.logger.debug(f"当前索引 {index} 越界，限制为 {clamped}")

        if clamped != self._current_index:
            self._current_index = clamped
            self._mark_dirty()
        return clamped

    def move_to_top(self, queue_id: str) -> bool:
        """
        把条目移动到队首

        Args:
            queue_id: 队列条目ID

        Returns:
            是否执行了移动
        """
        index = self.find_index(queue_id)
        if index == -1:
            self.logger.debug(f"置顶失败，条目不存在: {queue_id}")
            return False
        if index == 0:
            return False

        entry = self._entries.pop(index)
        self._entries.insert(0, entry)

        current = self._current_index
        if index == current:
            self._current_index = 0
        elif 0 <= current < index:
            # 队首到原位置之间的条目整体右移一位
            self._current_index = current + 1

        self._mark_dirty()
        self.logger.info(f"置顶条目: {entry.track.display_title} (原位置 {index})")
        return True

    def remove_duplicates(self) -> int:
        """
        移除重复条目

        保留每个 (id, name) 键的第一次出现。当前索引减去它之前被移除的条目数；
        如果当前条目本身是重复项，当前索引改为指向保留下来的第一次出现。

        Returns:
            移除的条目数量
        """
        duplicates = self._duplicate_detector.find_duplicate_indices(self._entries)
        if not duplicates:
            return 0

        current = self._current_index
        if current in duplicates:
            # 当前曲目的身份由保留的第一次出现代表
            current = duplicates[current]

        removed_before = sum(1 for index in duplicates if index < current)

        self._entries = [
            entry for index, entry in enumerate(self._entries)
            if index not in duplicates
        ]

        if current >= 0:
            self._current_index = max(0, current - removed_before) if self._entries else -1

        self._mark_dirty()
        self.logger.info(f"移除了 {len(duplicates)} 个重复条目，当前索引 {self._current_index}")
        return len(duplicates)

    def set_repeat_mode(self, mode: Union[RepeatMode, str]) -> RepeatMode:
        """
        设置重复模式

        Returns:
            生效的重复模式；无效的值不会改变当前模式
        """
        try:
            mode = RepeatMode(mode)
        except ValueError:
            self.logger.warning(f"未知的重复模式: {mode!r}")
            return self._repeat_mode

        if mode != self._repeat_mode:
            self._repeat_mode = mode
            self._mark_dirty()
            self.logger.info(f"重复模式: {mode.value}")
        return mode

    def set_shuffle_mode(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if enabled != self._shuffle_mode:
            self._shuffle_mode = enabled
            self._mark_dirty()
            self.logger.info(f"随机模式: {'开启' if enabled else '关闭'}")

    def set_playing(self, is_playing: bool) -> None:
        """镜像播放引擎的播放状态（瞬态，不触发持久化）"""
        self._is_playing = bool(is_playing)

    # ------------------------------------------------------------------
    # 持久化
    # ------------------------------------------------------------------

    def snapshot(self) -> QueueSnapshot:
        """获取当前状态的快照"""
        return QueueSnapshot(
            entries=list(self._entries),
            current_index=self._current_index,
            repeat_mode=self._repeat_mode,
            shuffle_mode=self._shuffle_mode
        )

    def restore(self, snapshot: QueueSnapshot) -> None:
        """
        从快照恢复状态

        快照中越界的当前索引会被限制到有效范围。
        """
        self._entries = list(snapshot.entries)
        self._current_index = max(-1, min(snapshot.current_index, len(self._entries) - 1))
        self._repeat_mode = snapshot.repeat_mode
        self._shuffle_mode = snapshot.shuffle_mode
        self._dirty = False

        if self._current_index != snapshot.current_index:
            self.logger.warning(
                f"快照中的当前索引 {snapshot.current_index} 无效，已限制为 {self._current_index}"
            )

    async def load_from_persistence(self) -> bool:
        """
        从持久化存储恢复队列

        加载失败时保持空队列。

        Returns:
            是否恢复了快照
        """
        if not self._persistence_manager:
            return False

        try:
            snapshot = await self._persistence_manager.load()
        except Exception as e:
            self.logger.error(f"加载队列快照失败: {e}")
            snapshot = None

        if snapshot is None:
            self.logger.info("没有可恢复的队列，使用空队列")
            return False

        self.restore(snapshot)
        self.logger.info(
            f"✅ 队列恢复完成 - {len(self._entries)} 个条目, 当前索引 {self._current_index}"
        )
        return True

    async def commit(self) -> bool:
        """
        提交未持久化的变更

        保存失败时内存中的变更仍然有效，并保留脏标记以便下次提交重试。

        Returns:
            是否有变更被成功保存
        """
        if not self._dirty or not self._persistence_manager:
            return False

        try:
            saved = await self._persistence_manager.save(self.snapshot())
        except Exception as e:
            self.logger.error(f"保存队列状态失败: {e}")
            saved = False

        if saved:
            self._dirty = False
        else:
            self.logger.warning("队列状态未能保存，将在下次提交时重试")
        return saved
