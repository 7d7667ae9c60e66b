"""
随机播放跟踪器 - 记录随机模式下已播放的条目和播放历史

已播放集合和历史栈都按队列条目ID记录，
队列的插入、移除和重排不会使记录失效。
"""

import logging
import random
from collections import deque
from typing import Deque, Iterable, Optional, Set


class ShuffleTracker:
    """
    随机播放跟踪器

    - 已播放集合：本轮随机播放中已经播放过的条目，耗尽后重置
    - 历史栈：最近播放的条目，用于随机模式下的"上一首"
    """

    def __init__(self, history_size: int = 50, rng: Optional[random.Random] = None):
        """
        初始化随机播放跟踪器

        Args:
            history_size: 历史栈容量（至少为1）
            rng: 随机数生成器（可选，便于测试时固定种子）
        """
        self.logger = logging.getLogger("nextqueue.playback.shuffle")
        self._rng = rng or random.Random()
        self._consumed: Set[str] = set()
        self._history: Deque[str] = deque(maxlen=max(1, history_size))

    @property
    def history_size(self) -> int:
        return self._history.maxlen

    @property
    def consumed(self) -> Set[str]:
        return set(self._consumed)

    @property
    def history(self) -> list:
        return list(self._history)

    def mark_played(self, queue_id: str) -> None:
        """记录条目已在本轮播放"""
        self._consumed.add(queue_id)

    def push_history(self, queue_id: str) -> None:
        """把离开的条目压入历史栈"""
        if self._history and self._history[-1] == queue_id:
            return
        self._history.append(queue_id)

    def pop_history(self, valid_ids: Iterable[str]) -> Optional[str]:
        """
        弹出最近播放且仍在队列中的条目

        Args:
            valid_ids: 当前队列中的所有条目ID

        Returns:
            条目ID，历史为空时返回None
        """
        valid = set(valid_ids)
        while self._history:
            queue_id = self._history.pop()
            if queue_id in valid:
                return queue_id
            self.logger.debug(f"历史条目已不在队列中，跳过: {queue_id}")
        return None

    def pick_next(self, candidate_ids: Iterable[str], current_id: Optional[str] = None) -> Optional[str]:
        """
        从本轮未播放的条目中均匀随机选择一个

        Args:
            candidate_ids: 当前队列中的所有条目ID
            current_id: 当前条目ID（不会被选中）

        Returns:
            条目ID，本轮已耗尽时返回None
        """
        candidates = list(candidate_ids)
        # 已移出队列的条目不再计入本轮
        self._consumed.intersection_update(candidates)
        remaining = [
            queue_id for queue_id in candidates
            if queue_id not in self._consumed and queue_id != current_id
        ]
        if not remaining:
            return None
        return self._rng.choice(remaining)

    def start_new_round(self, current_id: Optional[str] = None) -> None:
        """
        重置已播放集合，开始新一轮

        当前条目仍记为已播放，新一轮不会立刻重复它。
        """
        self._consumed.clear()
        if current_id:
            self._consumed.add(current_id)
        self.logger.debug("随机播放本轮已耗尽，开始新一轮")

    def reset(self) -> None:
        """清空已播放集合和历史（关闭随机模式时调用）"""
        self._consumed.clear()
        self._history.clear()
