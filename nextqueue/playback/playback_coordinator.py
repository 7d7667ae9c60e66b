"""
播放协调器 - 队列状态和外部播放引擎之间的协调者

把队列变更和引擎事件翻译为播放引擎命令，
负责自动推进、随机选择和重复模式策略。
每个外部事件在同一把锁内处理，结束时提交一次持久化。
"""

import asyncio
import inspect
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from nextqueue.core.interfaces import IPlaybackEngine
from nextqueue.queue import QueueStore
from nextqueue.queue.track import InsertPosition, QueueEntry, QueueState, RepeatMode, Track
from .playback_event import AdvanceDirection, AdvanceReason, PlaybackEventType
from .shuffle_tracker import ShuffleTracker


class PlaybackCoordinator:
    """
    播放协调器实现

    只通过 QueueStore 的公开操作修改队列，从不直接改写条目或当前索引。
    引擎命令即发即弃，后发出的命令总是生效（"最后命令优先"）。
    """

    def __init__(
        self,
        queue_store: QueueStore,
        playback_engine: IPlaybackEngine,
        config=None,
        shuffle_tracker: Optional[ShuffleTracker] = None
    ):
        """
        初始化播放协调器

        Args:
            queue_store: 队列存储
            playback_engine: 外部播放引擎
            config: 配置管理器（可选）
            shuffle_tracker: 随机播放跟踪器（可选）
        """
        self.logger = logging.getLogger("nextqueue.playback.coordinator")
        self._store = queue_store
        self._engine = playback_engine
        self._config = config

        self._shuffle = shuffle_tracker or ShuffleTracker(self._get_shuffle_history_size())

        # 串行化外部事件
        self._lock = asyncio.Lock()

        # 最近一次由协调器加载到引擎的曲目
        self._loaded_track: Optional[Track] = None
        self._loaded_queue_id: Optional[str] = None

        # 事件处理器
        self._event_handlers: Dict[PlaybackEventType, List[Callable[..., Any]]] = {
            event_type: [] for event_type in PlaybackEventType
        }
        self._pending_events: List[Tuple[PlaybackEventType, Dict[str, Any]]] = []

        self.logger.info("🎵 播放协调器初始化完成")

    # ------------------------------------------------------------------
    # 配置
    # ------------------------------------------------------------------

    def _get_shuffle_history_size(self) -> int:
        """
        获取随机播放历史容量

        Returns:
            历史容量，默认为50
        """
        if self._config is None:
            return 50

        try:
            size = self._config.get('playback.shuffle_history_size', 50)
            if isinstance(size, bool) or not isinstance(size, int) or size < 1:
                self.logger.warning(f"无效的随机播放历史容量配置: {size}，使用默认值50")
                return 50
            return size
        except Exception as e:
            self.logger.warning(f"获取随机播放历史容量配置失败: {e}，使用默认值50")
            return 50

    def _should_continue_on_current_removal(self) -> bool:
        if self._config is None:
            return True
        return bool(self._config.get('playback.continue_on_current_removal', True))

    def _get_default_volume(self) -> Optional[float]:
        if self._config is None:
            return None

        volume = self._config.get('playback.default_volume', None)
        if volume is None:
            return None
        if isinstance(volume, bool) or not isinstance(volume, (int, float)) or not 0 <= volume <= 1:
            self.logger.warning(f"无效的默认音量配置: {volume}，忽略")
            return None
        return float(volume)

    # ------------------------------------------------------------------
    # 事件
    # ------------------------------------------------------------------

    def add_event_handler(self, event_type: Union[PlaybackEventType, str], handler: Callable[..., Any]) -> None:
        """
        添加事件处理器

        Args:
            event_type: 事件类型
            handler: 事件处理函数（普通函数或协程函数）
        """
        try:
            event_type = PlaybackEventType(event_type)
        except ValueError:
            self.logger.warning(f"未知事件类型: {event_type}")
            return

        self._event_handlers[event_type].append(handler)
        self.logger.debug(f"添加事件处理器: {event_type.value}")

    def _queue_event(self, event_type: PlaybackEventType, **kwargs) -> None:
        self._pending_events.append((event_type, kwargs))

    def _queue_state_change(self, before: QueueState) -> None:
        """队列状态（包括模式和播放标志）变化时发布 queue_changed"""
        state = self._store.get_state()
        if state != before:
            self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=state)

    async def _flush_events(self) -> None:
        """在释放锁之后分发事件，处理器可以安全地调用协调器"""
        while self._pending_events:
            event_type, kwargs = self._pending_events.pop(0)
            await self._trigger_event(event_type, **kwargs)

    async def _trigger_event(self, event_type: PlaybackEventType, **kwargs) -> None:
        """
        触发播放事件

        Args:
            event_type: 事件类型
            **kwargs: 事件关键字参数
        """
        for handler in self._event_handlers[event_type]:
            try:
                result = handler(**kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                name = getattr(handler, "__name__", repr(handler))
                self.logger.error(f"事件处理器 {name} 处理 {event_type.value} 时出错: {e}")

    # ------------------------------------------------------------------
    # 引擎命令
    # ------------------------------------------------------------------

    def _send(self, command: str, *args) -> bool:
        """
        发送引擎命令

        引擎失败不重试，由用户的下一次操作恢复。

        Returns:
            命令是否成功发出
        """
        try:
            getattr(self._engine, command)(*args)
            return True
        except Exception as e:
            self.logger.error(f"播放引擎命令失败 - {command}: {e}")
            self._queue_event(PlaybackEventType.PLAYBACK_ERROR, command=command, error=e)
            return False

    def _load(self, track: Track, queue_id: Optional[str]) -> bool:
        self._loaded_track = track
        self._loaded_queue_id = queue_id
        if self._send("load_and_play", track):
            self._store.set_playing(True)
            self.logger.info(f"▶️ 播放: {track.display_title}")
            return True
        self._store.set_playing(False)
        return False

    def _pause_engine(self) -> None:
        if self._send("pause"):
            self._store.set_playing(False)

    def _engine_is_playing(self) -> bool:
        try:
            return bool(self._engine.is_playing())
        except Exception as e:
            self.logger.debug(f"读取引擎播放状态失败: {e}，使用镜像状态")
            return self._store.is_playing

    # ------------------------------------------------------------------
    # 选择和播放
    # ------------------------------------------------------------------

    def _select_index(self, index: int, record_history: bool = True) -> Optional[QueueEntry]:
        """设置当前索引并更新随机播放记录"""
        previous = self._store.get_current_entry()
        applied = self._store.set_current_index(index)
        entry = self._store.get_entry(applied)
        if entry is None:
            return None

        if self._store.shuffle_mode:
            if record_history and previous and previous.queue_id != entry.queue_id:
                self._shuffle.push_history(previous.queue_id)
            self._shuffle.mark_played(entry.queue_id)
        return entry

    def _play_index(self, index: int, record_history: bool = True) -> Optional[QueueEntry]:
        entry = self._select_index(index, record_history)
        if entry is None:
            return None

        self._load(entry.track, entry.queue_id)
        self._queue_event(
            PlaybackEventType.TRACK_CHANGED,
            track=entry.track, entry=entry, index=self._store.current_index
        )
        return entry

    def _resolve_sequential_target(self, direction: AdvanceDirection) -> Optional[int]:
        current = self._store.current_index
        repeat_all = self._store.repeat_mode == RepeatMode.ALL

        if direction == AdvanceDirection.NEXT:
            if self._store.get_next_track() is not None:
                return current + 1
            return 0 if repeat_all else None

        if self._store.get_previous_track() is not None:
            return current - 1
        return self._store.length - 1 if repeat_all else None

    def _resolve_shuffle_target(self, direction: AdvanceDirection) -> Tuple[Optional[int], bool]:
        """
        随机模式下解析目标索引

        Returns:
            (目标索引, 是否记录历史)
        """
        queue_ids = [entry.queue_id for entry in self._store.get_entries()]
        current = self._store.get_current_entry()
        current_id = current.queue_id if current else None

        if direction == AdvanceDirection.PREVIOUS:
            queue_id = self._shuffle.pop_history(queue_ids)
            if queue_id is None:
                self.logger.debug("随机播放历史为空，按顺序回到上一首")
                return self._resolve_sequential_target(direction), True
            return self._store.find_index(queue_id), False

        queue_id = self._shuffle.pick_next(queue_ids, current_id)
        if queue_id is None:
            self._shuffle.start_new_round(current_id)
            if self._store.repeat_mode != RepeatMode.ALL:
                return None, True
            # 只有一个条目时重播它
            queue_id = self._shuffle.pick_next(queue_ids, current_id) or current_id

        if queue_id is None:
            return None, True
        return self._store.find_index(queue_id), True

    def _advance_locked(self, direction: AdvanceDirection, reason: AdvanceReason) -> Optional[QueueEntry]:
        if self._store.is_empty:
            self.logger.debug("队列为空，忽略推进")
            return None

        current = self._store.get_current_entry()
        if (reason == AdvanceReason.TRACK_ENDED
                and self._store.repeat_mode == RepeatMode.ONE
                and current is not None):
            self.logger.debug(f"单曲重复: {current.track.display_title}")
            return self._play_index(self._store.current_index, record_history=False)

        if self._store.shuffle_mode:
            target, record_history = self._resolve_shuffle_target(direction)
        else:
            target, record_history = self._resolve_sequential_target(direction), True

        if target is None:
            self.logger.info(f"到达队列边界 ({direction.value})，停止推进")
            if reason == AdvanceReason.TRACK_ENDED:
                self._store.set_playing(False)
            if direction == AdvanceDirection.NEXT:
                self._queue_event(PlaybackEventType.QUEUE_FINISHED, reason=reason)
            return None

        return self._play_index(target, record_history)

    # ------------------------------------------------------------------
    # 公开操作
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        从持久化存储恢复队列并应用默认音量

        Returns:
            是否恢复了已保存的队列
        """
        async with self._lock:
            restored = await self._store.load_from_persistence()

            current = self._store.get_current_entry()
            if self._store.shuffle_mode and current:
                self._shuffle.mark_played(current.queue_id)

            volume = self._get_default_volume()
            if volume is not None:
                self._send("set_volume", volume)

        await self._flush_events()
        return restored

    def get_state(self) -> QueueState:
        """获取提供给 UI 的只读队列状态"""
        return self._store.get_state()

    async def advance(
        self,
        direction: Union[AdvanceDirection, str] = AdvanceDirection.NEXT,
        reason: Union[AdvanceReason, str] = AdvanceReason.MANUAL
    ) -> Optional[QueueEntry]:
        """
        按方向推进队列并播放

        Args:
            direction: 推进方向
            reason: 推进原因（手动或自然结束）

        Returns:
            开始播放的条目，没有推进时返回None
        """
        try:
            direction = AdvanceDirection(direction)
            reason = AdvanceReason(reason)
        except ValueError as e:
            self.logger.warning(f"忽略无效的推进请求: {e}")
            return None

        async with self._lock:
            entry = self._advance_locked(direction, reason)
            await self._store.commit()
        await self._flush_events()
        return entry

    async def skip_next(self) -> Optional[QueueEntry]:
        return await self.advance(AdvanceDirection.NEXT, AdvanceReason.MANUAL)

    async def skip_previous(self) -> Optional[QueueEntry]:
        return await self.advance(AdvanceDirection.PREVIOUS, AdvanceReason.MANUAL)

    async def on_skip_requested(self) -> Optional[QueueEntry]:
        """引擎或外部控件请求跳过"""
        return await self.skip_next()

    async def on_engine_track_ended(self) -> Optional[QueueEntry]:
        """
        引擎报告媒体自然结束

        只能由引擎的结束通知调用，暂停不会走到这里。
        """
        self.logger.debug("引擎报告曲目播放结束")
        return await self.advance(AdvanceDirection.NEXT, AdvanceReason.TRACK_ENDED)

    async def on_engine_state_changed(self, is_playing: bool) -> None:
        """镜像引擎的播放状态（不持久化）"""
        async with self._lock:
            before = self._store.get_state()
            self._store.set_playing(is_playing)
            self._queue_state_change(before)
        await self._flush_events()

    async def play_track_now(self, track: Track) -> Optional[QueueEntry]:
        """
        立即播放曲目

        按曲目ID查找队列位置，找到时设为当前曲目；无论是否在队列中都会加载播放。
        连续调用会发出多次加载命令，不做去重。

        Args:
            track: 曲目

        Returns:
            对应的队列条目，不在队列中时返回None
        """
        async with self._lock:
            index = self._store.index_of_track(track.id)
            entry = self._select_index(index) if index != -1 else None
            if entry is None:
                self.logger.debug(f"曲目不在队列中，直接播放: {track.display_title}")

            self._load(track, entry.queue_id if entry else None)
            self._queue_event(
                PlaybackEventType.TRACK_CHANGED,
                track=track, entry=entry, index=self._store.current_index if entry else -1
            )
            await self._store.commit()
        await self._flush_events()
        return entry

    async def play_entry(self, queue_id: str) -> Optional[QueueEntry]:
        """
        播放队列中的指定条目

        Returns:
            开始播放的条目，条目不存在时返回None
        """
        async with self._lock:
            index = self._store.find_index(queue_id)
            entry = self._play_index(index) if index != -1 else None
            if entry is None:
                self.logger.debug(f"条目不存在，忽略播放: {queue_id}")
            await self._store.commit()
        await self._flush_events()
        return entry

    async def add_track(self, track: Track, position: Union[InsertPosition, str] = InsertPosition.END) -> str:
        """
        添加曲目到队列

        Returns:
            新条目的队列ID
        """
        async with self._lock:
            queue_id = self._store.add_to_queue(track, position)
            self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return queue_id

    def _handle_current_removed(self, removed_index: int) -> None:
        """
        当前曲目被移除后决定接下来播放什么

        引擎正在播放时，顺序模式播放滑入原位置的条目，随机模式按随机规则选择；
        没有可播放的条目时暂停引擎。
        """
        if not self._engine_is_playing():
            return

        if self._should_continue_on_current_removal():
            target = None
            if self._store.shuffle_mode:
                # 随机模式下和自动推进一样从本轮未播放的条目中选择
                target, _ = self._resolve_shuffle_target(AdvanceDirection.NEXT)
            elif self._store.get_entry(removed_index) is not None:
                target = removed_index
            elif self._store.repeat_mode == RepeatMode.ALL and not self._store.is_empty:
                target = 0

            if target is not None:
                self._play_index(target, record_history=False)
                return

        self.logger.info("当前曲目已移除，暂停播放")
        self._pause_engine()

    async def remove_entry(self, queue_id: str) -> bool:
        """
        从队列中移除条目

        Returns:
            是否移除了条目
        """
        async with self._lock:
            index = self._store.find_index(queue_id)
            was_current = index != -1 and index == self._store.current_index
            removed = self._store.remove_from_queue(queue_id)

            if removed:
                if was_current:
                    self._handle_current_removed(index)
                self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return removed

    async def reorder(self, from_index: int, to_index: int) -> bool:
        """
        重排队列（拖放的结果）

        Returns:
            是否执行了移动
        """
        async with self._lock:
            moved = self._store.reorder_queue(from_index, to_index)
            if moved:
                self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return moved

    async def move_to_top(self, queue_id: str) -> bool:
        async with self._lock:
            moved = self._store.move_to_top(queue_id)
            if moved:
                self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return moved

    async def remove_duplicates(self) -> int:
        """
        移除重复条目

        Returns:
            移除的条目数量
        """
        async with self._lock:
            removed = self._store.remove_duplicates()
            if removed:
                self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return removed

    async def clear_queue(self) -> int:
        """
        清空队列并停止播放

        Returns:
            清除的条目数量
        """
        async with self._lock:
            if self._store.is_empty:
                return 0

            if self._engine_is_playing():
                self._pause_engine()

            cleared = self._store.clear_queue()
            self._shuffle.reset()
            self._loaded_track = None
            self._loaded_queue_id = None
            self._queue_event(PlaybackEventType.QUEUE_CHANGED, state=self._store.get_state())
            await self._store.commit()
        await self._flush_events()
        return cleared

    async def set_repeat_mode(self, mode: Union[RepeatMode, str]) -> RepeatMode:
        async with self._lock:
            before = self._store.get_state()
            applied = self._store.set_repeat_mode(mode)
            self._queue_state_change(before)
            await self._store.commit()
        await self._flush_events()
        return applied

    async def cycle_repeat_mode(self) -> RepeatMode:
        """按 none -> all -> one 的顺序切换重复模式"""
        async with self._lock:
            before = self._store.get_state()
            applied = self._store.set_repeat_mode(self._store.repeat_mode.cycle())
            self._queue_state_change(before)
            await self._store.commit()
        await self._flush_events()
        return applied

    async def set_shuffle_mode(self, enabled: bool) -> bool:
        """
        设置随机模式

        每次切换都会重置本轮已播放记录和历史。
        """
        async with self._lock:
            before = self._store.get_state()
            if bool(enabled) != self._store.shuffle_mode:
                self._shuffle.reset()
                self._store.set_shuffle_mode(enabled)
                current = self._store.get_current_entry()
                if enabled and current:
                    self._shuffle.mark_played(current.queue_id)
            self._queue_state_change(before)
            await self._store.commit()
        await self._flush_events()
        return self._store.shuffle_mode

    async def toggle_shuffle(self) -> bool:
        return await self.set_shuffle_mode(not self._store.shuffle_mode)

    async def toggle_play(self) -> None:
        """
        播放/暂停切换

        引擎没有加载当前条目时（例如进程重启后）会先加载它。
        """
        async with self._lock:
            before = self._store.get_state()
            current = self._store.get_current_entry()

            if self._engine_is_playing():
                self._pause_engine()
            elif current is not None and current.queue_id == self._loaded_queue_id:
                if self._send("resume"):
                    self._store.set_playing(True)
            elif current is not None:
                self._play_index(self._store.current_index, record_history=False)
            elif self._loaded_track is not None:
                if self._send("resume"):
                    self._store.set_playing(True)
            elif not self._store.is_empty:
                self._play_index(0)
            else:
                self.logger.debug("队列为空，忽略播放/暂停")

            self._queue_state_change(before)
            await self._store.commit()
        await self._flush_events()

    async def pause(self) -> None:
        async with self._lock:
            before = self._store.get_state()
            self._pause_engine()
            self._queue_state_change(before)
        await self._flush_events()

    async def resume(self) -> None:
        async with self._lock:
            before = self._store.get_state()
            if self._send("resume"):
                self._store.set_playing(True)
            self._queue_state_change(before)
        await self._flush_events()

    async def seek(self, position_ms: int) -> None:
        """定位到指定位置，负值按0处理，无效值被忽略"""
        try:
            position_ms = max(0, int(position_ms))
        except (TypeError, ValueError, OverflowError):
            self.logger.warning(f"忽略无效的定位位置: {position_ms!r}")
            return

        async with self._lock:
            self._send("seek", position_ms)
        await self._flush_events()

    async def set_volume(self, level: float) -> Optional[float]:
        """
        设置音量

        Returns:
            限制到 0..1 之后实际发送的音量，无效值返回None
        """
        try:
            level = float(level)
        except (TypeError, ValueError):
            self.logger.warning(f"忽略无效的音量: {level!r}")
            return None
        if math.isnan(level):
            self.logger.warning("忽略无效的音量: nan")
            return None

        level = max(0.0, min(1.0, level))
        async with self._lock:
            self._send("set_volume", level)
        await self._flush_events()
        return level
