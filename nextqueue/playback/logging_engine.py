"""
日志播放引擎 - 不输出音频的播放引擎实现

记录加载的曲目、播放状态、音量和播放位置，并把每个命令写入日志。
用于命令行工具和没有真实音频输出的环境。
"""

import logging
import time
from typing import Optional

from nextqueue.core.interfaces import IPlaybackEngine
from nextqueue.queue.track import Track


class LoggingPlaybackEngine(IPlaybackEngine):
    """
    日志播放引擎

    播放位置按墙上时间推算，并扣除暂停时长。
    """

    def __init__(self):
        self.logger = logging.getLogger("nextqueue.playback.logging_engine")

        self.current_track: Optional[Track] = None
        self.volume = 1.0

        # 播放时间跟踪
        self._playing = False
        self._start_time: Optional[float] = None
        self._paused_time: Optional[float] = None
        self._total_paused_duration = 0.0
        self._offset_ms = 0

    def load_and_play(self, track: Track) -> None:
        self.current_track = track
        self._playing = True
        self._start_time = time.monotonic()
        self._paused_time = None
        self._total_paused_duration = 0.0
        self._offset_ms = 0
        self.logger.info(f"🎶 加载并播放: {track}")

    def pause(self) -> None:
        if not self._playing:
            return
        self._playing = False
        self._paused_time = time.monotonic()
        self.logger.info("⏸️ 暂停")

    def resume(self) -> None:
        if self._playing or self.current_track is None:
            return
        if self._paused_time is not None:
            self._total_paused_duration += time.monotonic() - self._paused_time
            self._paused_time = None
        self._playing = True
        self.logger.info("▶️ 恢复播放")

    def seek(self, position_ms: int) -> None:
        if self.current_track is None:
            self.logger.debug("没有加载的曲目，忽略定位")
            return
        now = time.monotonic()
        self._start_time = now
        self._paused_time = None if self._playing else now
        self._total_paused_duration = 0.0
        self._offset_ms = max(0, int(position_ms))
        self.logger.info(f"⏩ 定位到 {self._offset_ms} 毫秒")

    def set_volume(self, level: float) -> None:
        self.volume = max(0.0, min(1.0, float(level)))
        self.logger.info(f"🔊 音量: {self.volume:.2f}")

    def is_playing(self) -> bool:
        return self._playing

    def get_progress_ms(self) -> int:
        """
        获取当前播放位置

        Returns:
            播放位置（毫秒），没有加载曲目时返回0
        """
        if self._start_time is None:
            return 0

        end = self._paused_time if self._paused_time is not None else time.monotonic()
        elapsed = end - self._start_time - self._total_paused_duration
        progress = self._offset_ms + int(max(0.0, elapsed) * 1000)

        if self.current_track and self.current_track.duration_ms:
            progress = min(progress, self.current_track.duration_ms)
        return progress
