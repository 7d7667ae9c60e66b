"""
核心接口定义 - 定义系统各模块间的抽象接口

提供依赖倒置的基础，队列核心只依赖这些接口，
不依赖具体的存储实现和播放引擎实现。
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from nextqueue.queue.track import QueueSnapshot, Track


class IPersistenceManager(ABC):
    """持久化管理器接口 - 队列快照的读写，不包含业务逻辑"""

    @abstractmethod
    async def load(self) -> Optional["QueueSnapshot"]:
        """加载队列快照，不存在或无效时返回None"""
        pass

    @abstractmethod
    async def save(self, snapshot: "QueueSnapshot") -> bool:
        """保存队列快照"""
        pass

    @abstractmethod
    async def delete(self) -> bool:
        """删除已保存的队列快照"""
        pass


class IPlaybackEngine(ABC):
    """
    播放引擎接口 - 外部音频引擎需要提供的命令

    所有命令都是即发即弃的，协调器不会等待引擎完成。
    引擎在媒体自然结束时回调协调器的 on_engine_track_ended()，
    暂停不能触发该回调。
    """

    @abstractmethod
    def load_and_play(self, track: "Track") -> None:
        """加载并播放曲目，取代任何正在进行的加载"""
        pass

    @abstractmethod
    def pause(self) -> None:
        """暂停播放"""
        pass

    @abstractmethod
    def resume(self) -> None:
        """恢复播放"""
        pass

    @abstractmethod
    def seek(self, position_ms: int) -> None:
        """定位到指定位置（毫秒）"""
        pass

    @abstractmethod
    def set_volume(self, level: float) -> None:
        """设置音量 (0..1)"""
        pass

    @abstractmethod
    def is_playing(self) -> bool:
        """检查是否正在播放"""
        pass

    @abstractmethod
    def get_progress_ms(self) -> int:
        """获取当前播放位置（毫秒）"""
        pass
