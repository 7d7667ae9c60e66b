"""
依赖注入容器 - 显式地组装队列组件

队列存储只有一个实例，由容器创建并注入到播放协调器，
不存在全局可访问的队列单例。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from nextqueue.core.interfaces import IPersistenceManager, IPlaybackEngine


@dataclass
class DependencyRegistration:
    """依赖项注册信息"""
    factory: Callable[..., Any]
    dependencies: List[str]
    instance: Optional[Any] = None
    initialized: bool = False


class DependencyContainer:
    """
    依赖注入容器

    所有依赖项都是单例：第一次解析时按依赖顺序创建，之后返回同一个实例。
    """

    def __init__(self):
        self.logger = logging.getLogger("nextqueue.core.dependency")
        self._registrations: Dict[str, DependencyRegistration] = {}
        self._initializing: set = set()  # 防止循环依赖

    def register(self, name: str, factory: Callable[..., Any], dependencies: Optional[List[str]] = None) -> None:
        """
        注册依赖项

        Args:
            name: 依赖项名称
            factory: 创建实例的工厂函数，参数名与依赖项名称一致
            dependencies: 依赖的其他组件名称列表

        Raises:
            ValueError: 名称已注册
        """
        if name in self._registrations:
            raise ValueError(f"依赖项 '{name}' 已经注册")

        self._registrations[name] = DependencyRegistration(factory=factory, dependencies=dependencies or [])
        self.logger.debug(f"📝 注册依赖项: {name}")

    def register_instance(self, name: str, instance: Any) -> None:
        """注册已经创建好的实例"""
        self.register(name, lambda: instance)

    def is_registered(self, name: str) -> bool:
        return name in self._registrations

    def resolve(self, name: str) -> Any:
        """
        解析依赖项

        Args:
            name: 依赖项名称

        Returns:
            依赖项实例

        Raises:
            ValueError: 依赖项未注册
            RuntimeError: 循环依赖或初始化失败
        """
        if name not in self._registrations:
            raise ValueError(f"依赖项 '{name}' 未注册")

        registration = self._registrations[name]
        if registration.initialized:
            return registration.instance

        if name in self._initializing:
            raise RuntimeError(f"检测到循环依赖: {name}")

        try:
            self._initializing.add(name)
            resolved = {dep_name: self.resolve(dep_name) for dep_name in registration.dependencies}
            registration.instance = registration.factory(**resolved)
            registration.initialized = True
            self.logger.debug(f"✅ 依赖项解析完成: {name}")
            return registration.instance
        except RuntimeError:
            raise
        except Exception as e:
            self.logger.error(f"❌ 依赖项解析失败: {name} - {e}", exc_info=True)
            raise RuntimeError(f"依赖项 '{name}' 解析失败: {e}") from e
        finally:
            self._initializing.discard(name)

    def get_dependency_graph(self) -> Dict[str, List[str]]:
        return {name: list(reg.dependencies) for name, reg in self._registrations.items()}


def create_container(
    config=None,
    playback_engine: Optional[IPlaybackEngine] = None,
    persistence_manager: Optional[IPersistenceManager] = None
) -> DependencyContainer:
    """
    创建并注册所有队列组件

    Args:
        config: 配置管理器（可选）
        playback_engine: 外部播放引擎，默认使用日志播放引擎
        persistence_manager: 持久化管理器，默认按配置创建

    Returns:
        已注册 config、persistence_manager、queue_store、
        playback_engine、playback_coordinator 的容器
    """
    # 延迟导入，避免 core 和 queue/playback 之间的循环导入
    from nextqueue.playback import LoggingPlaybackEngine, PlaybackCoordinator
    from nextqueue.queue import MemoryPersistenceManager, PersistenceManager, QueueStore

    def build_persistence(config):
        if persistence_manager is not None:
            return persistence_manager
        if config is None or not config.is_persistence_enabled():
            return MemoryPersistenceManager()
        return PersistenceManager(data_dir=config.get_data_dir(), storage_key=config.get_storage_key())

    container = DependencyContainer()
    container.register_instance("config", config)
    container.register("persistence_manager", build_persistence, ["config"])
    container.register(
        "queue_store",
        lambda persistence_manager: QueueStore(persistence_manager=persistence_manager),
        ["persistence_manager"]
    )
    container.register_instance("playback_engine", playback_engine or LoggingPlaybackEngine())
    container.register(
        "playback_coordinator",
        lambda queue_store, playback_engine, config: PlaybackCoordinator(queue_store, playback_engine, config),
        ["queue_store", "playback_engine", "config"]
    )
    return container
