"""
测试配置

提供测试所需的fixtures
"""

import os
import sys
from unittest.mock import Mock

import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nextqueue.core.interfaces import IPlaybackEngine
from nextqueue.queue import MemoryPersistenceManager, QueueStore, Track


def make_track(track_id, name=None, **kwargs) -> Track:
    """创建测试曲目，name 默认为 "Track <id>" """
    return Track(id=track_id, name=name if name is not None else f"Track {track_id}", **kwargs)


def make_engine(is_playing: bool = False) -> Mock:
    """创建模拟播放引擎"""
    engine = Mock(spec=IPlaybackEngine)
    engine.is_playing.return_value = is_playing
    engine.get_progress_ms.return_value = 0
    return engine


@pytest.fixture
def persistence():
    """创建内存持久化管理器"""
    return MemoryPersistenceManager()


@pytest.fixture
def queue_store(persistence):
    """创建带内存持久化的队列存储"""
    return QueueStore(persistence_manager=persistence)


@pytest.fixture
def mock_engine():
    """创建模拟播放引擎"""
    return make_engine()
