"""
持久化管理器 - 处理队列快照的持久化存储

负责将队列快照保存到磁盘并在启动时恢复。
使用JSON格式存储，读写失败只记录日志，不会向调用方抛出异常。
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from nextqueue.core.interfaces import IPersistenceManager
from .track import QueueSnapshot


class PersistenceManager(IPersistenceManager):
    """
    持久化管理器实现

    每个存储键对应一个JSON文件。写入在线程池中执行，
    并由保存锁串行化，后一次写入总是覆盖前一次。
    """

    def __init__(self, data_dir: str = "data", storage_key: str = "nextsound-queue"):
        """
        初始化持久化管理器

        Args:
            data_dir: 数据存储目录
            storage_key: 存储键，决定快照文件名
        """
        self.logger = logging.getLogger("nextqueue.queue.persistence")
        self.data_dir = Path(data_dir)
        self.queues_dir = self.data_dir / "queues"
        self.storage_key = storage_key

        # 创建必要的目录
        self._ensure_directories()

        # 保存锁，防止并发写入
        self._save_lock = asyncio.Lock()

        self.logger.info(f"持久化管理器初始化完成 - 数据目录: {self.data_dir}, 存储键: {storage_key}")

    def _ensure_directories(self) -> bool:
        """
        确保所有必要的目录存在

        创建失败时队列仍然可以在内存中使用，之后的保存会失败并保持脏标记。

        Returns:
            目录是否可用
        """
        try:
            self.queues_dir.mkdir(parents=True, exist_ok=True)
            self.logger.debug("持久化目录创建完成")
            return True
        except OSError as e:
            self.logger.error(f"创建持久化目录失败: {e}，队列将不会被保存")
            return False

    @property
    def file_path(self) -> Path:
        """获取快照文件路径"""
        return self.queues_dir / f"{self.storage_key}.json"

    async def save(self, snapshot: QueueSnapshot) -> bool:
        """
        保存队列快照到磁盘

        Args:
            snapshot: 队列快照

        Returns:
            保存是否成功
        """
        async with self._save_lock:
            try:
                save_data = snapshot.to_dict()
                save_data["last_updated"] = datetime.now().isoformat()

                file_path = self.file_path
                temp_path = file_path.with_suffix(".json.tmp")

                def write_file():
                    with open(temp_path, 'w', encoding='utf-8') as f:
                        json.dump(save_data, f, ensure_ascii=False, indent=2)
                    os.replace(temp_path, file_path)

                # 在线程池中执行文件写入
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, write_file)

                self.logger.debug(
                    f"队列快照保存成功 - 条目数: {len(snapshot.entries)}, 当前索引: {snapshot.current_index}"
                )
                return True

            except Exception as e:
                self.logger.error(f"保存队列快照失败 - {self.storage_key}: {e}")
                return False

    async def load(self) -> Optional[QueueSnapshot]:
        """
        从磁盘加载队列快照

        Returns:
            队列快照，文件不存在或数据无效时返回None
        """
        try:
            file_path = self.file_path
            if not file_path.exists():
                self.logger.debug(f"没有已保存的队列快照 - {self.storage_key}")
                return None

            def read_file():
                with open(file_path, 'r', encoding='utf-8') as f:
                    return json.load(f)

            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, read_file)

            snapshot = QueueSnapshot.from_dict(data)
            self.logger.info(f"队列快照加载成功 - 恢复 {len(snapshot.entries)} 个条目")
            return snapshot

        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"队列快照数据验证失败 - {self.storage_key}: {e}")
            return None
        except Exception as e:
            self.logger.error(f"加载队列快照失败 - {self.storage_key}: {e}")
            return None

    async def delete(self) -> bool:
        """
        删除快照文件

        Returns:
            删除是否成功
        """
        try:
            file_path = self.file_path
            if file_path.exists():
                file_path.unlink()
                self.logger.debug(f"队列快照文件删除成功 - {self.storage_key}")
            return True
        except Exception as e:
            self.logger.error(f"删除队列快照文件失败 - {self.storage_key}: {e}")
            return False

    def get_persistence_stats(self) -> Dict[str, Any]:
        """
        获取持久化系统统计信息

        Returns:
            统计信息字典
        """
        try:
            file_path = self.file_path
            return {
                'persistence_enabled': True,
                'data_directory': str(self.data_dir),
                'storage_key': self.storage_key,
                'snapshot_exists': file_path.exists(),
                'total_size_bytes': file_path.stat().st_size if file_path.exists() else 0
            }
        except Exception as e:
            self.logger.error(f"获取持久化统计信息失败: {e}")
            return {'persistence_enabled': False}


class MemoryPersistenceManager(IPersistenceManager):
    """
    内存持久化管理器

    快照以JSON文本形式保存在内存中，和文件实现经过同样的序列化路径。
    用于测试和不需要跨进程保存的会话。
    """

    def __init__(self):
        self.logger = logging.getLogger("nextqueue.queue.persistence.memory")
        self._payload: Optional[str] = None
        self.save_count = 0

    async def save(self, snapshot: QueueSnapshot) -> bool:
        try:
            self._payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
            self.save_count += 1
            return True
        except Exception as e:
            self.logger.error(f"保存队列快照失败: {e}")
            return False

    async def load(self) -> Optional[QueueSnapshot]:
        if self._payload is None:
            return None
        try:
            return QueueSnapshot.from_dict(json.loads(self._payload))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"队列快照数据验证失败: {e}")
            return None

    async def delete(self) -> bool:
        self._payload = None
        return True
