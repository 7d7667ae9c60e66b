"""
配置管理 - 读取 config/config.yaml

点号分隔的键访问嵌套配置，缺失的键返回默认值。
"""
import logging
import os
from typing import Any, Dict, Optional

import yaml


DEFAULT_STORAGE_KEY = "nextsound-queue"


class ConfigManager:
    """
    YAML 配置管理器

    文件不存在或无法解析时在构造阶段失败，单个配置值无效时回退到默认值。
    """

    def __init__(self, config_path: str = "config/config.yaml"):
        """
        Args:
            config_path: 配置文件路径

        Raises:
            FileNotFoundError: 配置文件不存在
            yaml.YAMLError: 配置文件不是有效的 YAML
        """
        self.logger = logging.getLogger("nextqueue.config")
        self.config_path = config_path
        self.config: Dict[str, Any] = self._read(config_path)

    def _read(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            hint = f"{path}.example"
            if os.path.exists(hint):
                self.logger.error(f"配置文件 {path} 不存在，请从 {hint} 复制一份")
            else:
                self.logger.error(f"配置文件 {path} 不存在")
            raise FileNotFoundError(f"Configuration file {path} not found")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                # 空文件解析为 None
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.error(f"配置文件解析失败: {e}")
            raise

        self.logger.debug(f"已加载配置: {path}")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """
        读取配置值

        Args:
            key: 点号分隔的键，例如 "playback.default_volume"
            default: 键不存在时的返回值
        """
        node: Any = self.config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # 日志
    def get_log_level(self) -> str:
        return self.get('logging.level', 'INFO')

    def get_log_file(self) -> Optional[str]:
        return self.get('logging.file')

    def get_log_max_size(self) -> int:
        return self.get('logging.max_size', 10 * 1024 * 1024)

    def get_log_backup_count(self) -> int:
        return self.get('logging.backup_count', 5)

    # 持久化
    def is_persistence_enabled(self) -> bool:
        """关闭时队列只保存在内存中"""
        return bool(self.get('persistence.enabled', True))

    def get_data_dir(self) -> str:
        return self.get('persistence.data_dir', 'data')

    def get_storage_key(self) -> str:
        """
        获取存储键，用作快照文件名

        Returns:
            去掉首尾空白的存储键，无效时返回默认值
        """
        key = self.get('persistence.storage_key', DEFAULT_STORAGE_KEY)
        if not isinstance(key, str) or not key.strip():
            self.logger.warning(f"无效的存储键 {key!r}，使用默认值 {DEFAULT_STORAGE_KEY}")
            return DEFAULT_STORAGE_KEY
        return key.strip()
