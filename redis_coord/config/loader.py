# -*- coding: utf-8 -*-
"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 配置加载器模块

提供多种配置加载方式
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from redis_coord.config.schema import RedisCoordConfig
from redis_coord.exceptions import ConfigurationError, MissingConfigError


class ConfigLoader(ABC):
    """
    配置加载器基类

    所有配置加载器必须继承此类。
    """

    @abstractmethod
    def load(self) -> RedisCoordConfig:
        """
        加载配置

        Returns:
            RedisCoordConfig 实例

        Raises:
            ConfigurationError: 加载失败时抛出
        """
        pass

    def load_dict(self) -> dict[str, Any]:
        """
        加载原始配置字典

        只包含该来源实际设置的字段，供 CompositeConfigLoader 合并使用
        """
        return self.load().to_dict()


class DictConfigLoader(ConfigLoader):
    """
    字典配置加载器

    Example:
        >>> loader = DictConfigLoader({"locks": {"default_ttl": 10000}})
        >>> config = loader.load()
    """

    def __init__(self, config: dict[str, Any]):
        self._config = config

    def load(self) -> RedisCoordConfig:
        """加载配置"""
        return RedisCoordConfig.from_dict(self._config)

    def load_dict(self) -> dict[str, Any]:
        return self._config


class YamlConfigLoader(ConfigLoader):
    """
    YAML 配置加载器

    需要安装 pyyaml（pip install redis-coord[yaml]）。

    Example:
        >>> loader = YamlConfigLoader("/path/to/coord.yaml")
        >>> config = loader.load()
    """

    def __init__(self, path: str):
        self._path = Path(path)

    def load(self) -> RedisCoordConfig:
        """加载配置"""
        return RedisCoordConfig.from_dict(self.load_dict())

    def load_dict(self) -> dict[str, Any]:
        """读取并解析 YAML 文件"""
        try:
            import yaml
        except ImportError:
            raise ConfigurationError(
                "pyyaml is required for YAML config. Install with: pip install pyyaml"
            )

        if not self._path.exists():
            raise MissingConfigError(str(self._path))

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to load YAML config: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError("YAML config must be a dictionary")

        return config

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={str(self._path)!r})"


class EnvConfigLoader(ConfigLoader):
    """
    环境变量配置加载器

    环境变量命名规则：
    - REDIS_COORD_LOCKS_{FIELD}: 锁配置，如 REDIS_COORD_LOCKS_DEFAULT_TTL
    - REDIS_COORD_LOCKS_RETRY_{FIELD}: 重试配置，如 REDIS_COORD_LOCKS_RETRY_MAX_RETRIES
    - REDIS_COORD_LOCKS_AUTO_RENEW_{FIELD}: 自动续期配置
    - REDIS_COORD_RATE_LIMIT_{FIELD}: 限流配置，如 REDIS_COORD_RATE_LIMIT_ERROR_POLICY

    Example:
        export REDIS_COORD_LOCKS_KEY_PREFIX=myapp:lock:
        export REDIS_COORD_RATE_LIMIT_DEFAULT_ALGORITHM=token-bucket

        >>> loader = EnvConfigLoader()
        >>> config = loader.load()
    """

    DEFAULT_PREFIX = "REDIS_COORD_"

    # 锁配置下的嵌套分组
    LOCK_GROUPS = ("RETRY_", "AUTO_RENEW_")

    def __init__(self, prefix: str = None):
        self._prefix = prefix or self.DEFAULT_PREFIX

    def load(self) -> RedisCoordConfig:
        """加载配置"""
        return RedisCoordConfig.from_dict(self.load_dict())

    def load_dict(self) -> dict[str, Any]:
        """只收集环境变量中出现的配置项，返回嵌套字典"""
        config: dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self._prefix):
                continue

            field_path = key[len(self._prefix) :]

            if field_path.startswith("LOCKS_"):
                self._parse_locks_config(field_path[6:], value, config)
            elif field_path.startswith("RATE_LIMIT_"):
                section = config.setdefault("rate_limit", {})
                section[field_path[11:].lower()] = self._parse_value(value)

        return config

    def _parse_locks_config(
        self, field_path: str, value: str, config: dict[str, Any]
    ) -> None:
        """解析锁配置，RETRY_/AUTO_RENEW_ 开头的字段放入对应分组"""
        section = config.setdefault("locks", {})
        for group in self.LOCK_GROUPS:
            if field_path.startswith(group):
                group_section = section.setdefault(group[:-1].lower(), {})
                group_section[field_path[len(group) :].lower()] = self._parse_value(
                    value
                )
                return
        section[field_path.lower()] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """
        解析环境变量值

        依次尝试：布尔值、整数、浮点数，都不匹配时保留字符串
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value


class CompositeConfigLoader(ConfigLoader):
    """
    组合配置加载器

    按优先级从多个来源加载配置，后面的覆盖前面的。

    Example:
        >>> loader = CompositeConfigLoader([
        ...     YamlConfigLoader("default.yaml"),
        ...     EnvConfigLoader(),
        ... ])
        >>> config = loader.load()
    """

    def __init__(self, loaders: list[ConfigLoader]):
        """
        初始化加载器

        Args:
            loaders: 配置加载器列表，按优先级从低到高排列
        """
        self._loaders = loaders

    def load(self) -> RedisCoordConfig:
        """加载配置"""
        merged_config: dict[str, Any] = {}

        for loader in self._loaders:
            try:
                config_dict = loader.load_dict()
            except MissingConfigError:
                # 配置文件不存在时跳过
                continue
            except ConfigurationError:
                raise
            except Exception as e:
                raise ConfigurationError(
                    f"Failed to load config from {loader!r}: {e}"
                ) from e
            merged_config = self._deep_merge(merged_config, config_dict)

        return RedisCoordConfig.from_dict(merged_config)

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """深度合并字典"""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def load_config(
    config: dict[str, Any] = None,
    yaml_path: str = None,
    env_prefix: str = None,
) -> RedisCoordConfig:
    """
    便捷配置加载函数

    按以下优先级加载配置（后面的覆盖前面的）：
    1. YAML 文件
    2. 字典配置
    3. 环境变量

    Args:
        config: 字典配置
        yaml_path: YAML 文件路径
        env_prefix: 环境变量前缀

    Returns:
        RedisCoordConfig 实例

    Example:
        >>> config = load_config(
        ...     yaml_path="coord.yaml",
        ...     config={"rate_limit": {"error_policy": "fail-open"}},
        ... )
    """
    loaders: list[ConfigLoader] = []

    if yaml_path:
        loaders.append(YamlConfigLoader(yaml_path))

    if config:
        loaders.append(DictConfigLoader(config))

    if env_prefix is not None or not loaders:
        loaders.append(EnvConfigLoader(env_prefix))

    return CompositeConfigLoader(loaders).load()
