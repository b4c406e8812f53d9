"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 分布式锁基础模块

定义锁存储的接口
"""

from abc import ABC, abstractmethod


class BaseLockStore(ABC):
    """
    锁存储基类

    锁的全部原子操作都委托给存储实现，服务与锁对象只依赖此接口。
    所有键均为带前缀的完整键，TTL 单位为毫秒。

    Example:
        >>> class MemoryLockStore(BaseLockStore):
        ...     def acquire(self, key, token, ttl):
        ...         # 仅当键不存在时写入
        ...         pass
    """

    def load_scripts(self) -> None:
        """预加载存储所需的脚本，默认无操作"""

    @abstractmethod
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        """
        仅当键不存在时写入 token 并设置过期时间

        Returns:
            是否成功获取
        """
        pass

    @abstractmethod
    def release(self, key: str, token: str) -> bool:
        """
        token 匹配时删除锁

        Returns:
            是否成功释放
        """
        pass

    @abstractmethod
    def extend(self, key: str, token: str, ttl: int) -> bool:
        """
        token 匹配时重置锁的过期时间

        Returns:
            是否成功延长
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """锁键是否存在（不区分持有者）"""
        pass

    @abstractmethod
    def is_held_by(self, key: str, token: str) -> bool:
        """锁是否由指定 token 持有"""
        pass

    @abstractmethod
    def force_release(self, key: str) -> bool:
        """不校验持有者直接删除锁"""
        pass
