"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord Redis 锁存储模块

- SET NX PX 获取锁，这是整个系统唯一的互斥点
- Lua 脚本校验 token 后释放或延长锁
"""

import logging

from redis_coord.core.scripts import LuaScript
from redis_coord.lock.base import BaseLockStore
from redis_coord.lock.scripts import EXTEND_LOCK_SCRIPT, RELEASE_LOCK_SCRIPT
from redis_coord.types import RedisClientProtocol

logger = logging.getLogger(__name__)


class RedisLockStore(BaseLockStore):
    """
    基于 Redis 的锁存储

    存储层不捕获 redis 异常，由服务层转换为锁异常。

    Attributes:
        client: Redis 客户端

    Example:
        >>> store = RedisLockStore(redis.Redis(decode_responses=True))
        >>> store.load_scripts()
        >>> store.acquire("_lock:order:1", "token", 30000)
        True
        >>> store.release("_lock:order:1", "token")
        True
    """

    def __init__(self, client: RedisClientProtocol):
        """
        初始化锁存储

        Args:
            client: Redis 客户端实例
        """
        self.client = client
        self._release_script = LuaScript(client, RELEASE_LOCK_SCRIPT, name="lock_release")
        self._extend_script = LuaScript(client, EXTEND_LOCK_SCRIPT, name="lock_extend")

    def load_scripts(self) -> None:
        """预加载释放/延长脚本并缓存 SHA"""
        self._release_script.load()
        self._extend_script.load()

    def acquire(self, key: str, token: str, ttl: int) -> bool:
        return bool(self.client.set(key, token, nx=True, px=int(ttl)))

    def release(self, key: str, token: str) -> bool:
        result = self._release_script(keys=[key], args=[token])
        return int(result or 0) == 1

    def extend(self, key: str, token: str, ttl: int) -> bool:
        result = self._extend_script(keys=[key], args=[token, int(ttl)])
        return int(result or 0) == 1

    def exists(self, key: str) -> bool:
        return self.client.exists(key) > 0

    def is_held_by(self, key: str, token: str) -> bool:
        value = self.client.get(key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value == token

    def force_release(self, key: str) -> bool:
        deleted = self.client.delete(key) > 0
        if deleted:
            logger.warning(f"Force released lock: {key}")
        return deleted
