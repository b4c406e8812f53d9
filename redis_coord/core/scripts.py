# -*- coding: utf-8 -*-
"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord Lua 脚本执行模块

脚本启动时加载一次并缓存 SHA，通过 EVALSHA 执行。
Redis 脚本缓存被清空（重启、SCRIPT FLUSH、故障转移）后自动回退为 EVAL。
"""

import logging
from collections.abc import Sequence
from typing import Any

from redis.exceptions import NoScriptError, RedisError, ResponseError

from redis_coord.types import RedisClientProtocol

logger = logging.getLogger(__name__)


def is_noscript_error(error: Exception) -> bool:
    """
    判断是否为脚本缓存缺失错误

    部分客户端封装不会转换为 NoScriptError，因此同时检查错误信息
    """
    if isinstance(error, NoScriptError):
        return True
    message = str(error)
    return "NOSCRIPT" in message or "No matching script" in message


class LuaScript:
    """
    已缓存的 Lua 脚本

    Attributes:
        client: Redis 客户端
        source: 脚本源码
        name: 脚本名称（用于日志）

    Example:
        >>> script = LuaScript(client, RELEASE_LOCK_SCRIPT, name="release")
        >>> script.load()
        >>> script(keys=["_lock:order"], args=["token"])
        1
    """

    def __init__(
        self, client: RedisClientProtocol, source: str, name: str = "script"
    ):
        self.client = client
        self.source = source
        self.name = name
        self.sha: str | None = None

    def load(self) -> str:
        """
        加载脚本到 Redis 并缓存 SHA

        Returns:
            脚本 SHA1
        """
        self.sha = self.client.script_load(self.source)
        logger.debug(f"Loaded lua script '{self.name}': {self.sha}")
        return self.sha

    def __call__(self, keys: Sequence[str], args: Sequence[Any] = ()) -> Any:
        """
        执行脚本

        Args:
            keys: KEYS 参数
            args: ARGV 参数

        Returns:
            脚本返回值

        Raises:
            redis.RedisError: 除 NOSCRIPT 以外的存储错误原样抛出
        """
        if self.sha is None:
            self.load()

        try:
            return self.client.evalsha(self.sha, len(keys), *keys, *args)
        except ResponseError as e:
            if not is_noscript_error(e):
                raise
            logger.warning(
                f"Lua script '{self.name}' missing from script cache (sha={self.sha}), "
                f"falling back to EVAL"
            )

        result = self.client.eval(self.source, len(keys), *keys, *args)
        self._recache()
        return result

    def _recache(self) -> None:
        """回退执行成功后重新缓存 SHA，失败时清空 SHA 留待下次加载"""
        try:
            self.load()
        except RedisError as e:
            self.sha = None
            logger.warning(f"Failed to re-cache lua script '{self.name}': {e}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, sha={self.sha!r})"
