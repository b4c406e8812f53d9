"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 异常定义模块

分布式锁与限流器共用的异常层次结构。
服务边界之外只会出现这里定义的异常，底层 redis 异常通过 __cause__ 保留。
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from redis_coord.types import RateLimitResult


class RedisCoordError(Exception):
    """
    redis-coord 基础异常

    所有 redis-coord 相关异常的基类
    """

    pass


# =============================================================================
# 配置相关异常
# =============================================================================


class ConfigurationError(RedisCoordError):
    """
    配置相关错误

    当配置无效、缺失或格式错误时抛出
    """

    pass


class InvalidConfigError(ConfigurationError):
    """配置值无效"""

    def __init__(self, key: str, value: Any, reason: str = None):
        self.key = key
        self.value = value
        self.reason = reason
        msg = f"Invalid configuration for '{key}': {value!r}"
        if reason:
            msg += f", reason: {reason}"
        super().__init__(msg)


class MissingConfigError(ConfigurationError):
    """必需的配置项缺失"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Missing required configuration: {key}")


# =============================================================================
# 锁相关异常
# =============================================================================


class LockError(RedisCoordError):
    """
    锁相关错误

    分布式锁操作失败时抛出
    """

    def __init__(self, message: str, lock_key: str = None):
        self.lock_key = lock_key
        super().__init__(message)


class LockAcquisitionError(LockError):
    """
    获取锁失败

    reason 取值：
    - timeout: 重试次数耗尽仍未获取
    - held: 锁被其他持有者占用
    - error: 存储调用本身失败
    """

    REASONS = ("timeout", "held", "error")

    def __init__(self, lock_key: str, reason: str = "timeout", timeout: float = None):
        self.reason = reason
        self.timeout = timeout
        msg = f"Failed to acquire lock '{lock_key}': {reason}"
        if timeout:
            msg += f" (waited {timeout:.0f}ms)"
        super().__init__(msg, lock_key)


class LockNotOwnedError(LockError):
    """
    锁不属于当前 token

    释放或延长锁时 token 不匹配，或锁已被释放
    """

    def __init__(self, lock_key: str, token: str):
        self.token = token
        super().__init__(f"Lock '{lock_key}' not owned by token '{token}'", lock_key)


class LockExtensionError(LockError):
    """延长锁时间失败（锁已丢失或已过期）"""

    def __init__(self, lock_key: str, token: str, reason: str = None):
        self.token = token
        self.reason = reason
        msg = f"Failed to extend lock '{lock_key}'"
        if reason:
            msg += f", reason: {reason}"
        super().__init__(msg, lock_key)


class LockReleaseError(LockError):
    """
    释放锁失败

    存储调用失败导致无法确认释放结果时抛出，锁对象保持未释放状态以便重试
    """

    def __init__(self, lock_key: str, reason: str = None):
        self.reason = reason
        msg = f"Failed to release lock '{lock_key}'"
        if reason:
            msg += f", reason: {reason}"
        super().__init__(msg, lock_key)


# =============================================================================
# 限流相关异常
# =============================================================================


class RateLimitError(RedisCoordError):
    """限流相关错误"""

    def __init__(self, message: str, result: "RateLimitResult" = None):
        self.result = result
        super().__init__(message)


class RateLimitExceededError(RateLimitError):
    """
    超出限流

    携带完整的限流结果，便于调用方构造响应头或重试提示
    """

    def __init__(self, key: str, result: "RateLimitResult"):
        self.key = key
        msg = f"Rate limit exceeded for '{key}': {result.current}/{result.limit}"
        if result.retry_after is not None:
            msg += f", retry after {result.retry_after}s"
        super().__init__(msg, result)

    @property
    def retry_after(self) -> int:
        """距离可重试的秒数"""
        if self.result is None or self.result.retry_after is None:
            return 0
        return self.result.retry_after


class RateLimitScriptError(RateLimitError):
    """
    限流脚本执行失败

    表示存储或网络故障，与"超出限流"区分
    """

    def __init__(self, message: str):
        super().__init__(message)
