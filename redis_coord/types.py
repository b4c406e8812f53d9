"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 类型定义模块

定义客户端协议、限流结果与调用参数等数据类型
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

# =============================================================================
# 常量
# =============================================================================

FIXED_WINDOW = "fixed-window"
SLIDING_WINDOW = "sliding-window"
TOKEN_BUCKET = "token-bucket"

# 所有限流算法，reset 时需要逐一清理
ALGORITHMS = (FIXED_WINDOW, SLIDING_WINDOW, TOKEN_BUCKET)

FAIL_OPEN = "fail-open"
FAIL_CLOSED = "fail-closed"

ERROR_POLICIES = (FAIL_OPEN, FAIL_CLOSED)


# =============================================================================
# 协议定义
# =============================================================================


@runtime_checkable
class RedisClientProtocol(Protocol):
    """
    Redis 客户端协议

    锁与限流只依赖以下命令，任何 redis-py 兼容客户端均可使用
    """

    def get(self, name: str) -> str | None: ...

    def set(
        self, name: str, value: str, nx: bool = False, px: int = None
    ) -> bool | None: ...

    def delete(self, *names: str) -> int: ...

    def exists(self, *names: str) -> int: ...

    def script_load(self, script: str) -> str: ...

    def evalsha(self, sha: str, numkeys: int, *keys_and_args: Any) -> Any: ...

    def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any: ...

    def zcount(self, name: str, min: Any, max: Any) -> int: ...

    def hmget(self, name: str, keys: list, *args: Any) -> list: ...

    def scan_iter(self, match: str = None, count: int = None) -> Iterator: ...


# =============================================================================
# 数据类型定义
# =============================================================================


@dataclass(frozen=True)
class RateLimitResult:
    """
    限流检查结果

    每次 check/peek 都生成新的结果，客户端不做持久化。

    Attributes:
        allowed: 是否放行
        limit: 窗口内最大请求数（令牌桶为容量）
        remaining: 剩余可用次数（令牌桶为剩余令牌）
        current: 当前计数（令牌桶为当前令牌数）
        reset: 状态重置的绝对时间戳（秒）
        retry_after: 距离可重试的秒数，仅 allowed=False 时有意义
    """

    allowed: bool
    limit: int
    remaining: int
    current: int
    reset: int
    retry_after: int | None = None


@dataclass(frozen=True)
class RateLimitState:
    """
    限流状态（用于监控）

    Attributes:
        current: 当前计数或令牌数
        limit: 上限
        remaining: 剩余次数
        reset_at: 重置时间（UTC）
    """

    current: int
    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitConfig:
    """
    单次调用的限流参数

    未设置的字段在调用时与服务默认值合并。

    Attributes:
        algorithm: 限流算法
        points: 窗口内最大请求数（固定/滑动窗口），令牌桶容量的默认值
        duration: 窗口时长（秒）
        capacity: 令牌桶容量
        refill_rate: 令牌桶每秒补充的令牌数

    Example:
        >>> RateLimitConfig(algorithm="token-bucket", capacity=10, refill_rate=1)
    """

    algorithm: str | None = None
    points: int | None = None
    duration: int | None = None
    capacity: int | None = None
    refill_rate: float | None = None


@dataclass(frozen=True)
class LockOptions:
    """
    单次获取锁的参数

    Attributes:
        ttl: 锁过期时间（毫秒），不超过服务配置的 max_ttl
        auto_renew: 是否自动续期，None 表示使用服务配置
        retry_max_retries: 最大重试次数，None 表示使用服务配置
        retry_initial_delay: 首次重试等待（毫秒），None 表示使用服务配置
    """

    ttl: int | None = None
    auto_renew: bool | None = None
    retry_max_retries: int | None = None
    retry_initial_delay: int | None = None


@dataclass
class RetryPolicy:
    """
    获取锁的重试策略

    第 n 次重试前等待 min(initial_delay * multiplier^(n-1), max_delay) 毫秒。

    Attributes:
        max_retries: 最大重试次数（总尝试次数为 max_retries + 1）
        initial_delay: 首次重试前的等待时间（毫秒）
        max_delay: 单次等待上限（毫秒）
        multiplier: 退避乘数
    """

    max_retries: int = 3
    initial_delay: int = 100
    max_delay: int = 3000
    multiplier: float = 2.0
