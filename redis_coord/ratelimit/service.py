"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 限流服务模块

合并单次调用参数与默认配置，分发到对应算法，并按错误策略处理存储故障
"""

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError

from redis_coord.config.schema import RateLimitSettings
from redis_coord.exceptions import (
    InvalidConfigError,
    RateLimitExceededError,
    RateLimitScriptError,
)
from redis_coord.ratelimit.base import BaseRateLimitStore
from redis_coord.ratelimit.store import RedisRateLimitStore
from redis_coord.types import (
    ALGORITHMS,
    FAIL_OPEN,
    FIXED_WINDOW,
    SLIDING_WINDOW,
    TOKEN_BUCKET,
    RateLimitConfig,
    RateLimitResult,
    RateLimitState,
    RedisClientProtocol,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedLimit:
    """与默认值合并后的限流参数"""

    algorithm: str
    points: int
    duration: int
    capacity: int
    refill_rate: float

    @property
    def limit(self) -> int:
        return self.capacity if self.algorithm == TOKEN_BUCKET else self.points

    def store_config(self) -> dict[str, Any]:
        """peek 使用的算法参数"""
        if self.algorithm == TOKEN_BUCKET:
            return {"capacity": self.capacity, "refill_rate": self.refill_rate}
        return {"points": self.points, "duration": self.duration}


def resolve_limit(
    config: RateLimitConfig | None, settings: RateLimitSettings
) -> ResolvedLimit:
    """
    将单次调用参数与服务默认值合并

    令牌桶容量默认取 points，补充速率默认为 capacity / duration。

    Raises:
        InvalidConfigError: 算法未知或参数非法
    """
    config = config or RateLimitConfig()

    algorithm = config.algorithm or settings.default_algorithm
    if algorithm not in ALGORITHMS:
        raise InvalidConfigError(
            "algorithm", algorithm, f"must be one of {', '.join(ALGORITHMS)}"
        )

    points = settings.default_points if config.points is None else config.points
    duration = (
        settings.default_duration if config.duration is None else config.duration
    )
    capacity = points if config.capacity is None else config.capacity
    refill_rate = (
        capacity / duration if config.refill_rate is None else config.refill_rate
    )

    for name, value in (
        ("points", points),
        ("duration", duration),
        ("capacity", capacity),
        ("refill_rate", refill_rate),
    ):
        if value <= 0:
            raise InvalidConfigError(name, value, "must be > 0")

    return ResolvedLimit(
        algorithm=algorithm,
        points=points,
        duration=duration,
        capacity=capacity,
        refill_rate=refill_rate,
    )


class RateLimitService:
    """
    限流服务

    同一逻辑键在不同算法下使用不同的物理键（前缀 + 算法名 + ":" + key），
    避免 String / Sorted Set / Hash 之间的类型冲突。

    Attributes:
        store: 限流存储
        settings: 限流配置

    Example:
        >>> service = RateLimitService(RedisRateLimitStore(client))
        >>> result = service.check("user:1", RateLimitConfig(points=10, duration=60))
        >>> if not result.allowed:
        ...     print(f"retry after {result.retry_after}s")
    """

    def __init__(
        self,
        store: BaseRateLimitStore,
        settings: RateLimitSettings = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        初始化限流服务

        Args:
            store: 限流存储
            settings: 限流配置，None 时使用默认配置
            clock: 时钟，仅用于 fail-open 时合成结果
        """
        self.store = store
        self.settings = settings or RateLimitSettings()
        self._clock = clock

    def check(self, key: str, config: RateLimitConfig = None) -> RateLimitResult:
        """
        检查并消耗一次配额

        Args:
            key: 逻辑限流键
            config: 单次调用参数，未设置的字段使用默认配置

        Returns:
            限流结果

        Raises:
            InvalidConfigError: 参数非法
            RateLimitScriptError: 存储故障且错误策略为 fail-closed
        """
        limit = resolve_limit(config, self.settings)
        full_key = self.build_key(key, limit.algorithm)

        try:
            if limit.algorithm == FIXED_WINDOW:
                return self.store.fixed_window(full_key, limit.points, limit.duration)
            if limit.algorithm == SLIDING_WINDOW:
                return self.store.sliding_window(
                    full_key, limit.points, limit.duration
                )
            return self.store.token_bucket(full_key, limit.capacity, limit.refill_rate)
        except (RateLimitScriptError, RedisError) as e:
            return self._handle_error(e, full_key, limit)

    def consume(self, key: str, config: RateLimitConfig = None) -> RateLimitResult:
        """
        检查并消耗一次配额，超限时抛出异常

        Raises:
            RateLimitExceededError: 超出限流，异常携带完整结果
        """
        result = self.check(key, config)
        if not result.allowed:
            raise RateLimitExceededError(key, result)
        return result

    def peek(self, key: str, config: RateLimitConfig = None) -> RateLimitResult:
        """
        读取当前状态，不消耗配额

        存储故障时同样应用错误策略
        """
        limit = resolve_limit(config, self.settings)
        full_key = self.build_key(key, limit.algorithm)

        try:
            return self.store.peek(full_key, limit.algorithm, limit.store_config())
        except (RateLimitScriptError, RedisError) as e:
            return self._handle_error(e, full_key, limit)

    def reset(self, key: str) -> None:
        """
        清除逻辑键在全部算法下的状态

        调用方不一定知道状态由哪个算法产生，因此三个命名空间都清理

        Raises:
            RateLimitScriptError: 存储故障
        """
        for algorithm in ALGORITHMS:
            self.store.reset(self.build_key(key, algorithm))
        logger.debug(f"Reset rate limit state for: {key}")

    def get_state(self, key: str, config: RateLimitConfig = None) -> RateLimitState:
        """
        获取用于监控的状态

        Returns:
            RateLimitState，reset_at 为 UTC 时间
        """
        result = self.peek(key, config)
        return RateLimitState(
            current=result.current,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=datetime.fromtimestamp(result.reset, tz=timezone.utc),
        )

    def build_key(self, key: str, algorithm: str) -> str:
        """物理键：前缀 + 算法名 + ":" + 逻辑键"""
        return f"{self.settings.key_prefix}{algorithm}:{key}"

    def _handle_error(
        self, error: Exception, full_key: str, limit: ResolvedLimit
    ) -> RateLimitResult:
        if self.settings.error_policy == FAIL_OPEN:
            logger.warning(f"Rate limit store failure for {full_key}, failing open: {error}")
            return RateLimitResult(
                allowed=True,
                limit=limit.limit,
                remaining=limit.limit,
                current=0,
                reset=math.floor(self._clock()) + limit.duration,
            )

        logger.error(f"Rate limit store failure for {full_key}: {error}")
        raise RateLimitScriptError(f"Rate limit check failed: {error}") from error


def create_rate_limit_service(
    client: RedisClientProtocol,
    settings: RateLimitSettings = None,
    load_scripts: bool = True,
) -> RateLimitService:
    """
    限流服务工厂函数

    Args:
        client: Redis 客户端
        settings: 限流配置
        load_scripts: 是否预加载 Lua 脚本

    Returns:
        RateLimitService 实例
    """
    store = RedisRateLimitStore(client)
    if load_scripts:
        store.load_scripts()
    return RateLimitService(store, settings)
