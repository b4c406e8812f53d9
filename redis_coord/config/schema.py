# -*- coding: utf-8 -*-
"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 配置 Schema 模块

定义锁与限流的完整配置结构
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from redis_coord.exceptions import InvalidConfigError
from redis_coord.types import ALGORITHMS, ERROR_POLICIES, RetryPolicy


def _retry_policy_from_dict(data: dict[str, Any]) -> RetryPolicy:
    return RetryPolicy(
        max_retries=data.get("max_retries", 3),
        initial_delay=data.get("initial_delay", 100),
        max_delay=data.get("max_delay", 3000),
        multiplier=data.get("multiplier", 2.0),
    )


def _validate_retry_policy(policy: RetryPolicy) -> None:
    if policy.max_retries < 0:
        raise InvalidConfigError("retry.max_retries", policy.max_retries, "must be >= 0")
    if policy.initial_delay < 0:
        raise InvalidConfigError(
            "retry.initial_delay", policy.initial_delay, "must be >= 0"
        )
    if policy.max_delay < 0:
        raise InvalidConfigError("retry.max_delay", policy.max_delay, "must be >= 0")
    if policy.multiplier < 1:
        raise InvalidConfigError("retry.multiplier", policy.multiplier, "must be >= 1")


@dataclass
class AutoRenewConfig:
    """
    锁自动续期配置

    Attributes:
        enabled: 是否默认开启自动续期
        interval_fraction: 续期间隔占 TTL 的比例，取值 (0, 1]
    """

    enabled: bool = True
    interval_fraction: float = 0.5

    def __post_init__(self):
        if not 0 < self.interval_fraction <= 1:
            raise InvalidConfigError(
                "auto_renew.interval_fraction",
                self.interval_fraction,
                "must be in (0, 1]",
            )


@dataclass
class LocksConfig:
    """
    分布式锁配置

    Attributes:
        default_ttl: 默认锁过期时间（毫秒）
        max_ttl: 锁过期时间上限（毫秒）
        key_prefix: 锁键前缀
        retry: 获取锁的重试策略
        auto_renew: 自动续期配置
    """

    default_ttl: int = 30000
    max_ttl: int = 300000
    key_prefix: str = "_lock:"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    auto_renew: AutoRenewConfig = field(default_factory=AutoRenewConfig)

    def __post_init__(self):
        if self.default_ttl <= 0:
            raise InvalidConfigError("locks.default_ttl", self.default_ttl, "must be > 0")
        if self.max_ttl <= 0:
            raise InvalidConfigError("locks.max_ttl", self.max_ttl, "must be > 0")
        _validate_retry_policy(self.retry)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocksConfig":
        """从字典创建配置，retry/auto_renew 为嵌套字典"""
        auto_renew = data.get("auto_renew", {})
        if isinstance(auto_renew, dict):
            auto_renew = AutoRenewConfig(**auto_renew)

        retry = data.get("retry", {})
        if isinstance(retry, dict):
            retry = _retry_policy_from_dict(retry)

        return cls(
            default_ttl=data.get("default_ttl", 30000),
            max_ttl=data.get("max_ttl", 300000),
            key_prefix=data.get("key_prefix", "_lock:"),
            retry=retry,
            auto_renew=auto_renew,
        )


@dataclass
class RateLimitSettings:
    """
    限流服务配置

    Attributes:
        default_algorithm: 默认限流算法
        default_points: 默认窗口内最大请求数
        default_duration: 默认窗口时长（秒）
        key_prefix: 限流键前缀
        error_policy: 存储故障时的处理策略，fail-open 放行，fail-closed 抛出异常
    """

    default_algorithm: str = "sliding-window"
    default_points: int = 100
    default_duration: int = 60
    key_prefix: str = "rl:"
    error_policy: str = "fail-closed"

    def __post_init__(self):
        if self.default_algorithm not in ALGORITHMS:
            raise InvalidConfigError(
                "rate_limit.default_algorithm",
                self.default_algorithm,
                f"must be one of {', '.join(ALGORITHMS)}",
            )
        if self.error_policy not in ERROR_POLICIES:
            raise InvalidConfigError(
                "rate_limit.error_policy",
                self.error_policy,
                f"must be one of {', '.join(ERROR_POLICIES)}",
            )
        if self.default_points <= 0:
            raise InvalidConfigError(
                "rate_limit.default_points", self.default_points, "must be > 0"
            )
        if self.default_duration <= 0:
            raise InvalidConfigError(
                "rate_limit.default_duration", self.default_duration, "must be > 0"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RateLimitSettings":
        """从字典创建配置"""
        return cls(
            default_algorithm=data.get("default_algorithm", "sliding-window"),
            default_points=data.get("default_points", 100),
            default_duration=data.get("default_duration", 60),
            key_prefix=data.get("key_prefix", "rl:"),
            error_policy=data.get("error_policy", "fail-closed"),
        )


@dataclass
class RedisCoordConfig:
    """
    redis-coord 完整配置

    Attributes:
        locks: 分布式锁配置
        rate_limit: 限流配置

    Example:
        >>> config = RedisCoordConfig.from_dict({
        ...     "locks": {"default_ttl": 10000, "retry": {"max_retries": 5}},
        ...     "rate_limit": {"error_policy": "fail-open"},
        ... })
    """

    locks: LocksConfig = field(default_factory=LocksConfig)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RedisCoordConfig":
        """
        从字典创建配置

        Args:
            data: 配置字典

        Returns:
            RedisCoordConfig 实例
        """
        locks = data.get("locks", {})
        if isinstance(locks, dict):
            locks = LocksConfig.from_dict(locks)

        rate_limit = data.get("rate_limit", {})
        if isinstance(rate_limit, dict):
            rate_limit = RateLimitSettings.from_dict(rate_limit)

        return cls(locks=locks, rate_limit=rate_limit)

    def to_dict(self) -> dict[str, Any]:
        """
        转换为字典

        Returns:
            配置字典
        """
        return {
            "locks": asdict(self.locks),
            "rate_limit": asdict(self.rate_limit),
        }
