"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 装饰器模块

为函数提供锁保护与限流，服务实例由调用方显式传入
"""

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from redis_coord.lock.service import LockService
from redis_coord.ratelimit.service import RateLimitService
from redis_coord.types import LockOptions, RateLimitConfig

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

KeySource = str | Callable[[tuple, dict], str]


def _resolve_key(key: KeySource, args: tuple, kwargs: dict) -> str:
    if callable(key):
        return key(args, kwargs)
    return key


def locked(
    lock_service: LockService,
    key: KeySource,
    options: LockOptions = None,
    blocking: bool = True,
    return_on_busy: Any = None,
) -> Callable[[F], F]:
    """
    锁装饰器

    在分布式锁内执行被装饰的函数。两种模式下释放失败都只记录日志，
    不影响函数返回值。

    Args:
        lock_service: 锁服务
        key: 锁名称，可以是字符串或接收 (args, kwargs) 返回字符串的可调用对象
        options: 获取锁的参数
        blocking: True 时按重试策略等待，获取失败抛出 LockAcquisitionError；
            False 时只尝试一次
        return_on_busy: 非阻塞模式下锁被占用时的返回值

    Returns:
        装饰器函数

    Example:
        >>> @locked(lock_service, "daily_report", LockOptions(ttl=60000))
        ... def daily_report():
        ...     pass

        # 动态锁名
        >>> @locked(lock_service, lambda args, kwargs: f"order:{kwargs['order_id']}")
        ... def process_order(order_id):
        ...     pass
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            lock_key = _resolve_key(key, args, kwargs)

            if blocking:
                return lock_service.with_lock(
                    lock_key, lambda: func(*args, **kwargs), options
                )

            lock = lock_service.try_acquire(lock_key, options)
            if lock is None:
                logger.info(f"Lock is busy, skipping {func.__name__}: {lock_key}")
                return return_on_busy

            return lock_service.run_locked(lock, lambda: func(*args, **kwargs))

        return wrapper  # type: ignore

    return decorator


def rate_limited(
    rate_limit_service: RateLimitService,
    key: KeySource,
    config: RateLimitConfig = None,
) -> Callable[[F], F]:
    """
    限流装饰器

    每次调用前消耗一次配额，超限时抛出 RateLimitExceededError。

    Args:
        rate_limit_service: 限流服务
        key: 限流键，可以是字符串或接收 (args, kwargs) 返回字符串的可调用对象
        config: 限流参数，未设置的字段使用服务默认配置

    Returns:
        装饰器函数

    Example:
        >>> @rate_limited(rate_limit_service, "api_call", RateLimitConfig(points=100, duration=60))
        ... def api_call():
        ...     pass

        # 按用户限流
        >>> @rate_limited(
        ...     rate_limit_service,
        ...     lambda args, kwargs: f"user:{kwargs.get('user_id', 'default')}",
        ...     RateLimitConfig(algorithm="token-bucket", capacity=10, refill_rate=1),
        ... )
        ... def user_api(user_id):
        ...     pass
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            rate_limit_service.consume(_resolve_key(key, args, kwargs), config)
            return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator
