"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord: Redis-backed distributed coordination primitives

基于 Redis 的分布式协调原语，包括：
- 分布式锁：带 token 校验的获取/释放/续期、指数退避重试、自动续期
- 限流：固定窗口、滑动窗口日志、令牌桶三种算法，单个 Lua 脚本原子执行
- 错误策略：限流存储故障时可选 fail-open 或 fail-closed

Usage:
    from redis_coord import create_lock_service, create_rate_limit_service
    from redis_coord.types import LockOptions, RateLimitConfig

Example:
    # 分布式锁
    >>> import redis
    >>> client = redis.Redis(host="localhost", port=6379)
    >>> lock_service = create_lock_service(client)
    >>> with lock_service.acquire("order:1", LockOptions(ttl=10000)):
    ...     # 临界区代码
    ...     pass

    # 限流
    >>> rate_limit_service = create_rate_limit_service(client)
    >>> result = rate_limit_service.check("user:1", RateLimitConfig(points=10, duration=60))
    >>> result.allowed
    True
"""

__version__ = "1.0.0"
__author__ = "BlueKing Monitor Team"

# =============================================================================
# 类型定义
# =============================================================================
from redis_coord.types import (
    ALGORITHMS,
    FAIL_CLOSED,
    FAIL_OPEN,
    FIXED_WINDOW,
    SLIDING_WINDOW,
    TOKEN_BUCKET,
    LockOptions,
    RateLimitConfig,
    RateLimitResult,
    RateLimitState,
    RedisClientProtocol,
    RetryPolicy,
)

# =============================================================================
# 异常
# =============================================================================
from redis_coord.exceptions import (
    ConfigurationError,
    InvalidConfigError,
    LockAcquisitionError,
    LockError,
    LockExtensionError,
    LockNotOwnedError,
    LockReleaseError,
    MissingConfigError,
    RateLimitError,
    RateLimitExceededError,
    RateLimitScriptError,
    RedisCoordError,
)

# =============================================================================
# 核心模块
# =============================================================================
from redis_coord.core.retry import ExponentialBackoff
from redis_coord.core.scripts import LuaScript

# =============================================================================
# 分布式锁
# =============================================================================
from redis_coord.lock.base import BaseLockStore
from redis_coord.lock.entity import Lock
from redis_coord.lock.service import LockService, create_lock_service
from redis_coord.lock.store import RedisLockStore

# =============================================================================
# 限流
# =============================================================================
from redis_coord.ratelimit.base import BaseRateLimitStore
from redis_coord.ratelimit.service import RateLimitService, create_rate_limit_service
from redis_coord.ratelimit.store import RedisRateLimitStore

# =============================================================================
# 装饰器
# =============================================================================
from redis_coord.decorators import locked, rate_limited

# =============================================================================
# 配置模块
# =============================================================================
from redis_coord.config.loader import (
    CompositeConfigLoader,
    ConfigLoader,
    DictConfigLoader,
    EnvConfigLoader,
    YamlConfigLoader,
    load_config,
)
from redis_coord.config.schema import (
    AutoRenewConfig,
    LocksConfig,
    RateLimitSettings,
    RedisCoordConfig,
)

# =============================================================================
# 公共 API
# =============================================================================
__all__ = [
    # Version
    "__version__",
    # Types
    "FIXED_WINDOW",
    "SLIDING_WINDOW",
    "TOKEN_BUCKET",
    "ALGORITHMS",
    "FAIL_OPEN",
    "FAIL_CLOSED",
    "RetryPolicy",
    "LockOptions",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitState",
    "RedisClientProtocol",
    # Exceptions
    "RedisCoordError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "LockError",
    "LockAcquisitionError",
    "LockNotOwnedError",
    "LockExtensionError",
    "LockReleaseError",
    "RateLimitError",
    "RateLimitExceededError",
    "RateLimitScriptError",
    # Core
    "ExponentialBackoff",
    "LuaScript",
    # Lock
    "BaseLockStore",
    "RedisLockStore",
    "Lock",
    "LockService",
    "create_lock_service",
    # Rate limit
    "BaseRateLimitStore",
    "RedisRateLimitStore",
    "RateLimitService",
    "create_rate_limit_service",
    # Decorators
    "locked",
    "rate_limited",
    # Config
    "RedisCoordConfig",
    "LocksConfig",
    "AutoRenewConfig",
    "RateLimitSettings",
    "ConfigLoader",
    "DictConfigLoader",
    "YamlConfigLoader",
    "EnvConfigLoader",
    "CompositeConfigLoader",
    "load_config",
]
