"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 锁服务模块

提供带重试退避的锁获取、自动续期与关闭时批量释放
"""

import logging
import os
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, TypeVar

from redis.exceptions import RedisError

from redis_coord.config.schema import LocksConfig
from redis_coord.core.retry import ExponentialBackoff
from redis_coord.exceptions import LockAcquisitionError, LockError
from redis_coord.lock.base import BaseLockStore
from redis_coord.lock.entity import Lock
from redis_coord.lock.store import RedisLockStore
from redis_coord.types import LockOptions, RedisClientProtocol, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LockService:
    """
    分布式锁服务

    记录本实例发出且尚未释放的锁对象，shutdown 时并行释放。

    Attributes:
        store: 锁存储
        config: 锁配置

    Example:
        >>> service = LockService(RedisLockStore(client))
        >>> lock = service.acquire("order:1", LockOptions(ttl=10000))
        >>> try:
        ...     pass
        ... finally:
        ...     lock.release()

        # 在锁内执行函数
        >>> service.with_lock("order:1", lambda: process_order(1))
    """

    def __init__(self, store: BaseLockStore, config: LocksConfig = None):
        """
        初始化锁服务

        Args:
            store: 锁存储
            config: 锁配置，None 时使用默认配置
        """
        self.store = store
        self.config = config or LocksConfig()
        self._active_locks: set[Lock] = set()
        self._active_guard = threading.Lock()

    @property
    def active_locks(self) -> set[Lock]:
        """本实例发出且尚未释放的锁对象副本"""
        with self._active_guard:
            return set(self._active_locks)

    def acquire(self, key: str, options: LockOptions = None) -> Lock:
        """
        获取锁，失败时按指数退避重试

        最多尝试 max_retries + 1 次。

        Args:
            key: 锁名称（不含前缀）
            options: 本次获取的参数

        Returns:
            已获取的锁对象

        Raises:
            LockAcquisitionError: 重试耗尽（reason=timeout）或存储调用失败（reason=error）
        """
        options = options or LockOptions()
        full_key = self._build_key(key)
        ttl = self._resolve_ttl(options.ttl)
        token = self._generate_token()
        backoff = ExponentialBackoff(self._resolve_retry_policy(options))
        waited = 0.0

        while True:
            if self._try_store_acquire(key, full_key, token, ttl):
                logger.debug(
                    f"Acquired lock: {full_key} (attempts={backoff.retries + 1})"
                )
                return self._create_lock(full_key, token, ttl, options)

            if backoff.exhausted:
                logger.debug(
                    f"Lock acquisition timeout: {full_key} "
                    f"(attempts={backoff.retries + 1})"
                )
                raise LockAcquisitionError(key, "timeout", timeout=waited)

            waited += backoff.sleep()

    def try_acquire(self, key: str, options: LockOptions = None) -> Lock | None:
        """
        只尝试一次获取锁

        Args:
            key: 锁名称（不含前缀）
            options: 本次获取的参数（重试相关字段被忽略）

        Returns:
            获取成功返回锁对象，锁被占用返回 None

        Raises:
            LockAcquisitionError: 存储调用失败（reason=error）
        """
        options = options or LockOptions()
        full_key = self._build_key(key)
        ttl = self._resolve_ttl(options.ttl)
        token = self._generate_token()

        if not self._try_store_acquire(key, full_key, token, ttl):
            logger.debug(f"Lock is busy: {full_key}")
            return None

        logger.debug(f"Acquired lock: {full_key}")
        return self._create_lock(full_key, token, ttl, options)

    def with_lock(
        self, key: str, func: Callable[[], T], options: LockOptions = None
    ) -> T:
        """
        在锁内执行函数

        无论函数成功还是抛出异常都会释放锁；释放失败只记录日志，
        不会掩盖函数本身的异常。

        Args:
            key: 锁名称（不含前缀）
            func: 要执行的无参函数
            options: 本次获取的参数

        Returns:
            函数返回值

        Raises:
            LockAcquisitionError: 获取锁失败
        """
        return self.run_locked(self.acquire(key, options), func)

    def run_locked(self, lock: Lock, func: Callable[[], T]) -> T:
        """
        持有已获取的锁执行函数，结束后释放

        释放语义与 with_lock 相同：释放失败（如锁已过期或被强制删除）
        只记录日志，函数返回值照常返回。

        Args:
            lock: acquire/try_acquire 返回的锁对象
            func: 要执行的无参函数

        Returns:
            函数返回值
        """
        try:
            return func()
        finally:
            try:
                lock.release()
            except LockError as e:
                logger.error(f"Lock release failed for {lock.key}: {e}")
            finally:
                self._forget(lock)

    def is_locked(self, key: str) -> bool:
        """
        锁键是否存在，不区分持有者

        Raises:
            LockError: 存储调用失败
        """
        full_key = self._build_key(key)
        try:
            return self.store.exists(full_key)
        except RedisError as e:
            raise LockError(f"Failed to check lock '{full_key}': {e}", full_key) from e

    def force_release(self, key: str) -> bool:
        """
        不校验持有者强制删除锁

        管理用途。若有合法持有者仍在临界区内，会导致互斥失效。

        Returns:
            锁是否存在并被删除

        Raises:
            LockError: 存储调用失败
        """
        full_key = self._build_key(key)
        try:
            return self.store.force_release(full_key)
        except RedisError as e:
            raise LockError(
                f"Failed to force release lock '{full_key}': {e}", full_key
            ) from e

    def shutdown(self) -> None:
        """
        并行释放本实例发出的全部锁

        每个锁的释放失败单独记录日志，不影响其他锁。
        """
        with self._active_guard:
            locks = list(self._active_locks)
            self._active_locks.clear()

        if not locks:
            return

        logger.info(f"Releasing {len(locks)} active lock(s) on shutdown")
        with ThreadPoolExecutor(
            max_workers=min(len(locks), 16), thread_name_prefix="lock-shutdown"
        ) as executor:
            list(executor.map(self._release_quietly, locks))

    def _release_quietly(self, lock: Lock) -> None:
        try:
            lock.release()
        except Exception:
            logger.exception(f"Failed to release lock {lock.key} during shutdown")

    def _try_store_acquire(
        self, key: str, full_key: str, token: str, ttl: int
    ) -> bool:
        try:
            return self.store.acquire(full_key, token, ttl)
        except RedisError as e:
            logger.warning(f"Lock store error while acquiring {full_key}: {e}")
            raise LockAcquisitionError(key, "error") from e

    def _create_lock(
        self, full_key: str, token: str, ttl: int, options: LockOptions
    ) -> Lock:
        """创建锁对象并按配置启动自动续期"""
        lock = Lock(full_key, token, ttl, self.store, on_release=self._forget)

        auto_renew = options.auto_renew
        if auto_renew is None:
            auto_renew = self.config.auto_renew.enabled
        if auto_renew:
            lock.start_auto_renew(ttl * self.config.auto_renew.interval_fraction)

        with self._active_guard:
            self._active_locks.add(lock)
        return lock

    def _forget(self, lock: Lock) -> None:
        with self._active_guard:
            self._active_locks.discard(lock)

    def _build_key(self, key: str) -> str:
        return f"{self.config.key_prefix}{key}"

    def _resolve_ttl(self, ttl: int | None) -> int:
        resolved = self.config.default_ttl if ttl is None else ttl
        return min(resolved, self.config.max_ttl)

    def _resolve_retry_policy(self, options: LockOptions) -> RetryPolicy:
        policy = self.config.retry
        overrides: dict[str, Any] = {}
        if options.retry_max_retries is not None:
            overrides["max_retries"] = options.retry_max_retries
        if options.retry_initial_delay is not None:
            overrides["initial_delay"] = options.retry_initial_delay
        return replace(policy, **overrides) if overrides else policy

    def _generate_token(self) -> str:
        return f"{os.getpid()}-{int(time.time() * 1000)}-{uuid.uuid4().hex}"

    def __enter__(self) -> "LockService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.shutdown()
        return False


def create_lock_service(
    client: RedisClientProtocol, config: LocksConfig = None, load_scripts: bool = True
) -> LockService:
    """
    锁服务工厂函数

    Args:
        client: Redis 客户端
        config: 锁配置
        load_scripts: 是否预加载 Lua 脚本

    Returns:
        LockService 实例
    """
    store = RedisLockStore(client)
    if load_scripts:
        store.load_scripts()
    return LockService(store, config)
