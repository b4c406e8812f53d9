"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 锁对象模块

表示一次已获取的锁，负责续期与释放
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from redis.exceptions import RedisError

from redis_coord.exceptions import (
    LockError,
    LockExtensionError,
    LockNotOwnedError,
    LockReleaseError,
)
from redis_coord.lock.base import BaseLockStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lock:
    """
    已获取的分布式锁

    本地字段只是"我们认为的状态"，释放与延长都在 Redis 端校验 token。
    锁对象只能由 LockService 在存储确认获取成功后创建。

    Attributes:
        key: 带前缀的完整锁键
        token: 本次获取的唯一 token
        ttl: 锁过期时间（毫秒）
        acquired_at: 获取时间（UTC）

    Example:
        >>> lock = lock_service.acquire("order:1")
        >>> try:
        ...     # 执行临界区代码
        ...     pass
        ... finally:
        ...     lock.release()

        # 使用上下文管理器
        >>> with lock_service.acquire("order:1"):
        ...     pass
    """

    def __init__(
        self,
        key: str,
        token: str,
        ttl: int,
        store: BaseLockStore,
        on_release: Callable[["Lock"], None] = None,
    ):
        """
        初始化锁对象

        Args:
            key: 完整锁键
            token: 持有者 token
            ttl: 锁过期时间，单位毫秒
            store: 锁存储
            on_release: 标记为已释放后的回调，LockService 用它停止跟踪
        """
        self.key = key
        self.token = token
        self.ttl = ttl
        self.store = store
        self.acquired_at = _utcnow()
        self._on_release = on_release

        self._expires_at = self.acquired_at + timedelta(milliseconds=ttl)
        self._released = False
        self._state_lock = threading.Lock()
        self._renew_thread: threading.Thread | None = None
        self._renew_stop: threading.Event | None = None

    @property
    def expires_at(self) -> datetime:
        """预计过期时间，每次续期成功后推后"""
        return self._expires_at

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_auto_renewing(self) -> bool:
        """自动续期是否在运行"""
        return self._renew_thread is not None

    def release(self) -> None:
        """
        释放锁

        先停止自动续期，再通过 Lua 脚本校验 token 并删除。
        幂等：重复调用直接返回。

        Raises:
            LockNotOwnedError: Redis 中的 token 与本锁不一致（锁已过期或被他人持有）
            LockReleaseError: 存储调用失败，锁保持未释放状态
        """
        if self._released:
            return

        self.stop_auto_renew()

        try:
            success = self.store.release(self.key, self.token)
        except RedisError as e:
            raise LockReleaseError(self.key, str(e)) from e

        # token 不匹配时本进程也不再持有该锁
        self._released = True
        if self._on_release is not None:
            self._on_release(self)

        if not success:
            logger.warning(f"Lock token mismatch, cannot release: {self.key}")
            raise LockNotOwnedError(self.key, self.token)

        logger.debug(f"Released lock: {self.key}")

    def extend(self, ttl: int = None) -> None:
        """
        将锁的过期时间重置为 ttl

        Args:
            ttl: 新的过期时间（毫秒），默认使用获取时的 ttl

        Raises:
            LockNotOwnedError: 锁已释放
            LockExtensionError: 锁已丢失或存储调用失败
        """
        if self._released:
            raise LockNotOwnedError(self.key, self.token)

        ttl = self.ttl if ttl is None else ttl

        try:
            success = self.store.extend(self.key, self.token, ttl)
        except RedisError as e:
            raise LockExtensionError(self.key, self.token, str(e)) from e

        if not success:
            raise LockExtensionError(self.key, self.token, "lock lost or expired")

        self._expires_at = _utcnow() + timedelta(milliseconds=ttl)
        logger.debug(f"Extended lock: {self.key} (ttl={ttl}ms)")

    def is_held(self) -> bool:
        """
        检查锁是否仍由本 token 持有

        Returns:
            已释放返回 False，否则以 Redis 中的值为准
        """
        if self._released:
            return False
        try:
            return self.store.is_held_by(self.key, self.token)
        except RedisError as e:
            raise LockError(f"Failed to check lock '{self.key}': {e}", self.key) from e

    def start_auto_renew(self, interval: float) -> None:
        """
        启动自动续期

        在守护线程中每隔 interval 毫秒将锁延长为 ttl，
        任一次续期失败即停止（本进程不再认为自己持有锁）。
        已在续期时重复调用无效果。

        Args:
            interval: 续期间隔（毫秒）
        """
        with self._state_lock:
            if self._renew_thread is not None or self._released:
                return

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._renew_loop,
                args=(interval / 1000, stop_event),
                name=f"lock-renew:{self.key}",
                daemon=True,
            )
            self._renew_stop = stop_event
            self._renew_thread = thread

        thread.start()
        logger.debug(f"Auto-renew started for lock: {self.key} (every {interval}ms)")

    def stop_auto_renew(self) -> None:
        """停止自动续期，可重复调用"""
        with self._state_lock:
            stop_event = self._renew_stop
            self._renew_stop = None
            self._renew_thread = None

        if stop_event is not None:
            stop_event.set()

    def _renew_loop(self, interval: float, stop_event: threading.Event) -> None:
        while not stop_event.wait(interval):
            try:
                self.extend(self.ttl)
            except LockError as e:
                logger.warning(f"Auto-renew stopped for lock {self.key}: {e}")
                break

        with self._state_lock:
            if self._renew_stop is stop_event:
                self._renew_stop = None
                self._renew_thread = None

    def __enter__(self) -> "Lock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self.release()
        except LockError:
            # 不掩盖临界区自身的异常
            if exc_type is None:
                raise
            logger.exception(f"Lock release failed for {self.key}")
        return False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(key={self.key!r}, ttl={self.ttl}, "
            f"released={self._released})"
        )
