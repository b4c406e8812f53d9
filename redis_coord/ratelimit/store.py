"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord Redis 限流存储模块

三种算法各对应一个 Lua 脚本；peek 为尽力而为的只读查询
"""

import logging
import math
import time
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from redis.exceptions import RedisError

from redis_coord.core.scripts import LuaScript
from redis_coord.exceptions import RateLimitScriptError
from redis_coord.ratelimit.base import BaseRateLimitStore
from redis_coord.ratelimit.scripts import (
    FIXED_WINDOW_SCRIPT,
    SLIDING_WINDOW_SCRIPT,
    TOKEN_BUCKET_SCRIPT,
)
from redis_coord.types import (
    FIXED_WINDOW,
    SLIDING_WINDOW,
    TOKEN_BUCKET,
    RateLimitResult,
    RedisClientProtocol,
)

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = "\\*?[]"


def window_key(key: str, window: int) -> str:
    """固定窗口计数器的物理键，与 FIXED_WINDOW_SCRIPT 中的拼接方式一致"""
    return f"{{{key}}}:{window}"


def escape_glob(value: str) -> str:
    """转义 Redis glob 特殊字符"""
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in value)


class RedisRateLimitStore(BaseRateLimitStore):
    """
    基于 Redis 的限流存储

    Attributes:
        client: Redis 客户端

    Example:
        >>> store = RedisRateLimitStore(redis.Redis())
        >>> store.load_scripts()
        >>> result = store.fixed_window("rl:fixed-window:user:1", 3, 60)
        >>> result.allowed, result.remaining
        (True, 2)
    """

    def __init__(
        self, client: RedisClientProtocol, clock: Callable[[], float] = time.time
    ):
        """
        初始化限流存储

        Args:
            client: Redis 客户端实例
            clock: 返回当前 epoch 秒的时钟，脚本时间参数由客户端提供
        """
        self.client = client
        self._clock = clock
        self._fixed_window_script = LuaScript(
            client, FIXED_WINDOW_SCRIPT, name="fixed_window"
        )
        self._sliding_window_script = LuaScript(
            client, SLIDING_WINDOW_SCRIPT, name="sliding_window"
        )
        self._token_bucket_script = LuaScript(
            client, TOKEN_BUCKET_SCRIPT, name="token_bucket"
        )

    def load_scripts(self) -> None:
        """
        预加载三个限流脚本

        Raises:
            RateLimitScriptError: 加载失败
        """
        try:
            self._fixed_window_script.load()
            self._sliding_window_script.load()
            self._token_bucket_script.load()
        except RedisError as e:
            raise RateLimitScriptError(f"Failed to load Lua scripts: {e}") from e

    # =========================================================================
    # 算法
    # =========================================================================

    def fixed_window(self, key: str, points: int, duration: int) -> RateLimitResult:
        now = self._clock()
        result = self._run(
            self._fixed_window_script,
            key,
            [points, duration, int(now)],
            "Fixed window",
        )

        allowed, remaining, reset, current = (int(v) for v in result[:4])
        return RateLimitResult(
            allowed=allowed == 1,
            limit=points,
            remaining=remaining,
            current=current,
            reset=reset,
            retry_after=math.ceil(reset - now) if allowed != 1 else None,
        )

    def sliding_window(
        self, key: str, points: int, duration: int
    ) -> RateLimitResult:
        now_ms = self._now_ms()
        request_id = f"{now_ms}-{uuid.uuid4().hex[:12]}"
        result = self._run(
            self._sliding_window_script,
            key,
            [points, duration, now_ms, request_id],
            "Sliding window",
        )
        return self._parse_result(result, points)

    def token_bucket(
        self, key: str, capacity: int, refill_rate: float, consume: int = 1
    ) -> RateLimitResult:
        now_ms = self._now_ms()
        result = self._run(
            self._token_bucket_script,
            key,
            [capacity, refill_rate, now_ms, consume],
            "Token bucket",
        )
        return self._parse_result(result, capacity)

    # =========================================================================
    # 查询与重置
    # =========================================================================

    def peek(self, key: str, algorithm: str, config: dict) -> RateLimitResult:
        """
        读取当前状态，不消耗配额

        Raises:
            RateLimitScriptError: 存储调用失败
        """
        try:
            if algorithm == FIXED_WINDOW:
                return self._peek_fixed_window(key, config["points"], config["duration"])
            if algorithm == SLIDING_WINDOW:
                return self._peek_sliding_window(
                    key, config["points"], config["duration"]
                )
            if algorithm == TOKEN_BUCKET:
                return self._peek_token_bucket(
                    key, config["capacity"], config["refill_rate"]
                )
        except RedisError as e:
            raise RateLimitScriptError(f"Peek failed: {e}") from e

        raise ValueError(f"Unknown rate limit algorithm: {algorithm}")

    def reset(self, key: str) -> None:
        """
        删除限流键，以及固定窗口算法遗留的 {key}:<window> 计数器

        Raises:
            RateLimitScriptError: 存储调用失败
        """
        try:
            counters = list(self.client.scan_iter(match=f"{{{escape_glob(key)}}}:*"))
            self.client.delete(key, *counters)
        except RedisError as e:
            raise RateLimitScriptError(f"Reset failed: {e}") from e
        logger.debug(f"Reset rate limit: {key} ({len(counters)} window counter(s))")

    def _peek_fixed_window(self, key: str, points: int, duration: int) -> RateLimitResult:
        now = self._clock()
        window = int(now // duration) * duration
        raw = self.client.get(window_key(key, window))
        current = int(raw) if raw else 0

        return RateLimitResult(
            allowed=current < points,
            limit=points,
            remaining=max(0, points - current),
            current=current,
            reset=window + duration,
        )

    def _peek_sliding_window(
        self, key: str, points: int, duration: int
    ) -> RateLimitResult:
        now_ms = self._now_ms()
        duration_ms = duration * 1000
        # 脚本会删除 score <= now - duration 的记录，这里只统计仍在窗口内的
        current = self.client.zcount(key, f"({now_ms - duration_ms}", "+inf")

        return RateLimitResult(
            allowed=current < points,
            limit=points,
            remaining=max(0, points - current),
            current=current,
            reset=math.ceil((now_ms + duration_ms) / 1000),
        )

    def _peek_token_bucket(
        self, key: str, capacity: int, refill_rate: float
    ) -> RateLimitResult:
        now_ms = self._now_ms()
        raw_tokens, raw_last_refill = self.client.hmget(key, ["tokens", "last_refill"])
        tokens = float(raw_tokens) if raw_tokens is not None else float(capacity)
        last_refill = float(raw_last_refill) if raw_last_refill is not None else now_ms

        tokens = min(capacity, tokens + (now_ms - last_refill) / 1000 * refill_rate)

        return RateLimitResult(
            allowed=tokens >= 1,
            limit=capacity,
            remaining=math.floor(tokens),
            current=math.floor(tokens),
            reset=math.ceil(now_ms / 1000 + (capacity - tokens) / refill_rate),
        )

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _run(
        self, script: LuaScript, key: str, args: Sequence[Any], label: str
    ) -> list:
        try:
            return script(keys=[key], args=args)
        except RedisError as e:
            raise RateLimitScriptError(f"{label} check failed: {e}") from e

    def _parse_result(self, result: list, limit: int) -> RateLimitResult:
        """
        解析滑动窗口与令牌桶脚本的返回值

        {allowed, remaining, reset, current, retry_after?}，
        retry_after 原样保留，不做截断。
        """
        allowed, remaining, reset, current = (int(v) for v in result[:4])
        retry_after = None
        if allowed != 1 and len(result) > 4:
            retry_after = int(result[4])

        return RateLimitResult(
            allowed=allowed == 1,
            limit=limit,
            remaining=remaining,
            current=current,
            reset=reset,
            retry_after=retry_after,
        )
