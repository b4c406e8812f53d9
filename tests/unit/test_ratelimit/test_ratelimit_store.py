"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.
"""

import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError, NoScriptError
from redis_coord.exceptions import RateLimitScriptError
from redis_coord.ratelimit.scripts import (
    FIXED_WINDOW_SCRIPT,
    SLIDING_WINDOW_SCRIPT,
    TOKEN_BUCKET_SCRIPT,
)
from redis_coord.ratelimit.store import RedisRateLimitStore, escape_glob, window_key
from redis_coord.types import FIXED_WINDOW, SLIDING_WINDOW, TOKEN_BUCKET


@pytest.fixture
def store(fake_redis, clock):
    store = RedisRateLimitStore(fake_redis, clock=clock)
    store.load_scripts()
    return store


class TestHelpers:
    """测试辅助函数"""

    def test_window_key(self):
        """测试固定窗口计数器键"""
        assert window_key("rl:fixed-window:u1", 120) == "{rl:fixed-window:u1}:120"

    def test_escape_glob(self):
        """测试转义 glob 特殊字符"""
        assert escape_glob("a*b?[c]") == "a\\*b\\?\\[c\\]"
        assert escape_glob("plain:key") == "plain:key"


class TestRedisRateLimitStoreCalls:
    """测试脚本调用参数（Mock 客户端）"""

    def test_load_scripts(self, mock_redis_instance):
        """测试预加载三个脚本"""
        RedisRateLimitStore(mock_redis_instance).load_scripts()

        loaded = [c.args[0] for c in mock_redis_instance.script_load.call_args_list]
        assert loaded == [FIXED_WINDOW_SCRIPT, SLIDING_WINDOW_SCRIPT, TOKEN_BUCKET_SCRIPT]

    def test_load_scripts_failure(self, mock_redis_instance):
        """测试预加载失败"""
        mock_redis_instance.script_load.side_effect = ConnectionError("down")

        with pytest.raises(RateLimitScriptError):
            RedisRateLimitStore(mock_redis_instance).load_scripts()

    def test_fixed_window_args(self, mock_redis_instance):
        """测试固定窗口参数"""
        mock_redis_instance.evalsha.return_value = [1, 2, 1020, 1]
        store = RedisRateLimitStore(mock_redis_instance, clock=lambda: 1000.7)

        result = store.fixed_window("k", 3, 60)

        mock_redis_instance.evalsha.assert_called_once_with("sha", 1, "k", 3, 60, 1000)
        assert result.allowed is True
        assert result.remaining == 2
        assert result.retry_after is None

    def test_fixed_window_retry_after(self, mock_redis_instance):
        """测试固定窗口拒绝时计算 retry_after"""
        mock_redis_instance.evalsha.return_value = [0, 0, 1020, 4]
        store = RedisRateLimitStore(mock_redis_instance, clock=lambda: 1000.5)

        result = store.fixed_window("k", 3, 60)

        assert result.allowed is False
        assert result.retry_after == 20

    def test_sliding_window_args(self, mock_redis_instance):
        """测试滑动窗口参数"""
        mock_redis_instance.evalsha.return_value = [1, 1, 1061, 1]
        store = RedisRateLimitStore(mock_redis_instance, clock=lambda: 1000.25)

        store.sliding_window("k", 2, 60)

        args = mock_redis_instance.evalsha.call_args.args
        assert args[:6] == ("sha", 1, "k", 2, 60, 1000250)
        assert args[6].startswith("1000250-")

    def test_token_bucket_args(self, mock_redis_instance):
        """测试令牌桶参数"""
        mock_redis_instance.evalsha.return_value = [1, 9, 1001, 10, 0]
        store = RedisRateLimitStore(mock_redis_instance, clock=lambda: 1000.0)

        result = store.token_bucket("k", 10, 1.0, consume=2)

        mock_redis_instance.evalsha.assert_called_once_with(
            "sha", 1, "k", 10, 1.0, 1000000, 2
        )
        assert result.retry_after is None

    def test_negative_retry_after_passes_through(self, mock_redis_instance):
        """测试 retry_after 不做截断"""
        mock_redis_instance.evalsha.return_value = [0, 0, 1060, 2, -1]
        store = RedisRateLimitStore(mock_redis_instance)

        result = store.sliding_window("k", 2, 60)

        assert result.allowed is False
        assert result.retry_after == -1

    def test_noscript_fallback(self, mock_redis_instance):
        """测试脚本缓存缺失时回退为 EVAL"""
        mock_redis_instance.evalsha.side_effect = NoScriptError("No matching script.")
        mock_redis_instance.eval.return_value = [1, 2, 1020, 1]
        store = RedisRateLimitStore(mock_redis_instance, clock=lambda: 1000.0)

        result = store.fixed_window("k", 3, 60)

        assert result.allowed is True
        assert mock_redis_instance.eval.call_args.args[0] == FIXED_WINDOW_SCRIPT

    def test_store_error_wrapped(self, mock_redis_instance):
        """测试存储故障转换为脚本异常"""
        mock_redis_instance.evalsha.side_effect = ConnectionError("down")
        store = RedisRateLimitStore(mock_redis_instance)

        with pytest.raises(RateLimitScriptError) as exc_info:
            store.token_bucket("k", 10, 1.0)
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestFixedWindow:
    """测试固定窗口算法"""

    def test_counts_within_window(self, store, clock):
        """测试窗口内计数"""
        results = [store.fixed_window("k", 3, 60) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert [r.current for r in results] == [1, 2, 3, 4]

        window_end = int(clock() // 60) * 60 + 60
        assert results[-1].reset == window_end
        assert results[-1].retry_after == window_end - int(clock())

    def test_new_window_resets(self, store, clock):
        """测试进入新窗口后重新计数"""
        for _ in range(3):
            store.fixed_window("k", 3, 60)
        assert store.fixed_window("k", 3, 60).allowed is False

        clock.advance(60)

        result = store.fixed_window("k", 3, 60)
        assert result.allowed is True
        assert result.current == 1

    def test_counter_key_expires(self, store, fake_redis, clock):
        """测试计数器键设置了过期时间"""
        store.fixed_window("k", 3, 60)

        window = int(clock() // 60) * 60
        assert 0 < fake_redis.ttl(window_key("k", window)) <= 60

    def test_peek(self, store):
        """测试 peek 不消耗配额"""
        store.fixed_window("k", 3, 60)

        peeked = store.peek("k", FIXED_WINDOW, {"points": 3, "duration": 60})

        assert peeked.current == 1
        assert peeked.remaining == 2
        assert store.peek("k", FIXED_WINDOW, {"points": 3, "duration": 60}).current == 1


class TestSlidingWindow:
    """测试滑动窗口算法"""

    def test_window_slides(self, store, clock):
        """测试窗口滑动"""
        first = store.sliding_window("k", 2, 1)
        clock.advance(0.5)
        second = store.sliding_window("k", 2, 1)
        clock.advance(0.4)
        third = store.sliding_window("k", 2, 1)

        assert first.allowed is True
        assert first.remaining == 1
        assert second.allowed is True
        assert second.remaining == 0
        assert third.allowed is False
        assert third.current == 2
        assert third.retry_after == 1

        # 第一条记录已滑出窗口
        clock.advance(0.2)
        fourth = store.sliding_window("k", 2, 1)
        assert fourth.allowed is True
        assert fourth.current == 2
        assert fourth.remaining == 0

    def test_denied_requests_not_recorded(self, store, fake_redis):
        """测试被拒绝的请求不写入"""
        for _ in range(5):
            store.sliding_window("k", 2, 60)

        assert fake_redis.zcard("k") == 2

    def test_peek(self, store, clock):
        """测试 peek 只统计窗口内记录"""
        store.sliding_window("k", 5, 1)
        clock.advance(0.6)
        store.sliding_window("k", 5, 1)
        clock.advance(0.6)

        peeked = store.peek("k", SLIDING_WINDOW, {"points": 5, "duration": 1})

        assert peeked.current == 1
        assert peeked.remaining == 4
        assert peeked.allowed is True


class TestTokenBucket:
    """测试令牌桶算法"""

    def test_burst_then_refill(self, store, clock):
        """测试突发耗尽后按速率补充"""
        results = [store.token_bucket("k", 10, 1) for _ in range(10)]
        assert all(r.allowed for r in results)
        assert results[-1].remaining == 0

        denied = store.token_bucket("k", 10, 1)
        assert denied.allowed is False
        assert denied.retry_after == 1

        clock.advance(1)
        assert store.token_bucket("k", 10, 1).allowed is True

    def test_first_request(self, store, clock):
        """测试首次请求从满桶开始"""
        result = store.token_bucket("k", 10, 2)

        assert result.allowed is True
        assert result.remaining == 9
        assert result.current == 10
        assert result.limit == 10
        # 补满 1 个令牌需要 0.5 秒
        assert result.reset == int(clock()) + 1

    def test_capacity_is_upper_bound(self, store, clock):
        """测试令牌不超过容量"""
        store.token_bucket("k", 3, 1)
        clock.advance(100)

        result = store.token_bucket("k", 3, 1)

        assert result.current == 3
        assert result.remaining == 2

    def test_bucket_expires(self, store, fake_redis):
        """测试桶设置了过期时间"""
        store.token_bucket("k", 10, 1)

        assert 10000 < fake_redis.pttl("k") <= 11000

    def test_peek(self, store, clock):
        """测试 peek 计算补充但不消耗"""
        for _ in range(4):
            store.token_bucket("k", 4, 1)
        clock.advance(2)

        config = {"capacity": 4, "refill_rate": 1}
        peeked = store.peek("k", TOKEN_BUCKET, config)

        assert peeked.current == 2
        assert peeked.allowed is True
        assert store.peek("k", TOKEN_BUCKET, config).current == 2

    def test_peek_empty(self, store):
        """测试不存在的桶视为满桶"""
        peeked = store.peek("k", TOKEN_BUCKET, {"capacity": 4, "refill_rate": 1})

        assert peeked.current == 4
        assert peeked.remaining == 4


class TestPeekAndReset:
    """测试查询与重置"""

    def test_peek_unknown_algorithm(self, store):
        """测试未知算法"""
        with pytest.raises(ValueError):
            store.peek("k", "leaky-bucket", {})

    def test_peek_store_error(self, mock_redis_instance):
        """测试 peek 存储故障"""
        mock_redis_instance.zcount.side_effect = ConnectionError("down")
        store = RedisRateLimitStore(mock_redis_instance)

        with pytest.raises(RateLimitScriptError):
            store.peek("k", SLIDING_WINDOW, {"points": 1, "duration": 1})

    def test_reset_removes_window_counters(self, store, fake_redis, clock):
        """测试重置同时删除固定窗口计数器"""
        store.fixed_window("k", 1, 60)
        clock.advance(60)
        store.fixed_window("k", 1, 60)
        store.sliding_window("other", 1, 60)

        store.reset("k")

        assert fake_redis.keys("{k}:*") == []
        assert fake_redis.exists("other") == 1
        assert store.fixed_window("k", 1, 60).allowed is True

    def test_reset_token_bucket(self, store):
        """测试重置令牌桶"""
        store.token_bucket("k", 1, 0.01)
        assert store.token_bucket("k", 1, 0.01).allowed is False

        store.reset("k")

        assert store.token_bucket("k", 1, 0.01).allowed is True

    def test_reset_deletes_key_and_counters(self, mock_redis_instance):
        """测试删除调用"""
        mock_redis_instance.scan_iter.return_value = iter([b"{k}:60", b"{k}:120"])
        store = RedisRateLimitStore(mock_redis_instance)

        store.reset("k")

        mock_redis_instance.scan_iter.assert_called_once_with(match="{k}:*")
        mock_redis_instance.delete.assert_called_once_with("k", b"{k}:60", b"{k}:120")

    def test_reset_store_error(self, mock_redis_instance):
        """测试重置存储故障"""
        mock_redis_instance.scan_iter.side_effect = ConnectionError("down")
        store = RedisRateLimitStore(mock_redis_instance)

        with pytest.raises(RateLimitScriptError):
            store.reset("k")
