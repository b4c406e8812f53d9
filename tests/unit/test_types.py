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
from dataclasses import FrozenInstanceError

import fakeredis
import redis
from redis_coord.types import (
    ALGORITHMS,
    FIXED_WINDOW,
    SLIDING_WINDOW,
    TOKEN_BUCKET,
    LockOptions,
    RateLimitConfig,
    RateLimitResult,
    RedisClientProtocol,
    RetryPolicy,
)


class TestTypes:
    """测试数据类型"""

    def test_algorithm_names(self):
        """测试算法名称"""
        assert ALGORITHMS == (FIXED_WINDOW, SLIDING_WINDOW, TOKEN_BUCKET)
        assert FIXED_WINDOW == "fixed-window"
        assert SLIDING_WINDOW == "sliding-window"
        assert TOKEN_BUCKET == "token-bucket"

    def test_result_is_immutable(self):
        """测试限流结果不可修改"""
        result = RateLimitResult(allowed=True, limit=1, remaining=0, current=1, reset=1)
        assert result.retry_after is None

        with pytest.raises(FrozenInstanceError):
            result.allowed = False

    def test_option_defaults(self):
        """测试参数默认值均为未设置"""
        assert RateLimitConfig() == RateLimitConfig(None, None, None, None, None)
        assert LockOptions().ttl is None
        assert LockOptions().auto_renew is None

    def test_retry_policy_defaults(self):
        """测试重试策略默认值"""
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.initial_delay == 100
        assert policy.max_delay == 3000
        assert policy.multiplier == 2.0

    def test_redis_clients_match_protocol(self):
        """测试 redis-py 与 fakeredis 客户端满足客户端协议"""
        assert isinstance(redis.Redis(), RedisClientProtocol)
        assert isinstance(fakeredis.FakeRedis(), RedisClientProtocol)
        assert not isinstance(object(), RedisClientProtocol)
