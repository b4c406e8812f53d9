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
import threading
import time
from redis import Redis
from redis_coord import (
    LockOptions,
    RateLimitConfig,
    RateLimitSettings,
    create_lock_service,
    create_rate_limit_service,
)
from redis_coord.config.schema import AutoRenewConfig, LocksConfig
from redis_coord.exceptions import LockNotOwnedError
from redis_coord.types import RetryPolicy


# 集成测试需要真实的 Redis 实例
# 运行时: pytest -m integration

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def redis_client():
    """创建真实的 Redis 客户端用于集成测试"""
    try:
        client = Redis(host="localhost", port=6379, db=15, decode_responses=True)
        client.ping()
    except Exception as e:
        pytest.skip(f"Redis is not available: {e}")
    yield client
    # 清理测试数据
    client.flushdb()


@pytest.fixture(scope="function")
def clean_redis(redis_client):
    """每个测试前后清理数据"""
    redis_client.flushdb()
    yield redis_client
    redis_client.flushdb()


class TestLockIntegration:
    """分布式锁集成测试"""

    def test_acquire_release(self, clean_redis):
        """测试获取与释放的端到端流程"""
        service = create_lock_service(clean_redis)

        lock = service.acquire("order:1", LockOptions(ttl=5000, auto_renew=False))

        assert clean_redis.get("_lock:order:1") == lock.token
        assert 0 < clean_redis.pttl("_lock:order:1") <= 5000

        lock.release()
        assert clean_redis.exists("_lock:order:1") == 0

    def test_mutual_exclusion_across_clients(self, clean_redis):
        """测试多个客户端之间互斥"""
        config = LocksConfig(
            retry=RetryPolicy(max_retries=500, initial_delay=2, max_delay=10),
            auto_renew=AutoRenewConfig(enabled=False),
        )
        counter = {"value": 0}

        def worker():
            client = Redis(host="localhost", port=6379, db=15, decode_responses=True)
            service = create_lock_service(client, config)

            def increment():
                current = counter["value"]
                time.sleep(0.001)
                counter["value"] = current + 1

            for _ in range(10):
                service.with_lock("counter", increment)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter["value"] == 40

    def test_lost_lock_cannot_be_released(self, clean_redis):
        """测试锁过期后被他人获取，原持有者无法释放"""
        service = create_lock_service(clean_redis)

        lock = service.acquire("job", LockOptions(ttl=100, auto_renew=False))
        time.sleep(0.2)
        other = service.try_acquire("job", LockOptions(auto_renew=False))
        assert other is not None

        with pytest.raises(LockNotOwnedError):
            lock.release()
        assert other.is_held() is True
        other.release()

    def test_script_flush_recovery(self, clean_redis):
        """测试脚本缓存被清空后仍能释放"""
        service = create_lock_service(clean_redis)
        lock = service.acquire("job", LockOptions(auto_renew=False))

        clean_redis.script_flush()

        lock.release()
        assert clean_redis.exists("_lock:job") == 0


class TestRateLimitIntegration:
    """限流集成测试"""

    def test_fixed_window(self, clean_redis):
        """测试固定窗口"""
        service = create_rate_limit_service(clean_redis)
        config = RateLimitConfig(algorithm="fixed-window", points=3, duration=60)

        results = [service.check("api", config) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[-1].retry_after > 0

    def test_token_bucket_refill(self, clean_redis):
        """测试令牌桶补充"""
        service = create_rate_limit_service(clean_redis)
        config = RateLimitConfig(algorithm="token-bucket", capacity=2, refill_rate=10)

        assert service.check("api", config).allowed is True
        assert service.check("api", config).allowed is True
        assert service.check("api", config).allowed is False

        time.sleep(0.15)
        assert service.check("api", config).allowed is True

    def test_reset(self, clean_redis):
        """测试重置清理全部键"""
        service = create_rate_limit_service(
            clean_redis, RateLimitSettings(default_algorithm="fixed-window")
        )
        service.check("api")
        service.check("api", RateLimitConfig(algorithm="sliding-window"))

        service.reset("api")

        assert clean_redis.keys("*") == []
