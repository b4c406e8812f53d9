"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.
"""

import time

import fakeredis
import pytest
from unittest.mock import MagicMock

from redis_coord.config.schema import AutoRenewConfig, LocksConfig, RateLimitSettings
from redis_coord.types import RetryPolicy


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: tests that need a real Redis on localhost:6379"
    )


class FakeClock:
    """可手动推进的时钟，内部以毫秒计，避免浮点误差"""

    def __init__(self, start: float = None):
        if start is None:
            start = time.time()
        self._ms = int(start * 1000)

    def __call__(self) -> float:
        return self._ms / 1000

    def advance(self, seconds: float) -> None:
        self._ms += round(seconds * 1000)


@pytest.fixture
def mock_redis_instance():
    """创建 Mock Redis 实例"""
    instance = MagicMock()
    instance.script_load.return_value = "sha"
    instance.evalsha.return_value = 1
    instance.get.return_value = None
    instance.set.return_value = True
    instance.delete.return_value = 1
    instance.exists.return_value = 0
    instance.scan_iter.return_value = iter([])
    return instance


@pytest.fixture
def fake_server():
    """共享的 fakeredis 服务端，多个客户端可模拟多个进程"""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(fake_server):
    """支持 Lua 的 fakeredis 客户端"""
    client = fakeredis.FakeRedis(server=fake_server)
    yield client
    client.flushall()


@pytest.fixture
def clock():
    """从整秒开始的可控时钟"""
    return FakeClock(float(int(time.time())))


@pytest.fixture
def fast_locks_config():
    """重试等待很短、默认不自动续期的锁配置"""
    return LocksConfig(
        default_ttl=10000,
        max_ttl=300000,
        retry=RetryPolicy(max_retries=3, initial_delay=1, max_delay=5),
        auto_renew=AutoRenewConfig(enabled=False),
    )


@pytest.fixture
def rate_limit_settings():
    """默认限流配置"""
    return RateLimitSettings()
