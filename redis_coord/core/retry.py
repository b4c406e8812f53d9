# -*- coding: utf-8 -*-
"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 退避模块

提供获取锁时使用的指数退避
"""

import time
from collections.abc import Iterator

from redis_coord.types import RetryPolicy


class ExponentialBackoff:
    """
    指数退避

    不加随机抖动，等待序列是确定的：
    initial_delay, initial_delay * multiplier, ...，每一项不超过 max_delay。

    Attributes:
        policy: 重试策略

    Example:
        >>> backoff = ExponentialBackoff(RetryPolicy(max_retries=3))
        >>> list(backoff.delays())
        [100, 200, 400]
    """

    def __init__(self, policy: RetryPolicy = None):
        """
        初始化退避

        Args:
            policy: 重试策略，None 时使用默认配置
        """
        self.policy = policy or RetryPolicy()
        self._next_delay = min(self.policy.initial_delay, self.policy.max_delay)
        self._retries = 0

    @property
    def retries(self) -> int:
        """已经等待过的次数"""
        return self._retries

    @property
    def exhausted(self) -> bool:
        """重试次数是否已用完"""
        return self._retries >= self.policy.max_retries

    def next_delay(self) -> float:
        """
        取出下一次等待时间并推进序列

        Returns:
            等待时间（毫秒）
        """
        delay = self._next_delay
        self._next_delay = min(delay * self.policy.multiplier, self.policy.max_delay)
        self._retries += 1
        return delay

    def sleep(self) -> float:
        """
        阻塞等待下一次退避时间

        Returns:
            实际等待的时间（毫秒）
        """
        delay = self.next_delay()
        time.sleep(delay / 1000)
        return delay

    def delays(self) -> Iterator[float]:
        """依次产出剩余的全部等待时间（毫秒），不实际等待"""
        while not self.exhausted:
            yield self.next_delay()

    def total_delay(self) -> float:
        """整个重试过程的最长总等待时间（毫秒）"""
        return sum(ExponentialBackoff(self.policy).delays())
