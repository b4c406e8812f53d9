"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 限流基础模块

定义限流存储的接口
"""

from abc import ABC, abstractmethod

from redis_coord.types import RateLimitResult


class BaseRateLimitStore(ABC):
    """
    限流存储基类

    每个算法对应一次原子操作。实现类在存储故障时抛出 RateLimitScriptError。
    """

    def load_scripts(self) -> None:
        """预加载存储所需的脚本，默认无操作"""

    @abstractmethod
    def fixed_window(self, key: str, points: int, duration: int) -> RateLimitResult:
        """
        固定窗口检查并计数

        Args:
            key: 完整限流键
            points: 窗口内最大请求数
            duration: 窗口时长（秒）
        """
        pass

    @abstractmethod
    def sliding_window(
        self, key: str, points: int, duration: int
    ) -> RateLimitResult:
        """
        滑动窗口检查并记录本次请求

        Args:
            key: 完整限流键
            points: 窗口内最大请求数
            duration: 窗口时长（秒）
        """
        pass

    @abstractmethod
    def token_bucket(
        self, key: str, capacity: int, refill_rate: float, consume: int = 1
    ) -> RateLimitResult:
        """
        令牌桶检查并消耗令牌

        Args:
            key: 完整限流键
            capacity: 桶容量
            refill_rate: 每秒补充令牌数
            consume: 本次消耗的令牌数
        """
        pass

    @abstractmethod
    def peek(self, key: str, algorithm: str, config: dict) -> RateLimitResult:
        """
        读取当前状态，不消耗配额

        Args:
            key: 完整限流键
            algorithm: 算法名称
            config: 算法参数（points/duration 或 capacity/refill_rate）
        """
        pass

    @abstractmethod
    def reset(self, key: str) -> None:
        """清除限流键的全部状态"""
        pass
