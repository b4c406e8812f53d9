"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 限流 Lua 脚本

每个算法都是单个原子脚本，检查与写入之间不存在竞态
"""

# Lua 脚本：固定窗口
# KEYS[1] = 限流键
# ARGV = (最大请求数, 窗口时长（秒）, 当前时间（秒）)
# 返回 {allowed, remaining, window_end, current}
# 计数器键为 {key}:<窗口起点>，仅在创建时设置过期时间
FIXED_WINDOW_SCRIPT = """
local key = KEYS[1]
local max_points = tonumber(ARGV[1])
local duration = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local window = math.floor(now / duration) * duration
local window_key = '{' .. key .. '}:' .. window

local current = redis.call('INCR', window_key)

if current == 1 then
  redis.call('EXPIRE', window_key, duration)
end

local allowed = current <= max_points
local remaining = math.max(0, max_points - current)
local reset = window + duration

return {allowed and 1 or 0, remaining, reset, current}
""".strip()

# Lua 脚本：滑动窗口日志
# KEYS[1] = 限流键（Sorted Set）
# ARGV = (最大请求数, 窗口时长（秒）, 当前时间（毫秒）, 请求唯一 ID)
# 返回 {allowed, remaining, window_end, current, retry_after?}
# retry_after 不做下限截断，调用方与 Redis 时钟偏差时可能为负数
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local max_points = tonumber(ARGV[1])
local duration = tonumber(ARGV[2]) * 1000
local now = tonumber(ARGV[3])
local request_id = ARGV[4]

local window_start = now - duration

redis.call('ZREMRANGEBYSCORE', key, '-inf', window_start)

local current = redis.call('ZCARD', key)

if current < max_points then
  redis.call('ZADD', key, now, request_id)
  redis.call('PEXPIRE', key, duration)

  return {1, max_points - current - 1, math.ceil((now + duration) / 1000), current + 1}
else
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  local retry_after = 0
  if #oldest > 0 then
    retry_after = math.ceil((tonumber(oldest[2]) + duration - now) / 1000)
  end

  return {0, 0, math.ceil((now + duration) / 1000), current, retry_after}
end
""".strip()

# Lua 脚本：令牌桶
# KEYS[1] = 限流键（Hash: tokens, last_refill）
# ARGV = (容量, 每秒补充令牌数, 当前时间（毫秒）, 本次消耗令牌数)
# 返回 {allowed, remaining_tokens, reset_epoch_sec, current_tokens, retry_after?}
# 过期时间为"补满所需时间 + 1 秒"，空闲的桶会自动过期
TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local consume = tonumber(ARGV[4]) or 1

local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens = tonumber(bucket[1]) or capacity
local last_refill = tonumber(bucket[2]) or now

local elapsed = (now - last_refill) / 1000
local refill = elapsed * refill_rate
tokens = math.min(capacity, tokens + refill)

local allowed = tokens >= consume
local new_tokens = tokens

if allowed then
  new_tokens = tokens - consume
end

redis.call('HMSET', key, 'tokens', new_tokens, 'last_refill', now)
redis.call('PEXPIRE', key, math.ceil(capacity / refill_rate * 1000) + 1000)

local retry_after = 0
if not allowed then
  retry_after = math.ceil((consume - new_tokens) / refill_rate)
end

local time_to_full = (capacity - new_tokens) / refill_rate
local reset = math.ceil(now / 1000 + time_to_full)

return {allowed and 1 or 0, math.floor(new_tokens), reset, math.floor(tokens), retry_after}
""".strip()
