"""
Tencent is pleased to support the open source community by making 蓝鲸智云 - 监控平台 (BlueKing - Monitor) available.
Copyright (C) 2017-2025 Tencent. All rights reserved.
Licensed under the MIT License (the "License"); you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://opensource.org/licenses/MIT
Unless required by applicable law or agreed to in writing, software distributed under the License is distributed on
an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the License for the
specific language governing permissions and limitations under the License.

redis-coord 锁 Lua 脚本
"""

# Lua 脚本：原子性释放锁（验证 token 后删除）
# KEYS[1] = 锁键, ARGV[1] = token
# 返回 1 表示已删除，0 表示不属于该 token 或不存在
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
""".strip()

# Lua 脚本：原子性延长锁过期时间（验证 token 后设置新的毫秒 TTL）
# KEYS[1] = 锁键, ARGV[1] = token, ARGV[2] = TTL（毫秒）
# 返回 1 表示已延长，0 表示不属于该 token 或不存在
EXTEND_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("pexpire", KEYS[1], ARGV[2])
else
  return 0
end
""".strip()
