# 存储后端抽象——内存 / Redis
#
# 映射表以 Redis 的 HASH + SET 形式持久化，接口只暴露这几种操作：
# - hset_fields / hgetall：单条记录
# - sadd / srem / smembers：全部记录 id 的集合
# - delete：删除单条记录
# 各操作之间没有事务，失败时抛 StoreError，由调用方决定如何处理。
# 未配置或 memory 时用内存后端。

import os
from typing import Dict, List, Optional, Set


class StoreError(Exception):
    """存储访问失败（连接、超时等），携带操作名与 key 便于排障。"""

    def __init__(self, operation: str, key: str, reason: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(f"{operation} {key} 失败: {reason}")


class KeyValueStore:
    """统一存储接口：由具体实现提供，所有方法均为协程。"""

    async def hset_fields(self, key: str, fields: Dict[str, str]) -> None:
        raise NotImplementedError

    async def hgetall(self, key: str) -> Dict[str, str]:
        raise NotImplementedError

    async def sadd(self, set_key: str, member: str) -> None:
        raise NotImplementedError

    async def srem(self, set_key: str, member: str) -> None:
        raise NotImplementedError

    async def smembers(self, set_key: str) -> List[str]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryStore(KeyValueStore):
    """内存后端：进程内 dict，重启丢失。"""

    def __init__(self) -> None:
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._sets: Dict[str, Set[str]] = {}

    async def hset_fields(self, key: str, fields: Dict[str, str]) -> None:
        self._hashes.setdefault(key, {}).update({k: str(v) for k, v in fields.items()})

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key) or {})

    async def sadd(self, set_key: str, member: str) -> None:
        self._sets.setdefault(set_key, set()).add(str(member))

    async def srem(self, set_key: str, member: str) -> None:
        members = self._sets.get(set_key)
        if members is not None:
            members.discard(str(member))
            if not members:
                del self._sets[set_key]

    async def smembers(self, set_key: str) -> List[str]:
        return list(self._sets.get(set_key) or ())

    async def delete(self, key: str) -> None:
        self._hashes.pop(key, None)
        self._sets.pop(key, None)


_backend_instance: Optional[KeyValueStore] = None


def get_backend() -> KeyValueStore:
    """根据环境变量返回当前存储后端（单例）：memory | redis。"""
    global _backend_instance
    if _backend_instance is not None:
        return _backend_instance
    backend = (os.getenv("RELAY_STORAGE") or "memory").lower()
    if backend == "redis":
        url = os.getenv("REDIS_URL", "")
        if url:
            from webhook_relay.config import REDIS_SOCKET_TIMEOUT
            from webhook_relay.storage.redis_backend import RedisStore
            _backend_instance = RedisStore(url, socket_timeout=REDIS_SOCKET_TIMEOUT)
            return _backend_instance
    _backend_instance = MemoryStore()
    return _backend_instance


def reset_backend() -> None:
    """丢弃单例（测试或切换配置后使用）。"""
    global _backend_instance
    _backend_instance = None
