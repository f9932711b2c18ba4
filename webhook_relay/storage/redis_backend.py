# Redis 后端：RELAY_STORAGE=redis, REDIS_URL=redis://host:6379/0
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from webhook_relay.storage.backend import KeyValueStore, StoreError


class RedisStore(KeyValueStore):
    """基于 redis.asyncio 的后端；RedisError 统一转成 StoreError。"""

    def __init__(self, url: str = "", socket_timeout: Optional[float] = None, client: Any = None) -> None:
        if client is None:
            client = aioredis.Redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        self._client = client

    async def hset_fields(self, key: str, fields: Dict[str, str]) -> None:
        try:
            await self._client.hset(key, mapping=fields)
        except RedisError as e:
            raise StoreError("hset", key, e) from e

    async def hgetall(self, key: str) -> Dict[str, str]:
        try:
            data = await self._client.hgetall(key)
        except RedisError as e:
            raise StoreError("hgetall", key, e) from e
        return dict(data or {})

    async def sadd(self, set_key: str, member: str) -> None:
        try:
            await self._client.sadd(set_key, member)
        except RedisError as e:
            raise StoreError("sadd", set_key, e) from e

    async def srem(self, set_key: str, member: str) -> None:
        try:
            await self._client.srem(set_key, member)
        except RedisError as e:
            raise StoreError("srem", set_key, e) from e

    async def smembers(self, set_key: str) -> List[str]:
        try:
            members = await self._client.smembers(set_key)
        except RedisError as e:
            raise StoreError("smembers", set_key, e) from e
        return list(members or ())

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreError("del", key, e) from e

    async def close(self) -> None:
        await self._client.aclose()
