# 用户映射：会议服务端内部 user_id <-> 对外暴露的 external user_id
#
# 以 internal_user_id 为索引 key（唯一，external 不保证唯一）。
# 读取只走内存；写入先落 Redis 再更新内存，启动时 resync 从 Redis 重建。
# Redis 格式：
#   * SET  "<prefix>:userMaps"      全部映射的 id（记录 id，不是会议 id）
#   * HASH "<prefix>:userMap:<id>"  每条映射的字段

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from webhook_relay.config import user_map_key, user_maps_key
from webhook_relay.storage.backend import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


@dataclass
class UserMapping:
    id: int
    internal_user_id: str
    external_user_id: str
    meeting_id: str

    def to_redis(self) -> Dict[str, str]:
        return {
            "id": str(self.id),
            "internalUserID": self.internal_user_id,
            "externalUserID": self.external_user_id,
            "meetingId": self.meeting_id,
        }

    @classmethod
    def from_redis(cls, data: Dict[str, str]) -> "UserMapping":
        """由 HASH 字段重建；缺字段或 id 非整数时抛 ValueError。"""
        missing = [f for f in ("id", "internalUserID", "externalUserID", "meetingId") if f not in data]
        if missing:
            raise ValueError(f"映射记录缺少字段: {', '.join(missing)}")
        try:
            mapping_id = int(data["id"])
        except (TypeError, ValueError):
            raise ValueError(f"映射记录 id 非整数: {data['id']!r}") from None
        return cls(
            id=mapping_id,
            internal_user_id=data["internalUserID"],
            external_user_id=data["externalUserID"],
            meeting_id=data["meetingId"],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_redis(), ensure_ascii=False)


class UserMappingRegistry:
    """
    映射表：内存索引 + Redis 持久化 + 自增 id 分配。

    Redis 写失败只记日志，不阻塞内存更新；重启后由 resync 恢复。
    假设同一 key 前缀只有一个写进程。
    """

    def __init__(
        self,
        store: KeyValueStore,
        set_key: Optional[str] = None,
        record_key: Optional[Callable[[int], str]] = None,
    ) -> None:
        self._store = store
        self._set_key = set_key or user_maps_key()
        self._record_key = record_key or user_map_key
        self._db: Dict[str, UserMapping] = {}
        self.next_id = 1

    async def _purge(self, mapping: UserMapping) -> None:
        """从 Redis 移除一条记录（集合成员 + HASH）。"""
        key = self._record_key(mapping.id)
        try:
            await self._store.srem(self._set_key, str(mapping.id))
        except StoreError as e:
            logger.error("映射 id 移出集合失败 id=%s: %s", mapping.id, e)
        try:
            await self._store.delete(key)
        except StoreError as e:
            logger.error("从 Redis 删除映射失败 key=%s: %s", key, e)

    async def _save(self, mapping: UserMapping) -> bool:
        """落库后写入内存索引；同一 internal_user_id 只保留 id 最大的一条，另一条从 Redis 清掉。"""
        key = self._record_key(mapping.id)
        try:
            await self._store.hset_fields(key, mapping.to_redis())
        except StoreError as e:
            logger.error("保存映射到 Redis 失败 key=%s: %s", key, e)
        try:
            await self._store.sadd(self._set_key, str(mapping.id))
        except StoreError as e:
            logger.error("映射 id 加入集合失败 id=%s: %s", mapping.id, e)
        current = self._db.get(mapping.internal_user_id)
        if current is not None and current.id > mapping.id:
            stale, kept = mapping, False
        else:
            self._db[mapping.internal_user_id] = mapping
            stale = current if current is not None and current.id != mapping.id else None
            kept = True
        if stale is not None:
            logger.info("清理被覆盖的用户映射 %s: %s", stale.internal_user_id, stale.to_json())
            await self._purge(stale)
        return kept

    async def _destroy(self, mapping: UserMapping) -> bool:
        await self._purge(mapping)
        # 等待期间同一 internal_user_id 可能已被新映射覆盖，只删自己
        current = self._db.get(mapping.internal_user_id)
        if current is not None and current.id == mapping.id:
            del self._db[mapping.internal_user_id]
            return True
        return False

    async def add_mapping(self, internal_user_id: str, external_user_id: str, meeting_id: str) -> UserMapping:
        """新建映射并落库；id 先分配，写库失败也不回收。"""
        mapping = UserMapping(
            id=self.next_id,
            internal_user_id=internal_user_id,
            external_user_id=external_user_id,
            meeting_id=meeting_id,
        )
        self.next_id += 1
        await self._save(mapping)
        logger.info("已添加用户映射 %s: %s", internal_user_id, mapping.to_json())
        return mapping

    async def _destroy_all(self, matches: List[UserMapping]) -> int:
        results = await asyncio.gather(*(self._destroy(m) for m in matches))
        for m, removed in zip(matches, results):
            if removed:
                logger.info("已移除用户映射 %s: %s", m.internal_user_id, m.to_json())
        return sum(1 for r in results if r)

    async def remove_mapping(self, internal_user_id: str) -> int:
        """移除该 internal_user_id 的映射，等全部删除完成后返回移除条数。"""
        matches = [m for m in list(self._db.values()) if m.internal_user_id == internal_user_id]
        return await self._destroy_all(matches)

    async def remove_mappings_by_meeting(self, meeting_id: str) -> int:
        """会议结束时移除该会议下全部映射。"""
        matches = [m for m in list(self._db.values()) if m.meeting_id == meeting_id]
        return await self._destroy_all(matches)

    def get_external_user_id(self, internal_user_id: str) -> Optional[str]:
        mapping = self._db.get(internal_user_id)
        return mapping.external_user_id if mapping else None

    def all(self) -> List[UserMapping]:
        return list(self._db.values())

    async def _restore(self, mapping_id: str) -> Optional[UserMapping]:
        key = self._record_key(mapping_id)
        try:
            data = await self._store.hgetall(key)
        except StoreError as e:
            logger.error("读取映射失败 key=%s: %s", key, e)
            return None
        if not data:
            logger.debug("集合中的映射 id=%s 无对应记录，跳过", mapping_id)
            return None
        try:
            mapping = UserMapping.from_redis(data)
        except ValueError as e:
            logger.warning("映射记录格式错误 key=%s，跳过: %s", key, e)
            return None
        if mapping.id >= self.next_id:
            self.next_id = mapping.id + 1
        await self._save(mapping)
        return mapping

    async def resync(self) -> int:
        """从 Redis 重建内存索引，全部恢复完成后返回重建条数。"""
        try:
            ids = await self._store.smembers(self._set_key)
        except StoreError as e:
            logger.error("获取映射列表失败: %s", e)
            return 0
        restored = await asyncio.gather(*(self._restore(i) for i in ids))
        # 同一 internal_user_id 有多条时只计最终留在索引中的那条
        count = sum(1 for m in restored if m is not None and self._db.get(m.internal_user_id) is m)
        logger.info("映射 resync 完成，当前映射: %s", [m.to_json() for m in self.all()])
        return count

    async def initialize(self) -> int:
        """启动时调用：在投递 webhook 前先完成 resync。"""
        return await self.resync()
