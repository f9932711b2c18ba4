import os
from dotenv import load_dotenv

load_dotenv()  # 从 .env 文件加载

# ---------- 存储 ----------
# RELAY_STORAGE=memory|redis 与 REDIS_URL 由 storage.get_backend 读取
# memory：进程内，重启丢失；redis：持久化到 REDIS_URL
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))

# 与已有部署共用同一 Redis 时需保持前缀一致
RELAY_KEY_PREFIX = os.getenv("RELAY_KEY_PREFIX", "bigbluebutton:webhooks")

# ---------- HTTP ----------
RELAY_PORT = int(os.getenv("RELAY_PORT", "3005"))


def user_maps_key() -> str:
    """全部映射 id 的 SET。"""
    return f"{RELAY_KEY_PREFIX}:userMaps"


def user_map_key(mapping_id) -> str:
    """单条映射的 HASH。"""
    return f"{RELAY_KEY_PREFIX}:userMap:{mapping_id}"
