# 映射表持久化：内存 / Redis

from webhook_relay.storage.backend import (
    KeyValueStore,
    MemoryStore,
    StoreError,
    get_backend,
    reset_backend,
)

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "StoreError",
    "get_backend",
    "reset_backend",
]
