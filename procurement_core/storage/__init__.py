"""Record store backends and the factory that selects one from settings."""

from typing import Optional

from procurement_core.settings import Settings, settings as default_settings
from procurement_core.storage.memory import InMemoryRecordStore
from procurement_core.storage.store import FieldFilter, Record, RecordStore


def create_store(config: Optional[Settings] = None) -> RecordStore:
    """Build the record store named by ``STORE_BACKEND``."""
    config = config or default_settings
    backend = config.STORE_BACKEND.lower()

    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "redis":
        from procurement_core.storage.redis import RedisRecordStore
        return RedisRecordStore(redis_url=config.REDIS_URL, key_prefix=config.REDIS_KEY_PREFIX)
    raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND!r}")


__all__ = ["FieldFilter", "InMemoryRecordStore", "Record", "RecordStore", "create_store"]
