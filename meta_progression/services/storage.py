"""
Named key/value slot stores.

Every persisted aggregate lives in its own slot as one JSON document. Stores
only move strings; parsing and defaults belong to the owning component.
"""
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import redis

from meta_progression.core.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)


class SlotStore(ABC):
    """Key/value store of JSON documents"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Slot contents, or None when the slot was never written"""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, *keys: str) -> None:
        ...

    def ping(self) -> bool:
        return True


class MemorySlotStore(SlotStore):
    """In-process store, used in tests and for throwaway sessions"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.slots: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.slots.get(key)

    def set(self, key: str, value: str) -> None:
        self.slots[key] = value

    def delete(self, *keys: str) -> None:
        for key in keys:
            self.slots.pop(key, None)


class JsonFileSlotStore(SlotStore):
    """
    One ``<key>.json`` file per slot under a directory.

    Writes go to a temporary file that replaces the slot atomically, so a
    crash mid-write leaves the previous contents intact.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_name, self._path(key))
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._path(key).unlink(missing_ok=True)

    def ping(self) -> bool:
        return self.directory.is_dir() and os.access(self.directory, os.W_OK)


class RedisSlotStore(SlotStore):
    """Slots as plain Redis strings under a key prefix"""

    def __init__(self, redis_url: str, prefix: str = "meta:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.prefix = prefix
        self._client = client

    def get_client(self) -> redis.Redis:
        if not self._client:
            self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        return self.get_client().get(self._key(key))

    def set(self, key: str, value: str) -> None:
        self.get_client().set(self._key(key), value)

    def delete(self, *keys: str) -> None:
        if keys:
            self.get_client().delete(*(self._key(k) for k in keys))

    def ping(self) -> bool:
        try:
            return bool(self.get_client().ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False


def build_slot_store(config: Settings) -> SlotStore:
    """Create the store selected by ``STORAGE_BACKEND``"""
    backend = config.STORAGE_BACKEND.lower()
    if backend == "memory":
        store: SlotStore = MemorySlotStore()
    elif backend == "file":
        store = JsonFileSlotStore(config.STORAGE_DIR)
    elif backend == "redis":
        store = RedisSlotStore(config.REDIS_URL, prefix=config.STORAGE_KEY_PREFIX)
    else:
        raise ConfigurationError(f"Unknown storage backend {config.STORAGE_BACKEND!r}")

    logger.info(f"Using {type(store).__name__} for persistence")
    return store
