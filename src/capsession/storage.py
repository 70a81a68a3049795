import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from redis.asyncio import Redis

if TYPE_CHECKING:
    from capsession.config import Settings

logger = logging.getLogger("capsession.storage")


class KeyValueStorage(Protocol):
    async def load_string(self, key: str) -> str | None: ...

    async def save_string(self, key: str, value: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def load_string(self, key: str) -> str | None:
        return self.values.get(key)

    async def save_string(self, key: str, value: str) -> None:
        self.values[key] = value

    async def clear(self) -> None:
        self.values.clear()


class FileStorage:
    """Every slot lives in one JSON object on disk, rewritten on each save."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self._path} does not hold a JSON object")
        return {str(key): str(value) for key, value in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)

    def _save(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _clear(self) -> None:
        self._path.unlink(missing_ok=True)

    async def load_string(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def save_string(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._save, key, value)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)


class RedisStorage:
    def __init__(self, client: Redis, *, key_prefix: str = "capsession:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "capsession:") -> "RedisStorage":
        return cls(Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def load_string(self, key: str) -> str | None:
        value = await self._client.get(self._key(key))
        if value is None:
            return None
        return str(value)

    async def save_string(self, key: str, value: str) -> None:
        await self._client.set(self._key(key), value)

    async def clear(self) -> None:
        keys = [key async for key in self._client.scan_iter(match=f"{self._key_prefix}*")]
        if keys:
            await self._client.delete(*keys)


def build_storage(settings: "Settings") -> KeyValueStorage:
    backend = settings.storage_backend.lower()
    logger.info(
        "storage_selected",
        extra={"event_name": "storage_selected", "storage_backend": backend},
    )
    if backend == "memory":
        return MemoryStorage()
    if backend == "file":
        return FileStorage(settings.storage_path)
    if backend == "redis":
        return RedisStorage.from_url(settings.redis_url, key_prefix=settings.storage_key_prefix)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
