"""
JSON File Storage Implementation

All keys live in one JSON object on disk: `{"<key>": "<serialized value>"}`.

- Writes go to a temporary file that then replaces the data file, so a
  crash mid-write never leaves a truncated file behind
- File I/O runs in a worker thread (asyncio.to_thread)
- Transient OSErrors are retried before surfacing as StorageError
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional, Union

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintra.services.storage.interface import KeyValueStoreInterface, StorageError


_io_retry = retry(
    retry=retry_if_exception_type(OSError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    reraise=True,
)


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """Key-value store persisted to a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._data: Optional[dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise StorageError(f"{self._path} does not hold a JSON object")
        return {str(key): str(value) for key, value in data.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(data, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._path)

    @_io_retry
    async def _read(self) -> dict[str, str]:
        return await asyncio.to_thread(self._read_file)

    @_io_retry
    async def _write(self, data: dict[str, str]) -> None:
        await asyncio.to_thread(self._write_file, data)

    async def _load(self) -> dict[str, str]:
        if self._data is None:
            try:
                self._data = await self._read()
            except (OSError, ValueError) as e:
                raise StorageError(f"Failed to read {self._path}: {e}") from e
        return self._data

    async def _commit(self, data: dict[str, str]) -> None:
        try:
            await self._write(data)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {self._path}: {e}") from e
        self._data = data

    async def get(self, key: str) -> Optional[str]:
        data = await self._load()
        return data.get(key)

    async def set(self, key: str, value: str) -> bool:
        data = dict(await self._load())
        data[key] = value
        await self._commit(data)
        return True

    async def delete(self, key: str) -> bool:
        data = dict(await self._load())
        if key not in data:
            return False
        del data[key]
        await self._commit(data)
        return True

    async def keys(self) -> list[str]:
        return list(await self._load())

    def invalidate(self) -> None:
        """Forget the cached content so the next read goes to disk."""
        self._data = None
