from __future__ import annotations

import hashlib
import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ContentCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryCache:
    """Process-local cache. Entries live until the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class FileCache:
    """On-disk cache, one JSON document per key. Entries never expire."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Any | None:
        data_path = self._data_path(key)
        if not data_path.exists():
            logger.info("file_cache miss key=%s", self._sha1_key(key))
            return None

        try:
            value = json.loads(data_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("file_cache miss key=%s reason=invalid", self._sha1_key(key))
            return None

        logger.info("file_cache hit key=%s", self._sha1_key(key))
        return value

    def set(self, key: str, value: Any) -> None:
        data_path = self._data_path(key)
        # write then rename so concurrent readers never see a partial file
        tmp_path = data_path.with_suffix(f".{threading.get_ident()}.tmp")
        tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(data_path)

        logger.info("file_cache set key=%s", self._sha1_key(key))

    @staticmethod
    def _sha1_key(key: str) -> str:
        return hashlib.sha1(key.encode("utf-8")).hexdigest()

    def _data_path(self, key: str) -> Path:
        return self.directory / f"{self._sha1_key(key)}.cache"
