"""Disk backed write-back cache for Haier IoT data.

Reads are answered from an in-memory mirror; writes are coalesced and
flushed to one JSON file per key after a short debounce window. A crash
inside that window may lose the newest writes, which is acceptable because
everything cached here can be fetched from the cloud again. There is no
cross-process locking.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from urllib.parse import quote, unquote

from .const import CACHE_FLUSH_DELAY

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

FILE_SUFFIX = ".json"


def escape_key(key: str) -> str:
    """Return a filesystem-safe form of ``key``."""
    return quote(key, safe="")


def unescape_key(escaped: str) -> str:
    """Invert :func:`escape_key`."""
    return unquote(escaped)


def _identity(value: Any) -> Any:
    return value


class DiskMap(Generic[T]):
    """String-keyed cache with an in-memory mirror and debounced disk writes.

    Args:
        cache_dir: Directory holding one ``<escaped key>.json`` file per entry.
        flush_delay: Seconds to coalesce writes before flushing. Zero flushes
            every write immediately.
        encode: Converts a value to JSON-compatible data before writing.
        decode: Converts JSON data read from disk back to a value.

    """

    def __init__(
        self,
        cache_dir: Path | str,
        *,
        flush_delay: float = CACHE_FLUSH_DELAY,
        encode: Callable[[T], Any] = _identity,
        decode: Callable[[Any], T] = _identity,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._flush_delay = flush_delay
        self._encode = encode
        self._decode = decode
        self._memory: dict[str, T] = {}
        self._dirty: set[str] = set()
        self._flush_handle: asyncio.TimerHandle | None = None

    @property
    def cache_dir(self) -> Path:
        """Return the directory backing this cache."""
        return self._cache_dir

    @property
    def pending_keys(self) -> set[str]:
        """Return keys written in memory but not flushed yet."""
        return set(self._dirty)

    def _path(self, key: str) -> Path:
        return self._cache_dir / f"{escape_key(key)}{FILE_SUFFIX}"

    def _load(self, key: str) -> T | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return self._decode(data)
        except (OSError, ValueError, AttributeError, KeyError, TypeError):
            _LOGGER.warning("Failed to load cache entry %s from %s", key, path)
            return None

    def _write(self, key: str, value: T) -> None:
        path = self._path(key)
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            tmp_path.write_text(
                json.dumps(self._encode(value), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError):
            _LOGGER.exception("Failed to save cache entry %s to %s", key, path)

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            _LOGGER.exception("Failed to delete cache file %s", path)

    def _schedule_flush(self) -> None:
        if self._flush_delay <= 0:
            self.flush()
            return
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to defer to, so behave like immediate mode.
            self.flush()
            return
        self._flush_handle = loop.call_later(self._flush_delay, self._on_flush_timer)

    def _on_flush_timer(self) -> None:
        self._flush_handle = None
        self.flush()

    def flush(self) -> None:
        """Write every pending key's newest value to disk.

        Safe to call repeatedly. Keys written again while a flush is running
        are picked up by the next flush.
        """
        while self._dirty:
            key = self._dirty.pop()
            if key in self._memory:
                self._write(key, self._memory[key])
        _LOGGER.debug("Flushed cache %s", self._cache_dir)

    def close(self) -> None:
        """Cancel any scheduled flush and write pending values now."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self.flush()

    def get(self, key: str) -> T | None:
        """Return the value for ``key`` or None."""
        if key in self._memory:
            return self._memory[key]
        value = self._load(key)
        if value is not None:
            self._memory[key] = value
        return value

    def set(self, key: str, value: T) -> None:
        """Store ``value`` under ``key``; visible to ``get`` immediately."""
        self._memory[key] = value
        self._dirty.add(key)
        self._schedule_flush()

    def has(self, key: str) -> bool:
        """Return True if ``key`` is cached in memory or on disk."""
        return key in self._memory or self._path(key).is_file()

    def delete(self, key: str) -> bool:
        """Remove ``key`` from memory and disk.

        Returns:
            True if the key existed, False otherwise.

        """
        existed = self.has(key)
        self._memory.pop(key, None)
        self._dirty.discard(key)
        self._unlink(self._path(key))
        return existed

    def clear(self) -> None:
        """Remove every entry from memory and disk."""
        self._memory.clear()
        self._dirty.clear()
        for path in self._cache_dir.iterdir():
            if path.is_file():
                self._unlink(path)

    def keys(self) -> list[str]:
        """Return all cached keys."""
        keys = dict.fromkeys(self._memory)
        for path in sorted(self._cache_dir.glob(f"*{FILE_SUFFIX}")):
            keys.setdefault(unescape_key(path.name.removesuffix(FILE_SUFFIX)))
        return list(keys)

    def values(self) -> list[T]:
        """Return all readable cached values."""
        return [value for _, value in self.entries()]

    def entries(self) -> list[tuple[str, T]]:
        """Return ``(key, value)`` pairs for all readable entries."""
        pairs = []
        for key in self.keys():
            value = self.get(key)
            if value is not None:
                pairs.append((key, value))
        return pairs

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self.keys())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())
