"""
File-backed record store for one collection
Caches the parsed JSON file for a short TTL and tracks the highest numeric id
"""
import asyncio
import copy
import json
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from .write_coordinator import WriteCoordinator

logger = logging.getLogger(__name__)


@dataclass
class CachedValue:
    value: Any
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at


def numeric_id(record) -> int:
    """Integer id of a record, 0 when missing or not numeric"""
    if not isinstance(record, dict):
        return 0
    value = record.get("id")
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def max_id(records) -> int:
    if not isinstance(records, list):
        return 0
    return max((numeric_id(r) for r in records), default=0)


def _load_json(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class RecordStore:
    """
    Cached JSON file holding one collection.

    The file on disk is the source of truth and is rewritten wholesale on
    every write. Reads are served from memory while the cached copy is
    younger than cache_ttl. I/O failures are logged and reported as a
    False return or a fallback value, never raised.
    """

    def __init__(
        self,
        collection: str,
        path,
        expected_type: type = list,
        default_factory: Callable[[], Any] = list,
        cache_ttl: float = 5.0,
        id_cache_ttl: Optional[float] = None,
        coordinator: Optional[WriteCoordinator] = None,
        persist_missing: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collection = collection
        self.path = Path(path)
        self.expected_type = expected_type
        self.default_factory = default_factory
        self.cache_ttl = cache_ttl
        self.id_cache_ttl = cache_ttl if id_cache_ttl is None else id_cache_ttl
        self.coordinator = coordinator or WriteCoordinator(collection)
        self.persist_missing = persist_missing
        self.clock = clock

        self._cache: Optional[CachedValue] = None
        self._last_good: Any = None
        self._max_id: Optional[CachedValue] = None
        self._issued_max = 0

    def _fresh(self, cached: Optional[CachedValue], ttl: float) -> bool:
        return cached is not None and cached.age(self.clock()) < ttl

    def _fallback(self):
        if self._last_good is not None:
            return copy.deepcopy(self._last_good)
        return self.default_factory()

    def invalidate(self) -> None:
        """Drop the cached copy so the next read goes to disk"""
        self._cache = None

    def _remember(self, data) -> None:
        now = self.clock()
        self._cache = CachedValue(data, now)
        self._last_good = data
        if self.expected_type is list:
            self._max_id = CachedValue(max_id(data), now)

    def _committed(self, snapshot) -> None:
        self.invalidate()
        self._last_good = snapshot
        if self.expected_type is list:
            self._max_id = CachedValue(max_id(snapshot), self.clock())

    async def _read_disk(self):
        """Collection as stored on disk, a fallback when unreadable, None when missing"""
        try:
            data = await asyncio.to_thread(_load_json, self.path)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"[{self.collection}] corrupt data in {self.path}: {e}")
            return self._fallback()
        except OSError as e:
            logger.error(f"[{self.collection}] error reading {self.path}: {e}")
            return self._fallback()

        if not isinstance(data, self.expected_type):
            logger.error(
                f"[{self.collection}] invalid data format in {self.path}: "
                f"expected {self.expected_type.__name__}, got {type(data).__name__}"
            )
            return self._fallback()

        self._remember(data)
        return copy.deepcopy(data)

    async def read(self):
        """Return the collection, from cache when fresh, else from disk"""
        if self._fresh(self._cache, self.cache_ttl):
            return copy.deepcopy(self._cache.value)

        data = await self._read_disk()
        if data is None:
            data = self.default_factory()
            if self.persist_missing:
                logger.info(f"[{self.collection}] {self.path} missing, creating it")
                await self.write(data)
        return data

    def _check_type(self, records) -> bool:
        if isinstance(records, self.expected_type):
            return True
        logger.error(
            f"[{self.collection}] refusing to write {type(records).__name__}, "
            f"expected {self.expected_type.__name__}"
        )
        return False

    async def write(self, records) -> bool:
        """Persist records atomically; False on any failure"""
        if not self._check_type(records):
            return False

        snapshot = copy.deepcopy(records)
        ok = await self.coordinator.write_json(self.path, snapshot)
        if not ok:
            # Cache stays as it was so readers keep the last known good data
            return False

        self._committed(snapshot)
        return True

    async def mutate(self, change):
        """
        Read-modify-write of the whole collection under the write lock.

        change gets the records as currently on disk and returns
        (new_records, result). Exceptions raised by change propagate and
        nothing is written. Returns (True, result) once the file is replaced,
        (False, None) when the lock or the write failed.
        """
        if not await self.coordinator.acquire():
            logger.warning(
                f"[{self.collection}] could not acquire write lock after "
                f"{self.coordinator.max_attempts} attempts"
            )
            return False, None

        try:
            records = await self._read_disk()
            if records is None:
                records = self.default_factory()

            records, result = change(records)
            if not self._check_type(records):
                return False, None

            snapshot = copy.deepcopy(records)
            try:
                await self.coordinator.replace_json(self.path, snapshot)
            except Exception as e:
                logger.error(f"[{self.collection}] write failed: {e}")
                return False, None

            self._committed(snapshot)
            return True, result
        finally:
            self.coordinator.release()

    def next_id(self, records, refresh: bool = False) -> int:
        """
        Next id to assign: the highest numeric id plus one.

        The max id is cached for id_cache_ttl and refreshed by every write.
        Ids handed out earlier by this store are never returned again, even
        after the records holding them are deleted.
        """
        if refresh or not self._fresh(self._max_id, self.id_cache_ttl):
            self._max_id = CachedValue(max_id(records), self.clock())
        highest = max(self._max_id.value, self._issued_max)
        new_id = highest + 1
        self._issued_max = new_id
        return new_id
