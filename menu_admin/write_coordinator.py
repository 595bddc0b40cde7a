"""
Serialized atomic JSON writes for one collection
A process-local lock with bounded retry/backoff around temp-file-then-rename writes
"""
import asyncio
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _atomic_replace(path: Path, tmp_path: Path, data) -> None:
    """Write data next to path, then rename it over path"""
    text = json.dumps(data, indent=2, ensure_ascii=False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temp file {tmp_path}: {e}")
        raise


class WriteCoordinator:
    """
    Owns the write lock for a single collection.

    Writers never queue on the lock: a writer that finds it held sleeps
    base_delay * attempt and tries again, giving up after max_attempts.
    Only coordinates coroutines inside this process.
    """

    def __init__(self, collection: str, max_attempts: int = 5, base_delay: float = 0.05):
        self.collection = collection
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = base_delay
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self) -> bool:
        """Try to take the lock within the retry budget"""
        for attempt in range(1, self.max_attempts + 1):
            if not self._lock.locked():
                # An uncontended acquire completes without yielding
                await self._lock.acquire()
                return True
            if attempt < self.max_attempts:
                logger.debug(
                    f"[{self.collection}] write lock busy, retry {attempt}/{self.max_attempts}"
                )
                await asyncio.sleep(self.base_delay * attempt)
        return False

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()

    async def with_lock(self, operation) -> bool:
        """Run an async operation while holding the lock, reporting success as a bool"""
        if not await self.acquire():
            logger.warning(
                f"[{self.collection}] could not acquire write lock after {self.max_attempts} attempts"
            )
            return False
        try:
            await operation()
            return True
        except Exception as e:
            logger.error(f"[{self.collection}] write failed: {e}")
            return False
        finally:
            self.release()

    async def write_json(self, path, data) -> bool:
        """Atomically replace path with pretty-printed JSON"""
        return await self.with_lock(lambda: self.replace_json(path, data))

    async def replace_json(self, path, data) -> None:
        """Atomic replace for a caller already holding the lock; raises on failure"""
        path = Path(path)
        tmp_path = path.with_name(path.name + ".tmp")
        await asyncio.to_thread(_atomic_replace, path, tmp_path, data)
