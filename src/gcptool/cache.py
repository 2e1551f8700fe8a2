"""
File-backed TTL cache shared by every gcptool invocation.

One file per key under the cache directory, holding plain newline separated
rows. The file's modification time is the entry's write time, so an entry is
either wholly fresh or wholly stale. Writes go to a temporary file in the same
directory and are renamed over the target, so a concurrent reader sees the old
rows or the new rows and never a torn file.
"""

import os
import tempfile
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .core import CACHE_TTL_SECONDS
from .logger import logger

CACHE_SUFFIX = ".cache"


@dataclass(frozen=True)
class CacheEntry:
    rows: list[str]
    written_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.written_at < ttl


class CacheStore:
    def __init__(
        self,
        root: Path,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.ttl = ttl
        self.clock = clock

    def path_for(self, key: str) -> Path:
        return self.root / f"{key.replace('/', '_')}{CACHE_SUFFIX}"

    def read(self, key: str) -> CacheEntry | None:
        """Returns the stored entry regardless of age, or None on a miss."""
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as f:
                # fstat the open handle: a rename after open must not mix the
                # new timestamp with the old rows.
                written_at = os.fstat(f.fileno()).st_mtime
                rows = [line for line in f.read().splitlines() if line]
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Unreadable cache file {path}: {e}")
            return None
        return CacheEntry(rows=rows, written_at=written_at)

    def get(self, key: str) -> tuple[list[str] | None, bool]:
        entry = self.read(key)
        if entry is None:
            logger.debug(f"cache miss: {key}")
            return None, False
        fresh = entry.is_fresh(self.clock(), self.ttl)
        logger.debug(f"cache {'hit' if fresh else 'stale'}: {key}")
        return entry.rows, fresh

    def put(self, key: str, rows: Iterable[str]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path_for(key)
        payload = "".join(f"{row}\n" for row in rows)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.root, prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            now = self.clock()
            os.utime(tmp_name, (now, now))
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"cache write: {key}")

    def invalidate(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
        logger.debug(f"cache invalidated: {key}")

    def invalidate_all(self) -> int:
        """Removes every cache file. Returns how many were deleted."""
        if not self.root.is_dir():
            return 0
        removed = 0
        for path in self.root.glob(f"*{CACHE_SUFFIX}"):
            path.unlink(missing_ok=True)
            removed += 1
        return removed
