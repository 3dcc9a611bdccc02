from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)

# Marker names shared by the search policy and the sync/icon handlers
ITEMS_CACHE = "bw-items"
FOLDERS_CACHE = "bw-folders"
SYNC_CACHE = "bw-sync"
ICON_CACHE = "bw-icon-cache"
AUTO_FETCH_CACHE = "bw-auto-fetch"
LAST_USAGE_CACHE = "bw-last-usage"


class MarkerCache:
    """
    Directory of named cache slots ("markers"), one file per marker.

    - A marker's last-write time is the file mtime, set explicitly from the
      injected clock on every `store()` so age checks use the same clock.
    - A marker that was never written does not exist and is always expired.
    - No locking: concurrent writers to the same marker are last-writer-wins.
    """

    def __init__(self, directory: os.PathLike[str] | str, *, clock: Callable[[], float] = time.time) -> None:
        self._dir = Path(directory)
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._dir

    def path(self, name: str) -> Path:
        return self._dir / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def age(self, name: str) -> Optional[float]:
        """Seconds since the marker was last written, or None if absent."""
        try:
            mtime = self.path(name).stat().st_mtime
        except OSError:
            return None
        return self._clock() - mtime

    def expired(self, name: str, max_age: float) -> bool:
        age = self.age(name)
        if age is None:
            return True
        return age > max_age

    def store(self, name: str, data: bytes) -> None:
        path = self.path(name)
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{name}.tmp")
        tmp.write_bytes(data)
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
        now = self._clock()
        os.utime(path, (now, now))

    def load(self, name: str) -> bytes:
        """Return the stored payload. Raises FileNotFoundError if absent."""
        return self.path(name).read_bytes()

    def store_json(self, name: str, value: Any) -> None:
        self.store(name, json.dumps(value, separators=(",", ":")).encode("utf-8"))

    def load_json(self, name: str) -> Any:
        return json.loads(self.load(name).decode("utf-8"))

    def touch(self, name: str) -> None:
        """Write the current Unix timestamp as the marker payload."""
        self.store(name, str(int(self._clock())).encode("utf-8"))

    def timestamp(self, name: str) -> Optional[int]:
        """Parse a timestamp marker written by `touch()`; None if absent or invalid."""
        try:
            return int(self.load(name).decode("utf-8").strip())
        except (OSError, ValueError):
            return None

    def remove(self, name: str) -> None:
        try:
            self.path(name).unlink()
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        """Remove every marker file in the directory (subdirectories are kept)."""
        if not self._dir.is_dir():
            return
        for entry in self._dir.iterdir():
            if entry.is_file():
                try:
                    entry.unlink()
                except OSError as exc:
                    logger.warning("Could not remove cache file %s: %s", entry, exc)
