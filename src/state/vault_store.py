from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from common.cache import FOLDERS_CACHE, ITEMS_CACHE, SYNC_CACHE, MarkerCache
from .models import Folder, VaultItem


logger = logging.getLogger(__name__)

KEY_FILE_NAME = "cache.key"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def load_or_create_key(key_path: os.PathLike[str] | str) -> bytes:
    """Read the cache key, generating a fresh one (mode 0600) on first use."""
    path = Path(key_path)
    try:
        key = path.read_bytes().strip()
        if key:
            return key
    except FileNotFoundError:
        pass
    key = Fernet.generate_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    return key


def _dump_items_json(items: Sequence[VaultItem]) -> bytes:
    return json.dumps(
        [i.model_dump(by_alias=True, exclude_none=True) for i in items],
        separators=(",", ":"),
    ).encode("utf-8")


class VaultStore:
    """
    Local copy of the vault, kept in the workflow cache directory.

    - Items contain secrets and are Fernet-encrypted at rest (`bw-items`).
    - Folders are stored as plain JSON (`bw-folders`).
    - `read()` never raises for missing or unreadable data; failures are
      logged and reported as empty lists so the search policy can decide
      what to show.
    """

    def __init__(self, cache: MarkerCache, *, fernet_key: str | bytes) -> None:
        self._cache = cache
        self._fernet = _to_fernet(fernet_key)

    @classmethod
    def from_dirs(cls, cache: MarkerCache, data_dir: os.PathLike[str] | str) -> "VaultStore":
        key = load_or_create_key(Path(data_dir) / KEY_FILE_NAME)
        return cls(cache, fernet_key=key)

    def has_data(self) -> bool:
        return self._cache.exists(ITEMS_CACHE) and self._cache.exists(FOLDERS_CACHE)

    def write(self, items: Sequence[VaultItem], folders: Sequence[Folder]) -> None:
        """Persist a full sync result and refresh the sync marker."""
        self._cache.store(ITEMS_CACHE, self._fernet.encrypt(_dump_items_json(items)))
        self._cache.store_json(
            FOLDERS_CACHE, [f.model_dump(by_alias=True) for f in folders]
        )
        self._cache.touch(SYNC_CACHE)

    def read(self) -> Tuple[List[VaultItem], List[Folder]]:
        if not self.has_data():
            return ([], [])
        items = self._read_items()
        if items is None:
            return ([], [])
        return (items, self._read_folders())

    def _discard(self, reason: str) -> None:
        # Unreadable item data counts as no data; the sync marker goes with it
        logger.warning("%s; discarding cached vault data", reason)
        self.clear()

    def _read_items(self) -> Optional[List[VaultItem]]:
        try:
            decrypted = self._fernet.decrypt(self._cache.load(ITEMS_CACHE))
        except InvalidToken:
            self._discard("Error decrypting data: invalid cache key or corrupt cache")
            return None
        except OSError as exc:
            logger.warning("Couldn't read the items cache: %s", exc)
            return None
        try:
            raw = json.loads(decrypted.decode("utf-8"))
            return [VaultItem.model_validate(i) for i in raw]
        except (ValueError, TypeError, ValidationError) as exc:
            self._discard(f"Couldn't load the items cache, error: {exc}")
            return None

    def _read_folders(self) -> List[Folder]:
        try:
            raw = self._cache.load_json(FOLDERS_CACHE)
            return [Folder.model_validate(f) for f in raw]
        except (OSError, ValueError, TypeError, ValidationError) as exc:
            logger.warning("Couldn't load the folders cache, error: %s", exc)
            return []

    def find_item(self, item_id: str) -> Optional[VaultItem]:
        if not self.has_data():
            return None
        for item in self._read_items() or []:
            if item.id == item_id:
                return item
        return None

    def clear(self) -> None:
        for name in (ITEMS_CACHE, FOLDERS_CACHE, SYNC_CACHE):
            self._cache.remove(name)
