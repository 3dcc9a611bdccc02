from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .models import SessionState


logger = logging.getLogger(__name__)

TOKEN_FILE_NAME = "session.token"


class TokenStore:
    """The `bw` session token, kept in a 0600 file in the workflow data dir."""

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @classmethod
    def in_dir(cls, data_dir: os.PathLike[str] | str) -> "TokenStore":
        return cls(Path(data_dir) / TOKEN_FILE_NAME)

    def get(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except OSError as exc:
            logger.warning("Couldn't read session token: %s", exc)
            return ""

    def set(self, token: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token.strip())

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass


def _read_bw_data(path: os.PathLike[str] | str) -> Dict[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("Couldn't read Bitwarden CLI data file %s: %s", path, exc)
        return {}
    return raw if isinstance(raw, dict) else {}


def load_session_state(bw_data_path: os.PathLike[str] | str, tokens: TokenStore) -> SessionState:
    """
    Derive login/unlock state without calling `bw`.

    The user id comes from the Bitwarden CLI's own data file (`activeUserId`
    in current CLI versions, `userId` in older ones). The session key is the
    token this workflow stored after the last login/unlock; it is only
    meaningful while a user is logged in.
    """
    data = _read_bw_data(bw_data_path) if bw_data_path else {}
    user_id = data.get("activeUserId") or data.get("userId") or ""
    if not isinstance(user_id, str):
        user_id = ""
    session_key = tokens.get() if user_id else ""
    return SessionState(user_id=user_id, session_key=session_key)
