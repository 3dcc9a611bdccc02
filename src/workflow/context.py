from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, TextIO

from common.bw_cli import NOT_LOGGED_IN_MSG, NOT_UNLOCKED_MSG, BitwardenCli, BitwardenError
from common.cache import MarkerCache
from common.favicons import FaviconClient, IconCache
from common.jobs import BackgroundJobs, JobHandle
from state.config_store import ConfigStore
from state.models import Config, SessionState
from state.session import TokenStore, load_session_state
from state.vault_store import VaultStore


logger = logging.getLogger(__name__)


@dataclass
class Context:
    """
    Everything a handler may touch during one invocation.

    Built once by `Context.from_env()` and passed to the policy and every
    handler; nothing is read from module-level state.
    """

    config: Config
    config_store: ConfigStore
    session: SessionState
    tokens: TokenStore
    cache: MarkerCache
    data: MarkerCache
    vault: VaultStore
    icons: IconCache
    bw: BitwardenCli
    jobs: JobHandle
    env: Mapping[str, str] = field(default_factory=dict)
    out: TextIO = field(default_factory=lambda: sys.stdout)
    favicon_client: Callable[[], FaviconClient] = FaviconClient

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, *, out: Optional[TextIO] = None) -> "Context":
        env = os.environ if env is None else env
        store = ConfigStore.from_env(env)
        config = store.load()
        cache_dir = Path(config.cache_dir)
        data_dir = Path(config.data_dir)

        cache = MarkerCache(cache_dir)
        tokens = TokenStore.in_dir(data_dir)
        return cls(
            config=config,
            config_store=store,
            session=load_session_state(config.bw_data_path, tokens),
            tokens=tokens,
            cache=cache,
            data=MarkerCache(data_dir),
            vault=VaultStore.from_dirs(cache, data_dir),
            icons=IconCache(data_dir / "icons"),
            bw=BitwardenCli(config.bw_exec, env=env),
            jobs=BackgroundJobs(cache_dir / "jobs", env=env),
            env=env,
            out=out or sys.stdout,
        )

    def echo(self, text: str) -> None:
        """Plain-text output for non-list steps (notifications, copied values)."""
        self.out.write(text)
        self.out.flush()

    def unlocked_error(self) -> Optional[str]:
        """
        Message to show when the vault can't be used right now, else None.

        The saved token is checked against `bw` itself, so a token left
        behind by a lock outside the workflow is caught before use.
        """
        if not self.session.logged_in:
            return NOT_LOGGED_IN_MSG
        if not self.session.unlocked:
            return NOT_UNLOCKED_MSG
        try:
            self.bw.check_unlocked(self.session.session_key)
        except BitwardenError as exc:
            logger.error("Session check failed: %s %s", exc, getattr(exc, "detail", ""))
            return str(exc)
        return None
