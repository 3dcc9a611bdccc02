from __future__ import annotations

import io
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
from cryptography.fernet import Fernet


class FakeRunner:
    """Stands in for subprocess.run when calling `bw`; answers by argument prefix."""

    def __init__(self) -> None:
        self.calls: List[Tuple[List[str], Dict[str, Any]]] = []
        self._plan: Dict[Tuple[str, ...], Tuple[int, str, str]] = {}

    def respond(self, *prefix: str, stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        self._plan[tuple(prefix)] = (returncode, stdout, stderr)

    def __call__(self, argv: Sequence[str], **kwargs: Any) -> subprocess.CompletedProcess:
        argv = list(argv)
        self.calls.append((argv, kwargs))
        args = tuple(argv[1:])
        best: Optional[Tuple[str, ...]] = None
        for prefix in self._plan:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        rc, out, err = self._plan[best] if best is not None else (0, "", "")
        return subprocess.CompletedProcess(argv, rc, out, err)

    def commands(self) -> List[List[str]]:
        """Argument lists without the executable and the trailing common flags."""
        out = []
        for argv, _ in self.calls:
            args = argv[1:]
            if "--nointeraction" in args:
                args = args[: args.index("--nointeraction")]
            out.append(args)
        return out


class FakeJobs:
    def __init__(self) -> None:
        self.running: set[str] = set()
        self.started: List[Tuple[str, List[str]]] = []

    def is_running(self, name: str) -> bool:
        return name in self.running

    def start(self, name: str, argv: Sequence[str]) -> bool:
        if name in self.running:
            return False
        self.started.append((name, list(argv)))
        self.running.add(name)
        return True


@pytest.fixture(autouse=True)
def root_logging():
    """Undo handlers and levels installed by `configure_logging` during a test."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield root
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
    root.setLevel(level)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def jobs() -> FakeJobs:
    return FakeJobs()


@pytest.fixture
def icon_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def make_ctx(tmp_path, runner, jobs, icon_requests):
    from common.bw_cli import BitwardenCli
    from common.cache import MarkerCache
    from common.favicons import FaviconClient, IconCache
    from state.config_store import ConfigStore
    from state.models import SessionState
    from state.session import TokenStore
    from state.vault_store import VaultStore
    from workflow.context import Context

    def icon_handler(request: httpx.Request) -> httpx.Response:
        icon_requests.append(request)
        if "missing" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, content=b"\x89PNG-fake")

    def _make(
        *,
        session: Optional[SessionState] = None,
        env: Optional[Dict[str, str]] = None,
        **config_overrides: Any,
    ) -> Context:
        cache_dir = tmp_path / "cache"
        data_dir = tmp_path / "data"
        store = ConfigStore(data_dir / "config.json", env={})
        config = store.load().model_copy(
            update={"cache_dir": str(cache_dir), "data_dir": str(data_dir), **config_overrides}
        )
        cache = MarkerCache(cache_dir)
        tokens = TokenStore.in_dir(data_dir)
        return Context(
            config=config,
            config_store=store,
            session=session if session is not None else SessionState(user_id="user-1", session_key="tok-1"),
            tokens=tokens,
            cache=cache,
            data=MarkerCache(data_dir),
            vault=VaultStore(cache, fernet_key=Fernet.generate_key()),
            icons=IconCache(data_dir / "icons"),
            bw=BitwardenCli("bw", runner=runner, env={}),
            jobs=jobs,
            env=env or {},
            out=io.StringIO(),
            favicon_client=lambda: FaviconClient(
                client=httpx.Client(transport=httpx.MockTransport(icon_handler)),
                sleep=lambda _s: None,
            ),
        )

    return _make
