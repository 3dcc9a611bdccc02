from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol, Sequence


logger = logging.getLogger(__name__)

# Set in the environment of a spawned job so it can release its pid file
JOB_ENV = "BW_ALFRED_JOB"


class JobHandle(Protocol):
    """What the dispatcher needs to know about background jobs."""

    def is_running(self, name: str) -> bool: ...

    def start(self, name: str, argv: Sequence[str]) -> bool: ...


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


class BackgroundJobs:
    """
    Detached, fire-and-forget worker processes identified by name.

    - `start()` spawns `argv` in a new session and records its pid in
      `<dir>/<name>.pid`; it refuses to start a second job with the same name.
    - `is_running()` checks the pid file and whether that process is alive;
      stale pid files are removed.
    - The parent never waits for completion. Results are observed on a later
      invocation through cache markers written by the job itself.
    """

    def __init__(
        self,
        directory: os.PathLike[str] | str,
        *,
        spawner: Optional[Callable[..., subprocess.Popen]] = None,
        alive: Callable[[int], bool] = _pid_alive,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._dir = Path(directory)
        self._spawn = spawner or subprocess.Popen
        self._alive = alive
        self._env = dict(os.environ if env is None else env)

    def _pid_file(self, name: str) -> Path:
        return self._dir / f"{name}.pid"

    def pid(self, name: str) -> Optional[int]:
        try:
            return int(self._pid_file(name).read_text().strip())
        except (OSError, ValueError):
            return None

    def is_running(self, name: str) -> bool:
        pid = self.pid(name)
        if pid is None:
            return False
        if self._alive(pid):
            return True
        logger.debug("Removing stale pid file for job %s (pid %d)", name, pid)
        self.release(name)
        return False

    def start(self, name: str, argv: Sequence[str]) -> bool:
        """Spawn a job unless one with this name is running. Returns True if started."""
        if self.is_running(name):
            logger.info("Job %s already running", name)
            return False
        self._dir.mkdir(parents=True, exist_ok=True)
        proc = self._spawn(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            env={**self._env, JOB_ENV: name},
        )
        self._pid_file(name).write_text(str(proc.pid))
        logger.info("Started background job %s (pid %d)", name, proc.pid)
        return True

    def release(self, name: str) -> None:
        try:
            self._pid_file(name).unlink()
        except FileNotFoundError:
            pass


def workflow_argv(*flags: str) -> list[str]:
    """Command line that re-invokes this workflow's entry point."""
    return [sys.executable, "-m", "workflow.handler", *flags]
