from __future__ import annotations

import logging
import subprocess
from typing import Callable, Optional


logger = logging.getLogger(__name__)

OPEN_BIN = "/usr/bin/open"
OSASCRIPT_BIN = "/usr/bin/osascript"
ALFRED_BUNDLE_ID = "com.runningwithcrayons.Alfred"

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class SystemCommandError(RuntimeError):
    """A macOS helper command failed."""


def run_command(args: list[str], *, runner: Optional[Runner] = None) -> str:
    run = runner or subprocess.run
    try:
        result = run(
            args,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise SystemCommandError(detail) from exc
    except OSError as exc:
        raise SystemCommandError(str(exc)) from exc
    return result.stdout


def open_target(target: str, *, runner: Optional[Runner] = None) -> None:
    """Open a file, directory or URL with the default application."""
    run_command([OPEN_BIN, target], runner=runner)


def alfred_search(query: str, *, runner: Optional[Runner] = None) -> None:
    """Bring up Alfred with `query` pre-filled. Failures are logged only."""
    escaped = query.replace("\\", "\\\\").replace('"', '\\"')
    script = f'tell application id "{ALFRED_BUNDLE_ID}" to search "{escaped}"'
    try:
        run_command([OSASCRIPT_BIN, "-e", script], runner=runner)
    except SystemCommandError as exc:
        logger.warning("Couldn't re-open Alfred with %r: %s", query, exc)
