from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence


logger = logging.getLogger(__name__)

NOT_LOGGED_IN_MSG = "Not logged in. Need to login first."
NOT_UNLOCKED_MSG = "Not unlocked. Need to unlock first."

# Lines node prints on stderr/stdout that are not part of the command output
_NOISE = (
    "DeprecationWarning",
    "ExperimentalWarning",
    "--trace-deprecation",
    "Support for loading ES Module",
)

# Env var used to hand the master password to `bw` without putting it on argv
PASSWORD_ENV = "BW_ALFRED_PASSWORD"

# Env var `bw` reads the session token from
SESSION_ENV = "BW_SESSION"

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class BitwardenError(RuntimeError):
    """Base error for the Bitwarden CLI adapter."""


class BitwardenNotFoundError(BitwardenError):
    """The `bw` executable could not be located."""


class BitwardenTimeoutError(BitwardenError):
    """`bw` did not finish within the timeout."""


class BitwardenCommandError(BitwardenError):
    """
    `bw` exited non-zero.

    `str(err)` is the user-facing message chosen by the caller; `detail`
    holds whatever `bw` printed, for logging.
    """

    def __init__(self, message: str, *, detail: str = "", returncode: int = 1) -> None:
        super().__init__(message)
        self.detail = detail
        self.returncode = returncode


def _strip_noise(text: str) -> str:
    return "\n".join(
        line for line in (text or "").split("\n") if not any(n in line for n in _NOISE)
    ).strip()


def find_bw(configured: str = "bw") -> Optional[str]:
    """Resolve the `bw` executable from config, PATH, or common install paths."""
    if configured and os.sep in configured:
        p = Path(configured).expanduser()
        return str(p) if p.exists() and os.access(p, os.X_OK) else None

    found = shutil.which(configured or "bw")
    if found:
        return found

    home = Path.home()
    for candidate in (
        Path("/usr/local/bin/bw"),
        Path("/opt/homebrew/bin/bw"),
        home / ".npm-global" / "bin" / "bw",
        home / ".local" / "bin" / "bw",
    ):
        if candidate.exists() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


class BitwardenCli:
    """
    Thin adapter around the `bw` command-line client.

    Notes
    - Every command runs with `--nointeraction` so `bw` never blocks on a prompt.
    - Session-scoped commands receive the token in `BW_SESSION`, never on argv.
    - Failures raise `BitwardenError` subclasses carrying a user-facing message;
      callers decide how to render them.
    """

    def __init__(
        self,
        executable: str = "bw",
        *,
        timeout: float = 60.0,
        runner: Optional[Runner] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._configured = executable
        self._timeout = timeout
        self._runner = runner or subprocess.run
        self._env = dict(os.environ if env is None else env)
        self._resolved: Optional[str] = None

    @property
    def executable(self) -> str:
        if self._resolved is None:
            # With an injected runner the executable does not need to exist
            if self._runner is not subprocess.run:
                self._resolved = self._configured or "bw"
            else:
                found = find_bw(self._configured)
                if not found:
                    raise BitwardenNotFoundError(
                        f"Bitwarden CLI not found: {self._configured!r}"
                    )
                self._resolved = found
        return self._resolved

    # --------------- Core ---------------
    def run(
        self,
        args: Sequence[str],
        *,
        message: str,
        session: Optional[str] = None,
        extra_env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run `bw <args>` and return stripped stdout. Raises BitwardenError."""
        argv: List[str] = [self.executable, *args, "--nointeraction"]

        env = {**self._env, "NODE_NO_WARNINGS": "1"}
        if session:
            env[SESSION_ENV] = session
        if extra_env:
            env.update(extra_env)

        logger.debug("Running bw %s", args[0] if args else "")
        try:
            result = self._runner(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout or self._timeout,
                env=env,
            )
        except subprocess.TimeoutExpired as exc:
            raise BitwardenTimeoutError(f"{message} (timed out)") from exc
        except OSError as exc:
            raise BitwardenNotFoundError(f"Couldn't run Bitwarden CLI: {exc}") from exc

        stdout = _strip_noise(result.stdout)
        stderr = _strip_noise(result.stderr)
        if result.returncode != 0:
            raise BitwardenCommandError(
                message, detail=stderr or stdout, returncode=result.returncode
            )
        return stdout

    def _run_json(self, args: Sequence[str], *, message: str, session: Optional[str] = None) -> Any:
        out = self.run(args, message=message, session=session)
        try:
            return json.loads(out)
        except ValueError as exc:
            raise BitwardenCommandError(message, detail=f"invalid JSON from bw: {exc}") from exc

    # --------------- Auth ---------------
    def check_unlocked(self, session: str) -> None:
        """Raise with NOT_UNLOCKED_MSG unless `session` still opens the vault."""
        # `bw unlock --check` ignores the session on some CLI versions
        self.run(["list", "folders"], message=NOT_UNLOCKED_MSG, session=session)

    def login(self, email: str, password: str, *, method: int = -1, code: str = "") -> str:
        """Log in with email + master password; returns the new session token."""
        args = ["login", email, "--passwordenv", PASSWORD_ENV, "--raw"]
        if method >= 0 and code:
            args += ["--method", str(method), "--code", code]
        return self.run(
            args,
            message="Unable to login to Bitwarden",
            extra_env={PASSWORD_ENV: password},
        )

    def login_apikey(self, client_id: str, client_secret: str) -> None:
        """Log in with a personal API key. Does not unlock the vault."""
        self.run(
            ["login", "--apikey"],
            message="Unable to login to Bitwarden with API key",
            extra_env={"BW_CLIENTID": client_id, "BW_CLIENTSECRET": client_secret},
        )

    def unlock(self, password: str) -> str:
        return self.run(
            ["unlock", "--passwordenv", PASSWORD_ENV, "--raw"],
            message="Unable to unlock Bitwarden",
            extra_env={PASSWORD_ENV: password},
        )

    def lock(self) -> str:
        return self.run(["lock"], message="Unable to lock Bitwarden")

    def logout(self) -> str:
        return self.run(["logout"], message="Unable to logout from Bitwarden")

    # --------------- Vault ---------------
    def sync(self, session: str, *, force: bool = False) -> str:
        args = ["sync"] + (["--force"] if force else [])
        return self.run(args, message="Unable to sync Bitwarden", session=session)

    def last_sync(self) -> str:
        return self.run(["sync", "--last"], message="Unable to get the last sync date")

    def list_items(self, session: str) -> List[Dict[str, Any]]:
        data = self._run_json(["list", "items"], message="Unable to list Bitwarden items", session=session)
        return data if isinstance(data, list) else []

    def list_folders(self, session: str) -> List[Dict[str, Any]]:
        data = self._run_json(["list", "folders"], message="Unable to list Bitwarden folders", session=session)
        return data if isinstance(data, list) else []

    def get_totp(self, item_id: str, session: str) -> str:
        return self.run(["get", "totp", item_id], message="Unable to get TOTP", session=session)

    def get_attachment(self, attachment_id: str, item_id: str, output: str, session: str) -> str:
        return self.run(
            ["get", "attachment", attachment_id, "--itemid", item_id, "--output", output],
            message="Unable to download attachment",
            session=session,
        )

    def config_server(self, url: str) -> str:
        return self.run(
            ["config", "server", url],
            message=f"Unable to set Bitwarden server {url}",
        )


__all__ = [
    "BitwardenCli",
    "BitwardenError",
    "BitwardenCommandError",
    "BitwardenNotFoundError",
    "BitwardenTimeoutError",
    "NOT_LOGGED_IN_MSG",
    "NOT_UNLOCKED_MSG",
    "PASSWORD_ENV",
    "SESSION_ENV",
    "find_bw",
]
