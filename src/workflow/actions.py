from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from common.bw_cli import NOT_LOGGED_IN_MSG, BitwardenError
from common.cache import ICON_CACHE
from common.jobs import workflow_argv
from common.system import SystemCommandError, alfred_search, open_target
from state.config_store import ConfigError
from state.models import DEFAULT_SERVER, Folder, VaultItem, sfa_mode_name
from .context import Context
from .operations import Invocation
from .policy import ICONS_JOB, SYNC_JOB


logger = logging.getLogger(__name__)

# Alfred workflow variables carrying credentials into login/unlock steps
ENV_PASSWORD = "password"
ENV_SFA_CODE = "sfacode"
ENV_CLIENT_ID = "clientid"
ENV_CLIENT_SECRET = "clientsecret"


class WorkflowFatalError(RuntimeError):
    """An operation failed with no meaningful fallback; the process exits non-zero."""


def _report(ctx: Context, exc: BitwardenError) -> str:
    """Log the full `bw` error and print its user-facing message."""
    logger.error("[ERROR] ==> %s: %s", exc, getattr(exc, "detail", ""))
    ctx.echo(str(exc))
    return str(exc)


# --------------- set-configs ---------------
def run_set_configs(ctx: Context, inv: Invocation) -> Optional[str]:
    if not inv.args:
        logger.warning("setconfigs called without a setting")
        return None
    key = inv.args[0]
    value = " ".join(inv.args[1:]).strip()

    if key == "server":
        value = value or DEFAULT_SERVER
        try:
            ctx.bw.config_server(value)
        except BitwardenError as exc:
            return _report(ctx, exc)

    try:
        ctx.config = ctx.config_store.set(ctx.config, key, value)
    except ConfigError as exc:
        logger.error("%s", exc)
        ctx.echo(str(exc))
        return str(exc)

    shown = value
    if key == "webui" and not value:
        shown = ctx.config.webui
    elif key == "2famode":
        shown = sfa_mode_name(ctx.config.sfa_mode)
    message = f"DONE: Set {key} to: \n{shown}"
    ctx.echo(message)
    alfred_search(ctx.config.bwconf_keyword)
    return message


# --------------- auth ---------------
def _start_sync(ctx: Context) -> None:
    ctx.jobs.start(SYNC_JOB, workflow_argv("-sync", "-force"))


def run_login(ctx: Context, inv: Invocation) -> str:
    config = ctx.config
    password = ctx.env.get(ENV_PASSWORD, "") or inv.query
    try:
        if config.use_apikey:
            ctx.bw.login_apikey(ctx.env.get(ENV_CLIENT_ID, ""), ctx.env.get(ENV_CLIENT_SECRET, ""))
            if not password:
                ctx.echo("Logged in. Unlock to get secrets.")
                return "Logged in. Unlock to get secrets."
            token = ctx.bw.unlock(password)
        else:
            if not config.email:
                ctx.echo("No email configured. Set it with the config menu first.")
                return "No email configured."
            token = ctx.bw.login(
                config.email,
                password,
                method=config.effective_sfa_mode,
                code=ctx.env.get(ENV_SFA_CODE, ""),
            )
    except BitwardenError as exc:
        return _report(ctx, exc)

    ctx.tokens.set(token)
    _start_sync(ctx)
    ctx.echo("Logged in.")
    return "Logged in."


def run_unlock(ctx: Context, inv: Invocation) -> str:
    if not ctx.session.logged_in:
        ctx.echo(NOT_LOGGED_IN_MSG)
        return NOT_LOGGED_IN_MSG
    password = ctx.env.get(ENV_PASSWORD, "") or inv.query
    try:
        token = ctx.bw.unlock(password)
    except BitwardenError as exc:
        return _report(ctx, exc)
    ctx.tokens.set(token)
    _start_sync(ctx)
    ctx.echo("Unlocked")
    return "Unlocked"


def run_lock(ctx: Context, inv: Invocation) -> str:
    try:
        ctx.bw.lock()
    except BitwardenError as exc:
        return _report(ctx, exc)
    finally:
        # Drop our copy of the token even if `bw` complained
        ctx.tokens.clear()
    ctx.echo("Locked")
    return "Locked"


def run_logout(ctx: Context, inv: Invocation) -> str:
    try:
        ctx.bw.logout()
    except BitwardenError as exc:
        return _report(ctx, exc)
    ctx.tokens.clear()
    ctx.cache.clear()
    ctx.echo("Logged Out")
    return "Logged Out"


# --------------- sync ---------------
def _parse_items(raw: List[dict]) -> List[VaultItem]:
    items: List[VaultItem] = []
    for entry in raw:
        try:
            items.append(VaultItem.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping unreadable item %s: %s", entry.get("id") if isinstance(entry, dict) else "?", exc)
    return items


def _parse_folders(raw: List[dict]) -> List[Folder]:
    folders: List[Folder] = []
    for entry in raw:
        try:
            folders.append(Folder.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping unreadable folder: %s", exc)
    return folders


def run_sync(ctx: Context, inv: Invocation) -> str:
    if inv.background:
        flags = ["-sync"] + (["-force"] if inv.force else [])
        started = ctx.jobs.start(SYNC_JOB, workflow_argv(*flags))
        message = "Syncing Bitwarden secrets" if started else "Sync already running"
        ctx.echo(message)
        return message

    if inv.last:
        try:
            out = ctx.bw.last_sync()
        except BitwardenError as exc:
            return _report(ctx, exc)
        ctx.echo(f"Last sync: {out}")
        return out

    refused = ctx.unlocked_error()
    if refused:
        logger.error("sync: %s", refused)
        ctx.echo(refused)
        return refused
    session = ctx.session

    try:
        ctx.bw.sync(session.session_key, force=inv.force)
        items = _parse_items(ctx.bw.list_items(session.session_key))
        folders = _parse_folders(ctx.bw.list_folders(session.session_key))
    except BitwardenError as exc:
        return _report(ctx, exc)

    ctx.vault.write(items, folders)
    logger.info("Synced %d items in %d folders", len(items), len(folders))
    message = f"Synced {len(items)} items"
    ctx.echo(message)
    return message


# --------------- icons ---------------
def run_icons(ctx: Context, inv: Invocation) -> str:
    if inv.background:
        started = ctx.jobs.start(ICONS_JOB, workflow_argv("-icons"))
        message = "Downloading Favicons for URLs" if started else "Favicon download already running"
        ctx.echo(message)
        return message

    items, _ = ctx.vault.read()
    hosts = ctx.icons.missing_hosts(u for i in items for u in i.uris())
    logger.info("Fetching favicons for %d hosts", len(hosts))
    with ctx.favicon_client() as client:
        results = ctx.icons.download(client, hosts)
    ctx.data.touch(ICON_CACHE)
    fetched = sum(1 for ok in results.values() if ok)
    message = f"Downloaded {fetched} favicons"
    ctx.echo(message)
    return message


# --------------- open ---------------
def run_open(ctx: Context, inv: Invocation) -> None:
    target = inv.query
    if not target:
        raise WorkflowFatalError("/usr/bin/open: no path or URL given")
    try:
        open_target(target)
    except SystemCommandError as exc:
        raise WorkflowFatalError(f"/usr/bin/open {target!r}: {exc}") from exc
