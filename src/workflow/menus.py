from __future__ import annotations

import logging

from common.cache import ICON_CACHE
from common.feedback import Feedback
from state.models import Config, SfaMode, sfa_mode_name
from .context import Context
from .operations import Invocation


logger = logging.getLogger(__name__)

ISSUE_TRACKER_URL = "https://github.com/blacs30/bitwarden-alfred-workflow/issues"
FORUM_THREAD_URL = "https://www.alfredforum.com/topic/15124-bitwarden-workflow/"
HELP_FILE = "README.html"

# Autocomplete value that clears cached items and icons from the config menu
DELETE_CACHE_MAGIC = "workflow:delcache"

ICON_EMAIL = "icons/email.png"
ICON_SERVER = "icons/server.png"
ICON_BW = "icons/bitwarden.png"
ICON_USER_CLOCK = "icons/user-clock.png"
ICON_HELP = "icons/help.png"
ICON_ISSUE = "icons/issue.png"
ICON_LINK = "icons/link.png"
ICON_RELOAD = "icons/reload.png"
ICON_CALENDAR = "icons/calendar.png"
ICON_TRASH = "icons/trash.png"
ICON_ON = "icons/on.png"
ICON_OFF = "icons/off.png"
ICON_APP = "icons/app.png"
ICON_YUBI = "icons/yubikey.png"


def add_login_item(fb: Feedback, config: Config) -> None:
    mode = config.effective_sfa_mode
    (
        fb.new_item("Login to Bitwarden", "↩ or ⇥ to login now", uid="login", valid=True)
        .with_icon(ICON_ON)
        .var("action", "-login")
        .var("type", "login")
        .var("email", config.email)
        .var("sfamode", str(mode))
        .var("mapsfamode", sfa_mode_name(mode))
    )


def add_unlock_item(fb: Feedback, config: Config) -> None:
    (
        fb.new_item("Unlock", "Unlock Bitwarden", uid="unlock", valid=True)
        .with_icon(ICON_ON)
        .var("action", "-unlock")
        .var("type", "unlock")
        .var("email", config.email)
    )


def _setting_item(fb: Feedback, *, title: str, subtitle: str, uid: str, icon: str, key: str, label: str, current: str, query: str) -> None:
    (
        fb.new_item(title, subtitle, uid=uid, valid=True, arg=query)
        .with_icon(icon)
        .var("action", "-setconfigs")
        .var("action2", key)
        .var("notification", f"Set {label} to: \n{query}")
        .var("title", f"Set {label}")
        .var("subtitle", f"Currently set to: {current!r}")
    )


def run_config(ctx: Context, inv: Invocation, fb: Feedback) -> None:
    config = ctx.config
    query = inv.query

    if query == DELETE_CACHE_MAGIC:
        _delete_cache(ctx, fb)
        return

    # Stop Alfred re-ordering the menu
    fb.suppress_uids = not query or config.reordering_disabled
    logger.info("filtering config %r ...", query)

    _setting_item(
        fb,
        title="Enter your Bitwarden Email",
        subtitle="Configure your Bitwarden login email",
        uid="email",
        icon=ICON_EMAIL,
        key="email",
        label="Email",
        current=config.email,
        query=query,
    )
    _setting_item(
        fb,
        title="Set Server URL",
        subtitle="Configure your Bitwarden Server URL (Only for selfhosted Bitwarden needed)",
        uid="server",
        icon=ICON_SERVER,
        key="server",
        label="Server",
        current=config.server,
        query=query,
    )
    _setting_item(
        fb,
        title="Set WebUI URL",
        subtitle="Configure your Bitwarden WebUI URL (Only for selfhosted Bitwarden needed)",
        uid="webui",
        icon=ICON_BW,
        key="webui",
        label="WebUI URL",
        current=config.webui,
        query=query,
    )

    for title, subtitle, uid, action2 in (
        ("Enable or disable 2FA", "Configure Bitwarden to use or not use 2 Factor Authentication", "sfa", "-id on-off-sfa"),
        ("Enable or disable API Key login", "Configure Bitwarden to use API keys to login", "apikeyauth", "-id on-off-apikey"),
        ("Set the 2FA method", "Configure which 2 Factor Authentication Method you use", "sfamode", "-id Use"),
    ):
        (
            fb.new_item(title, subtitle, uid=uid, valid=True)
            .with_icon(ICON_USER_CLOCK)
            .var("action", "-authconfig")
            .var("action2", action2)
        )

    fb.new_item(
        "Delete Workflow cache",
        "↩ or ⇥ to clean cached items and icons",
        uid="delcache",
        autocomplete=DELETE_CACHE_MAGIC,
    ).with_icon(ICON_TRASH)

    for title, subtitle, uid, arg, icon in (
        ("View Help File", "Open workflow help in your browser", "help", HELP_FILE, ICON_HELP),
        ("Report Issue", "Open workflow issue tracker in your browser", "issue", ISSUE_TRACKER_URL, ICON_ISSUE),
        ("Visit Forum Thread", "Open workflow thread on alfredforum.com in your browser", "forum", FORUM_THREAD_URL, ICON_LINK),
    ):
        fb.new_item(title, subtitle, uid=uid, valid=True, arg=arg).with_icon(icon).var("action", "-open")

    (
        fb.new_item("Sync Bitwarden Secrets", "Sync Bitwarden secrets with server.", uid="sync", valid=True, arg="-background")
        .with_icon(ICON_RELOAD)
        .var("action", "-sync")
        .var("action2", "-force")
        .var("notification", "Syncing Bitwarden secrets")
    )
    (
        fb.new_item("Download/Update Favicon for URLs", "Downloads favicons for URLs", uid="icons", valid=True, arg="-background")
        .with_icon(ICON_RELOAD)
        .var("action", "-icons")
        .var("notification", "Downloading Favicons for URLs")
    )
    (
        fb.new_item(
            "Get date of last Bitwarden secret sync",
            "Show the date when the last sync happened with the Bitwarden server.",
            uid="lastsync",
            valid=True,
            arg="-last",
        )
        .with_icon(ICON_CALENDAR)
        .var("action", "-sync")
        .var("notification", "Getting last sync date.")
    )

    fb.filter(query)
    fb.warn_empty("No Config Found", "Try a different query?")


def _delete_cache(ctx: Context, fb: Feedback) -> None:
    ctx.cache.clear()
    ctx.data.remove(ICON_CACHE)
    removed = ctx.icons.clear()
    logger.info("Deleted workflow cache (%d icons)", removed)
    fb.new_item("Workflow cache deleted", "Items and icons will be fetched again on next search.").with_icon(ICON_TRASH)


def run_auth(ctx: Context, inv: Invocation, fb: Feedback) -> None:
    query = inv.query
    fb.suppress_uids = not query
    logger.info("filtering auth config %r ...", query)

    add_login_item(fb, ctx.config)
    fb.new_item("Logout", "Logout from Bitwarden", uid="logout", valid=True).with_icon(ICON_OFF).var("action", "-logout")
    add_unlock_item(fb, ctx.config)
    fb.new_item("Lock", "Lock Bitwarden", uid="lock", valid=True).with_icon(ICON_OFF).var("action", "-lock")

    fb.filter(query)
    fb.warn_empty("No Auth Config Found", "Try a different query?")


_SFA_PROVIDERS = (
    ("Use Authenticator app", "totp", ICON_APP, "Authenticator app", SfaMode.AUTHENTICATOR),
    ("Use Email", "email", ICON_EMAIL, "Email", SfaMode.EMAIL),
    ("Use Yubikey OTP", "yubikey", ICON_YUBI, "Yubikey", SfaMode.YUBIKEY),
)


def _toggle_items(fb: Feedback, *, label: str, key: str, current: bool, uid_prefix: str) -> None:
    for on in (True, False):
        verb = "Enable" if on else "Disable"
        (
            fb.new_item(
                f"ON/OFF: {verb} {label} for Bitwarden",
                f"Currently set to: {str(current).lower()}",
                uid=f"{uid_prefix}{'on' if on else 'off'}",
                valid=True,
                arg="true" if on else "false",
            )
            .with_icon(ICON_ON if on else ICON_OFF)
            .var("notification", f"{verb}d {label}")
            .var("action", "-setconfigs")
            .var("action2", key)
        )


def run_auth_config(ctx: Context, inv: Invocation, fb: Feedback) -> None:
    config = ctx.config
    if inv.item_id == "Use":
        for title, uid, icon, name, mode in _SFA_PROVIDERS:
            (
                fb.new_item(title, f"Currently set to: {sfa_mode_name(config.sfa_mode)!r}", uid=uid, valid=True, arg=str(int(mode)))
                .with_icon(icon)
                .var("notification", f"2FA set to {name}")
                .var("action", "-setconfigs")
                .var("action2", "2famode")
            )
    elif inv.item_id == "on-off-sfa":
        _toggle_items(fb, label="2FA", key="2fa", current=config.sfa, uid_prefix="sfa")
    elif inv.item_id == "on-off-apikey":
        _toggle_items(fb, label="APIKEY login", key="apikey", current=config.use_apikey, uid_prefix="apikey")
    else:
        logger.warning("Unknown auth config menu %r", inv.item_id)

    fb.filter(inv.query)
