from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from common.bw_cli import NOT_UNLOCKED_MSG, BitwardenError
from common.favicons import IconCache
from common.feedback import Feedback, ResultItem
from common.jobs import workflow_argv
from state.models import Folder, ItemType, VaultItem
from .context import Context
from .menus import add_login_item, add_unlock_item
from .operations import Invocation
from .policy import ICONS_JOB, add_outcome_items, evaluate, needs_sync


logger = logging.getLogger(__name__)

ICON_FOLDER = "icons/folder.png"
ICON_FOLDER_OPEN = "icons/folder-open.png"
ICON_BACK = "icons/back.png"
ICON_ATTACHMENT = "icons/paperclip.png"
ICON_URL = "icons/link.png"
ICON_TOTP = "icons/clock.png"

_TYPE_ICONS = {
    ItemType.LOGIN: "icons/login.png",
    ItemType.SECURE_NOTE: "icons/note.png",
    ItemType.CARD: "icons/card.png",
    ItemType.IDENTITY: "icons/identity.png",
}

# Leaf names that only resolve while the vault is unlocked
_SECRET_LEAVES = {"password", "totp", "code", "number"}

HIDDEN_FIELD = 1


# --------------- Rendering ---------------
def _type_icon(item: VaultItem) -> str:
    try:
        return _TYPE_ICONS[ItemType(item.type)]
    except ValueError:
        return _TYPE_ICONS[ItemType.LOGIN]


def _item_icon(item: VaultItem, icons: IconCache) -> str:
    cached = icons.icon_for(item.uris())
    return str(cached) if cached else _type_icon(item)


def _summary(item: VaultItem) -> tuple[str, str]:
    """(subtitle, default copy path) for an item row."""
    if item.type == ItemType.CARD and item.card is not None:
        last4 = (item.card.number or "")[-4:]
        brand = item.card.brand or "Card"
        return (f"{brand} *{last4}" if last4 else brand, "card.number")
    if item.type == ItemType.IDENTITY and item.identity is not None:
        ident = item.identity
        name = " ".join(p for p in (ident.first_name, ident.last_name) if p)
        return (name or ident.email or "Identity", "identity.email")
    if item.type == ItemType.SECURE_NOTE:
        return ("Secure note", "notes")
    username = item.login.username if item.login is not None else None
    return (username or "", "login.password")


def item_entry(item: VaultItem, icons: IconCache) -> ResultItem:
    subtitle, copy_path = _summary(item)
    match = " ".join([item.name, subtitle, *item.uris()])
    entry = ResultItem(
        title=item.name,
        subtitle=subtitle,
        uid=item.id,
        valid=True,
        arg=copy_path,
        autocomplete=item.name,
        match=match,
    ).with_icon(_item_icon(item, icons))
    return (
        entry.var("action", "-getitem")
        .var("action2", f"-id {item.id}")
        .var("notification", f"Copied {copy_path.split('.')[-1]} of {item.name}")
    )


def _detail(fb: Feedback, item: VaultItem, title: str, subtitle: str, path: str, icon: Optional[str] = None) -> None:
    (
        fb.new_item(title, subtitle, uid=f"{item.id}:{path}", valid=True, arg=path)
        .with_icon(icon or _type_icon(item))
        .var("action", "-getitem")
        .var("action2", f"-id {item.id}")
        .var("notification", f"Copied {title}")
    )


def add_item_details(fb: Feedback, item: VaultItem, icons: IconCache) -> None:
    """One entry per copyable field of `item`; secrets are masked in subtitles."""
    icon = _item_icon(item, icons)
    if item.login is not None:
        login = item.login
        if login.username:
            _detail(fb, item, "Username", login.username, "login.username", icon)
        if login.password:
            _detail(fb, item, "Password", "••••••••", "login.password", icon)
        if login.totp:
            (
                fb.new_item("TOTP", "Copy the current one-time code", uid=f"{item.id}:totp", valid=True, arg="")
                .with_icon(ICON_TOTP)
                .var("action", "-getitem")
                .var("action2", f"-id {item.id} -totp")
                .var("notification", "Copied TOTP")
            )
        for n, uri in enumerate(login.uris):
            if uri.uri:
                (
                    fb.new_item(f"URL {n + 1}", uri.uri, uid=f"{item.id}:uri{n}", valid=True, arg=uri.uri)
                    .with_icon(ICON_URL)
                    .var("action", "-open")
                )
    if item.card is not None:
        card = item.card
        for title, value, path in (
            ("Cardholder", card.cardholder_name, "card.cardholderName"),
            ("Brand", card.brand, "card.brand"),
            ("Number", "•••• " + (card.number or "")[-4:] if card.number else None, "card.number"),
            ("Expiry", f"{card.exp_month or '??'}/{card.exp_year or '????'}" if (card.exp_month or card.exp_year) else None, "card.expYear"),
            ("Security code", "•••" if card.code else None, "card.code"),
        ):
            if value:
                _detail(fb, item, title, value, path, icon)
    if item.identity is not None:
        ident = item.identity
        for title, value, path in (
            ("First name", ident.first_name, "identity.firstName"),
            ("Last name", ident.last_name, "identity.lastName"),
            ("Email", ident.email, "identity.email"),
            ("Phone", ident.phone, "identity.phone"),
        ):
            if value:
                _detail(fb, item, title, value, path, icon)
    if item.notes:
        _detail(fb, item, "Notes", item.notes.splitlines()[0], "notes", icon)
    for n, f in enumerate(item.fields):
        if f.value:
            shown = "••••••••" if f.type == HIDDEN_FIELD else f.value
            _detail(fb, item, f.name or f"Field {n + 1}", shown, f"fields.{n}.value", icon)
    for att in item.attachments:
        (
            fb.new_item(att.file_name or att.id, f"Download attachment ({att.size_name or '?'})", uid=f"{item.id}:att:{att.id}", valid=True, arg="")
            .with_icon(ICON_ATTACHMENT)
            .var("action", "-getitem")
            .var("action2", f"-id {item.id} -attachment {att.id}")
            .var("notification", f"Downloading {att.file_name}")
        )


def _add_back_to_search(fb: Feedback) -> None:
    (
        fb.new_item("Back to normal search.", "Go back.", valid=True, arg="")
        .with_icon(ICON_BACK)
        .var("action", "-search")
    )


def _add_session_warnings(ctx: Context, fb: Feedback) -> None:
    # Cached items are still listed when logged out or locked
    session = ctx.session
    if not session.logged_in:
        message = "Need to login first."
        if ctx.vault.has_data():
            message = "Need to login first to get secrets, reading cached items without the secret."
        fb.warning("Not logged in to Bitwarden.", message)
        add_login_item(fb, ctx.config)
    elif not session.unlocked:
        fb.warning(
            "Bitwarden is locked.",
            "Need to unlock first to get secrets, reading cached items without the secrets.",
        )
        add_unlock_item(fb, ctx.config)


def _auto_fetch_icons(ctx: Context, items: Iterable[VaultItem]) -> None:
    """Start a background icon download when rendered items lack favicons."""
    if not ctx.config.icon_cache_enabled:
        return
    missing = ctx.icons.missing_hosts(u for i in items for u in i.uris())
    if missing:
        logger.info("Auto-fetching %d missing favicons", len(missing))
        ctx.jobs.start(ICONS_JOB, workflow_argv("-icons"))


def _folder_item_count(folder: Folder, items: List[VaultItem]) -> int:
    return sum(1 for i in items if i.in_folder(folder.display_id))


# --------------- Handlers ---------------
def _prepare(ctx: Context, fb: Feedback):
    """Apply the cache policy; returns (items, folders, outcome) or None if it short-circuited."""
    fb.suppress_uids = ctx.config.reordering_disabled
    fb.max_results = ctx.config.max_results

    outcome = evaluate(ctx.config, ctx.cache, ctx.data, ctx.jobs)
    if not outcome.proceed:
        add_outcome_items(fb, outcome)
        return None

    items, folders = ctx.vault.read()
    if not items and needs_sync(ctx.cache):
        # The store dropped unreadable item data
        outcome = evaluate(ctx.config, ctx.cache, ctx.data, ctx.jobs)
        add_outcome_items(fb, outcome)
        return None
    logger.info("Number of items %d", len(items))
    _add_session_warnings(ctx, fb)
    return items, folders, outcome


def run_search(ctx: Context, inv: Invocation, fb: Feedback) -> None:
    prepared = _prepare(ctx, fb)
    if prepared is None:
        return
    items, folders, outcome = prepared

    if inv.item_id:
        _render_details(ctx, inv, fb, items)
        return

    if not items and not folders:
        fb.warning("No Secrets Found", "Try a different query or sync manually.")

    (
        fb.new_item("Search Folders", "Find folders and secrets in them.", valid=True, arg=ctx.config.bwf_keyword)
        .with_icon(ICON_FOLDER)
        .var("action", "-search")
    )
    for item in items:
        fb.add(item_entry(item, ctx.icons))

    if outcome.auto_fetch:
        _auto_fetch_icons(ctx, items)
    fb.filter(inv.query)


def _render_details(ctx: Context, inv: Invocation, fb: Feedback, items: List[VaultItem]) -> None:
    logger.info('showing items for id "%s" ...', inv.item_id)
    for item in items:
        if item.id == inv.item_id:
            add_item_details(fb, item, ctx.icons)
            fb.filter(inv.query)
            _add_back_to_search(fb)
            return
    fb.warning("Item not found", f"No cached item with id {inv.item_id}. Try to sync.")


def run_folder(ctx: Context, inv: Invocation, fb: Feedback) -> None:
    prepared = _prepare(ctx, fb)
    if prepared is None:
        return
    items, folders, outcome = prepared

    if not inv.item_id:
        _add_back_to_search(fb)
        logger.info("Number of folders %d", len(folders))
        for folder in folders:
            fid = folder.display_id
            (
                fb.new_item(
                    folder.name,
                    f"Number of items: {_folder_item_count(folder, items)}",
                    uid=fid,
                    valid=True,
                    match=folder.name,
                )
                .with_icon(ICON_FOLDER_OPEN)
                .var("action", "-folder")
                .var("action2", f"-id {fid}")
            )
        fb.filter(inv.query)
        if not items and not folders:
            fb.warn_empty("No Secrets Found", "Try a different query or sync manually.")
        fb.warn_empty("No Folders Found", "Try a different query.")
        return

    logger.info('searching in folder with id "%s" ...', inv.item_id)
    in_folder = items_in_folder(items, inv.item_id)
    for item in in_folder:
        fb.add(item_entry(item, ctx.icons))
    if outcome.auto_fetch:
        _auto_fetch_icons(ctx, in_folder)
    fb.filter(inv.query)

    (
        fb.new_item("Back to folder search.", "Go back.", valid=True, arg=ctx.config.bwf_keyword)
        .with_icon(ICON_FOLDER)
        .var("action", "-search")
    )
    _add_back_to_search(fb)


def items_in_folder(items: Iterable[VaultItem], folder_id: str) -> List[VaultItem]:
    """Items of one folder; "null" selects items without a folder id."""
    return [i for i in items if i.in_folder(folder_id)]


# --------------- get-item ---------------
class PathError(LookupError):
    """A field path did not resolve on the item."""


def resolve_path(item: VaultItem, path: str) -> str:
    """
    Resolve a dotted field path such as `login.username` or
    `login.uris.0.uri` against the item's Bitwarden JSON form.
    """
    node: Any = item.model_dump(by_alias=True)
    for part in [p for p in path.strip().split(".") if p]:
        if isinstance(node, list):
            try:
                node = node[int(part)]
            except (ValueError, IndexError) as exc:
                raise PathError(path) from exc
        elif isinstance(node, dict) and part in node:
            node = node[part]
        else:
            raise PathError(path)
    if node is None or isinstance(node, (dict, list)):
        raise PathError(path)
    if isinstance(node, bool):
        return str(node).lower()
    return str(node)


def _is_secret_path(item: VaultItem, path: str) -> bool:
    parts = path.strip().split(".")
    if parts[-1] in _SECRET_LEAVES:
        return True
    if len(parts) >= 2 and parts[0] == "fields":
        try:
            return item.fields[int(parts[1])].type == HIDDEN_FIELD
        except (ValueError, IndexError):
            return False
    return False


def run_get_item(ctx: Context, inv: Invocation, fb: Feedback) -> Optional[str]:
    """
    Without a query, list the item's fields. Otherwise print one value:
    the TOTP (`-totp`), a downloaded attachment path (`-attachment`), or
    the field addressed by the query path. Returns the printed text.
    """
    if not inv.item_id:
        fb.warning("No item id given", "Select an item from the search first.")
        return None

    if not is_value_request(inv):
        run_search(ctx, inv, fb)
        return None

    item = ctx.vault.find_item(inv.item_id)
    refused = None
    if inv.totp or inv.attachment:
        refused = ctx.unlocked_error()
    elif item is not None and _is_secret_path(item, inv.query) and not ctx.session.unlocked:
        refused = NOT_UNLOCKED_MSG
    if refused:
        logger.error("get-item %s: %s", inv.item_id, refused)
        ctx.echo(refused)
        return refused

    if inv.totp:
        return _echo_bw(ctx, lambda: ctx.bw.get_totp(inv.item_id, ctx.session.session_key))

    if inv.attachment:
        target = str(Path.home() / "Downloads" / _download_name(item, inv.attachment))

        def download() -> str:
            ctx.bw.get_attachment(inv.attachment, inv.item_id, target, ctx.session.session_key)
            return f"Downloaded to {target}"

        return _echo_bw(ctx, download)

    if item is None:
        logger.warning("No cached item with id %s", inv.item_id)
        return None
    try:
        value = resolve_path(item, inv.query)
    except PathError:
        logger.warning("Field %r not found on item %s", inv.query, inv.item_id)
        return None
    ctx.echo(value)
    return value


def _download_name(item: Optional[VaultItem], attachment_id: str) -> str:
    """Bare file name for a downloaded attachment; never a path outside Downloads."""
    name = attachment_id
    if item is not None:
        name = next((a.file_name for a in item.attachments if a.id == attachment_id and a.file_name), name)
    for candidate in (name, attachment_id):
        base = Path(candidate.replace("\\", "/")).name
        if base not in ("", ".", ".."):
            return base
    return "attachment"


def _echo_bw(ctx: Context, call) -> Optional[str]:
    try:
        out = call()
    except BitwardenError as exc:
        logger.error("%s: %s", exc, getattr(exc, "detail", ""))
        ctx.echo(str(exc))
        return str(exc)
    ctx.echo(out)
    return out


def is_value_request(inv: Invocation) -> bool:
    """get-item prints a single value (field, TOTP, attachment) instead of a list."""
    return bool(inv.item_id) and bool(inv.query or inv.totp or inv.attachment)
