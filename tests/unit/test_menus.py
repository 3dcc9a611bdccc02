from __future__ import annotations

import json

from common.cache import ICON_CACHE, ITEMS_CACHE
from state.models import VaultItem
from workflow.handler import dispatch
from workflow.menus import DELETE_CACHE_MAGIC
from workflow.operations import parse_invocation


def _items(ctx, *argv):
    dispatch(ctx, parse_invocation(list(argv)))
    return json.loads(ctx.out.getvalue())["items"]


def test_config_menu_lists_settings_and_actions(make_ctx):
    ctx = make_ctx(email="me@example.com")

    items = _items(ctx, "-conf")

    titles = [i["title"] for i in items]
    assert titles[:3] == ["Enter your Bitwarden Email", "Set Server URL", "Set WebUI URL"]
    assert "Delete Workflow cache" in titles
    assert "Get date of last Bitwarden secret sync" in titles
    assert all("uid" not in i for i in items)

    email = items[0]
    assert email["variables"]["action"] == "-setconfigs"
    assert email["variables"]["action2"] == "email"
    assert email["variables"]["subtitle"] == "Currently set to: 'me@example.com'"


def test_config_query_becomes_setting_value(make_ctx):
    ctx = make_ctx(reordering_disabled=False)

    items = _items(ctx, "-conf", "server")

    server = next(i for i in items if i["title"] == "Set Server URL")
    assert server["arg"] == "server"
    assert server["uid"] == "server"
    assert server["variables"]["notification"] == "Set Server to: \nserver"


def test_config_menu_without_match_warns(make_ctx):
    items = _items(make_ctx(), "-conf", "zzzzqqq")

    assert [i["title"] for i in items] == ["No Config Found"]


def test_delete_cache_magic_clears_items_and_icons(make_ctx):
    ctx = make_ctx()
    ctx.vault.write([VaultItem(id="a", name="x")], [])
    ctx.data.touch(ICON_CACHE)
    ctx.icons.path("github.com").parent.mkdir(parents=True)
    ctx.icons.path("github.com").write_bytes(b"png")

    items = _items(ctx, "-conf", DELETE_CACHE_MAGIC)

    assert [i["title"] for i in items] == ["Workflow cache deleted"]
    assert not ctx.cache.exists(ITEMS_CACHE)
    assert not ctx.data.exists(ICON_CACHE)
    assert not ctx.icons.has("github.com")


def test_auth_menu(make_ctx):
    items = _items(make_ctx(), "-auth")

    assert [i["variables"]["action"] for i in items] == ["-login", "-logout", "-unlock", "-lock"]


def test_auth_menu_filters(make_ctx):
    assert [i["title"] for i in _items(make_ctx(), "-auth", "lock")] == ["Lock", "Unlock"]


def test_auth_config_2fa_providers(make_ctx):
    items = _items(make_ctx(sfa_mode=1), "-authconfig", "-id", "Use")

    assert [i["arg"] for i in items] == ["0", "1", "3"]
    assert all(i["variables"]["action2"] == "2famode" for i in items)
    assert items[0]["subtitle"] == "Currently set to: 'Email'"


def test_auth_config_toggles(make_ctx):
    sfa = _items(make_ctx(sfa=True), "-authconfig", "-id", "on-off-sfa")
    assert [(i["arg"], i["variables"]["action2"]) for i in sfa] == [("true", "2fa"), ("false", "2fa")]
    assert sfa[0]["subtitle"] == "Currently set to: true"


def test_auth_config_apikey_toggle(make_ctx):
    items = _items(make_ctx(), "-authconfig", "-id", "on-off-apikey")

    assert [i["variables"]["action2"] for i in items] == ["apikey", "apikey"]
    assert items[1]["subtitle"] == "Currently set to: false"
