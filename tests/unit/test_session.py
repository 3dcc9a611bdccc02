from __future__ import annotations

import json

from state.session import TokenStore, load_session_state


def test_token_store_roundtrip_and_permissions(tmp_path):
    tokens = TokenStore.in_dir(tmp_path / "data")
    assert tokens.get() == ""

    tokens.set("abc123\n")

    assert tokens.get() == "abc123"
    path = tmp_path / "data" / "session.token"
    assert path.stat().st_mode & 0o777 == 0o600

    tokens.clear()
    tokens.clear()
    assert tokens.get() == ""


def test_session_state_from_current_cli_data_file(tmp_path):
    data = tmp_path / "data.json"
    data.write_text(json.dumps({"activeUserId": "u-1", "global": {}}))
    tokens = TokenStore(tmp_path / "token")
    tokens.set("tok")

    state = load_session_state(data, tokens)

    assert state.user_id == "u-1"
    assert state.session_key == "tok"
    assert state.logged_in and state.unlocked


def test_session_state_from_legacy_user_id(tmp_path):
    data = tmp_path / "data.json"
    data.write_text(json.dumps({"userId": "legacy"}))

    state = load_session_state(data, TokenStore(tmp_path / "token"))

    assert state.logged_in
    assert not state.unlocked


def test_token_ignored_when_not_logged_in(tmp_path):
    tokens = TokenStore(tmp_path / "token")
    tokens.set("stale")

    missing = load_session_state(tmp_path / "nope.json", tokens)
    (tmp_path / "bad.json").write_text("{")
    broken = load_session_state(tmp_path / "bad.json", tokens)

    for state in (missing, broken):
        assert state.user_id == ""
        assert state.session_key == ""
        assert not state.logged_in and not state.unlocked
