from __future__ import annotations

import pytest

from workflow.operations import Invocation, Operation, parse_invocation

def test_default_is_search_with_query():
    inv = parse_invocation(["git", "hub"])

    assert inv.operation is Operation.SEARCH
    assert inv.query == "git hub"
    assert inv.item_id == ""

def test_every_operation_has_a_flag():
    for op in Operation:
        assert parse_invocation([f"-{op.value}"]).operation is op

def test_getitem_with_id_and_path():
    inv = parse_invocation(["-getitem", "-id", " abc ", "login.password"])

    assert inv.operation is Operation.GET_ITEM
    assert inv.item_id == "abc"
    assert inv.args == ["login.password"]

def test_sync_flags():
    inv = parse_invocation(["-sync", "-force", "-background"])

    assert inv.operation is Operation.SYNC
    assert inv.force and inv.background
    assert not inv.last

def test_attachment_and_totp():
    inv = parse_invocation(["-getitem", "-id", "i1", "-attachment", "att1"])
    assert inv.attachment == "att1"
    assert parse_invocation(["-getitem", "-id", "i1", "-totp"]).totp

def test_two_operations_are_rejected():
    with pytest.raises(SystemExit):
        parse_invocation(["-lock", "-unlock"])

@pytest.mark.parametrize(
    "argv",
    [["-sea"], ["-getitem", "-id", "x", "-tot"], ["-sync", "-back"], ["-conf", "-fo=1"]],
)
def test_abbreviated_flags_are_rejected(argv):
    with pytest.raises(SystemExit):
        parse_invocation(argv)

def test_tokens_after_double_dash_are_query():
    inv = parse_invocation(["-search", "--", "-tot"])

    assert inv.operation is Operation.SEARCH
    assert inv.args == ["-tot"]

def test_invocation_defaults():
    inv = Invocation()
    assert inv.operation is Operation.SEARCH
    assert inv.query == ""
