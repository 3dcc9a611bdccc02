from __future__ import annotations

import json

from common.feedback import Feedback, ResultItem, filter_items, score


def test_prefix_beats_substring_beats_in_order():
    assert score("GitHub", "git") > score("My GitHub", "git")
    assert score("My GitHub", "git") > 0
    assert score("Gandalf in tea", "git") > 0
    assert score("Gmail", "git") == 0


def test_initials_match():
    assert score("Amazon Web Services", "aws") > 0


def test_filter_requires_every_word():
    items = [ResultItem(title=t) for t in ("GitHub Work", "GitHub Personal", "GitLab Work")]

    out = filter_items(items, "git work")

    assert [i.title for i in out] == ["GitHub Work", "GitLab Work"]


def test_filter_uses_match_text_over_title():
    hidden = ResultItem(title="Bank", match="Bank alice@example.com")
    other = ResultItem(title="Alice's notes", match="Notes")

    assert filter_items([hidden, other], "alice") == [hidden]


def test_empty_query_keeps_order():
    fb = Feedback()
    fb.new_item("b")
    fb.new_item("a")

    fb.filter("  ")

    assert [i.title for i in fb.items] == ["b", "a"]


def test_warn_empty_adds_one_invalid_item():
    fb = Feedback()
    fb.warn_empty("No Secrets Found")
    fb.warn_empty("No Secrets Found")

    assert len(fb) == 1
    item = fb.payload()["items"][0]
    assert item["valid"] is False
    assert item["icon"] == {"path": "icons/warning.png"}


def test_payload_truncates_and_suppresses_uids():
    fb = Feedback(max_results=2, suppress_uids=True)
    for n in range(3):
        fb.new_item(f"item {n}", uid=f"u{n}", arg="x", valid=True).var("action", "-getitem")
    fb.new_item("no vars")

    payload = json.loads(fb.to_json())

    assert len(payload["items"]) == 2
    assert "uid" not in payload["items"][0]
    assert payload["items"][0]["variables"] == {"action": "-getitem"}
    assert "match" not in payload["items"][0]


def test_uids_kept_when_reordering_allowed():
    fb = Feedback()
    fb.new_item("x", uid="abc")
    fb.new_item("y")

    items = fb.payload()["items"]

    assert items[0]["uid"] == "abc"
    assert "variables" not in items[1]
