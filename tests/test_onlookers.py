from __future__ import annotations

import logging
import sqlite3

import pytest

from gotanda.onlookers import index as oidx
from gotanda.onlookers.index import Granted, Link, Received


def _link_keys(store):
    return store.scan_prefix("ro/")


def test_no_links_initially(store, people):
    for user in people:
        links = oidx.all_links(store, user.account_id)
        assert links.granted == []
        assert links.received == []


def test_grant_is_directional(store):
    assert oidx.grant(store, "A", "B", "S") is True
    assert oidx.is_authorized(store, "A", "B", "S")
    assert not oidx.is_authorized(store, "B", "A", "S")
    assert not oidx.is_authorized(store, "A", "C", "S")
    assert not oidx.is_authorized(store, "A", "B", "other")


def test_grant_writes_forward_and_reverse_keys(store):
    oidx.grant(store, "A", "B", "S")
    assert _link_keys(store) == [
        "ro/creator/A/onlooker/B/app/S",
        "ro/onlooker/B/creator/A/app/S",
    ]


def test_revoke_removes_both_keys(store):
    oidx.grant(store, "A", "B", "S")
    assert oidx.revoke(store, "A", "B", "S") is True
    assert not oidx.is_authorized(store, "A", "B", "S")
    assert _link_keys(store) == []


def test_grant_and_revoke_are_idempotent(store):
    oidx.grant(store, "A", "B", "S")
    oidx.grant(store, "A", "B", "S")
    assert len(_link_keys(store)) == 2

    oidx.revoke(store, "A", "B", "S")
    assert oidx.revoke(store, "A", "B", "S") is True
    assert oidx.revoke(store, "X", "Y", "Z") is True
    assert _link_keys(store) == []


def test_failed_grant_leaves_neither_key(store, fail_nth_statement):
    fail_nth_statement(2)
    with pytest.raises(sqlite3.OperationalError):
        oidx.grant(store, "A", "B", "S")

    assert _link_keys(store) == []
    assert not oidx.is_authorized(store, "A", "B", "S")


def test_failed_revoke_keeps_both_keys(store, fail_nth_statement):
    oidx.grant(store, "A", "B", "S")
    fail_nth_statement(2)
    with pytest.raises(sqlite3.OperationalError):
        oidx.revoke(store, "A", "B", "S")

    assert _link_keys(store) == [
        "ro/creator/A/onlooker/B/app/S",
        "ro/onlooker/B/creator/A/app/S",
    ]


def test_links_can_be_regranted(store):
    oidx.grant(store, "A", "B", "S")
    oidx.revoke(store, "A", "B", "S")
    oidx.grant(store, "A", "B", "S")
    assert oidx.is_authorized(store, "A", "B", "S")


def test_all_links_both_directions(store):
    oidx.grant(store, "A", "B", "S1")
    oidx.grant(store, "A", "B", "S2")

    a = oidx.all_links(store, "A")
    assert set(a.granted) == {Granted("B", "S1"), Granted("B", "S2")}
    assert a.received == []

    b = oidx.all_links(store, "B")
    assert set(b.received) == {Received("A", "S1"), Received("A", "S2")}
    assert b.granted == []


def test_all_links_follow_key_order(store):
    oidx.grant(store, "A", "C", "zeta")
    oidx.grant(store, "A", "B", "beta")
    oidx.grant(store, "A", "C", "alpha")
    oidx.grant(store, "A", "B", "alpha")

    assert oidx.all_links(store, "A").granted == [
        Granted("B", "alpha"),
        Granted("B", "beta"),
        Granted("C", "alpha"),
        Granted("C", "zeta"),
    ]


def test_all_links_to_dict(store):
    oidx.grant(store, "A", "B", "S")
    assert oidx.all_links(store, "A").to_dict() == {"onlookers": [{"onlooker": "B", "app": "S"}], "creators": []}
    assert oidx.all_links(store, "B").to_dict() == {"onlookers": [], "creators": [{"creator": "A", "app": "S"}]}


def test_revoke_onlooker_is_scoped_to_one_pair(store):
    for app in ("s1", "s2", "s3"):
        oidx.grant(store, "A", "B", app)
    oidx.grant(store, "A", "C", "s1")
    oidx.grant(store, "D", "B", "s1")

    assert oidx.revoke_onlooker(store, "A", "B") is True

    for app in ("s1", "s2", "s3"):
        assert not oidx.is_authorized(store, "A", "B", app)
    assert oidx.is_authorized(store, "A", "C", "s1")
    assert oidx.is_authorized(store, "D", "B", "s1")
    assert oidx.all_links(store, "B").received == [Received("D", "s1")]
    # no orphaned reverse keys
    assert "ro/onlooker/B/creator/A/app/s1" not in _link_keys(store)


def test_revoke_onlooker_does_not_touch_prefix_sharing_ids(store):
    oidx.grant(store, "A", "B", "s")
    oidx.grant(store, "A", "BB", "s")

    oidx.revoke_onlooker(store, "A", "B")
    assert oidx.is_authorized(store, "A", "BB", "s")


def test_revoke_all_onlookers_keeps_received_links(store):
    oidx.grant(store, "A", "B", "s1")
    oidx.grant(store, "A", "C", "s2")
    oidx.grant(store, "B", "A", "s3")

    assert oidx.revoke_all_onlookers(store, "A") is True

    links = oidx.all_links(store, "A")
    assert links.granted == []
    assert links.received == [Received("B", "s3")]
    assert oidx.all_links(store, "B").received == []
    assert oidx.all_links(store, "C").received == []
    assert _link_keys(store) == [
        "ro/creator/B/onlooker/A/app/s3",
        "ro/onlooker/A/creator/B/app/s3",
    ]


def test_revoke_range_on_empty_range(store):
    assert oidx.revoke_onlooker(store, "A", "B") is True
    assert oidx.revoke_all_onlookers(store, "A") is True


def test_remove_account_links_clears_both_sides(store):
    oidx.grant(store, "A", "B", "s1")
    oidx.grant(store, "B", "A", "s2")
    oidx.grant(store, "B", "C", "s3")

    assert oidx.remove_account_links(store, "A") is True

    assert oidx.all_links(store, "A").granted == []
    assert oidx.all_links(store, "A").received == []
    assert oidx.all_links(store, "B").granted == [Granted("C", "s3")]
    assert oidx.all_links(store, "C").received == [Received("B", "s3")]


def test_parse_key_round_trip_both_directions():
    link = Link(creator="gotanda-x", onlooker="gotanda-y", app="my.app")
    assert oidx.parse_key(oidx.forward_key(link.creator, link.onlooker, link.app)) == link
    assert oidx.parse_key(oidx.reverse_key(link.creator, link.onlooker, link.app)) == link


@pytest.mark.parametrize("key", [
    "ro/creator/A/onlooker/B",
    "ro/creator/A/creator/B/app/S",
    "xx/creator/A/onlooker/B/app/S",
    "ro/creator/A/onlooker/B/bad/S",
])
def test_parse_key_rejects_malformed(key):
    assert oidx.parse_key(key) is None


def test_identifiers_with_separator_are_refused(store):
    with pytest.raises(ValueError):
        oidx.grant(store, "A", "B", "a/b")
    with pytest.raises(ValueError):
        oidx.is_authorized(store, "", "B", "S")
    assert _link_keys(store) == []


def test_malformed_keys_in_range_are_skipped_on_read(store, caplog):
    oidx.grant(store, "A", "B", "S")
    store.put("ro/creator/A/garbage", 1)

    with caplog.at_level(logging.ERROR):
        links = oidx.all_links(store, "A")
    assert links.granted == [Granted("B", "S")]
    assert "Malformed onlooker key" in caplog.text


def test_original_sharing_walkthrough(store, people):
    alice, bob, chan = (p.account_id for p in people)
    app, app2, app3 = "my-alias-is-alice", "my-other-app", "app3"

    oidx.grant(store, alice, bob, app)
    assert oidx.all_links(store, alice).granted == [Granted(bob, app)]
    assert oidx.all_links(store, bob).received == [Received(alice, app)]

    oidx.grant(store, alice, bob, app2)
    oidx.grant(store, alice, bob, app3)
    oidx.grant(store, alice, chan, app3)
    assert len(oidx.all_links(store, alice).granted) == 4
    assert len(oidx.all_links(store, bob).received) == 3
    assert len(oidx.all_links(store, chan).received) == 1

    oidx.revoke(store, alice, bob, app3)
    assert not oidx.is_authorized(store, alice, bob, app3)
    assert oidx.is_authorized(store, alice, bob, app2)
    assert oidx.is_authorized(store, alice, chan, app3)

    oidx.revoke_onlooker(store, alice, bob)
    assert oidx.all_links(store, bob).received == []
    assert oidx.is_authorized(store, alice, chan, app3)

    oidx.grant(store, alice, bob, app2)
    oidx.revoke_all_onlookers(store, alice)
    for user in (alice, bob, chan):
        links = oidx.all_links(store, user)
        assert links.granted == [] and links.received == []
