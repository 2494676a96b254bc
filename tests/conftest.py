from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Callable, Dict, Tuple

import pytest

from gotanda.identity import db as idb
from gotanda.identity.types import ALLOW_ALL, PublicAccount
from gotanda.store import KVStore


def _github_profile(external_id: str, username: str = "Testor") -> Dict[str, Any]:
    # Shape of a passport-github profile, including the cached payloads that must not be stored.
    return {
        "provider": "github",
        "id": external_id,
        "username": username,
        "displayName": "",
        "profileUrl": "",
        "_raw": "{\"login\": \"secret-ish\"}",
        "_json": {"login": username},
    }


@pytest.fixture
def github_profile() -> Callable[..., Dict[str, Any]]:
    return _github_profile


@pytest.fixture
def store(tmp_path) -> KVStore:
    return KVStore(str(tmp_path / "gotanda-users.db"))


@pytest.fixture
def people(store: KVStore) -> Tuple[PublicAccount, PublicAccount, PublicAccount]:
    accounts = [idb.find_or_create_federated(store, _github_profile(i), ALLOW_ALL) for i in ("a1", "b2", "c3")]
    assert all(accounts)
    alice, bob, chan = accounts
    return alice, bob, chan


@pytest.fixture
def write_raw(store: KVStore) -> Callable[[str, str], None]:
    """Write a value verbatim, bypassing JSON encoding."""

    def _write(key: str, raw: str) -> None:
        conn = sqlite3.connect(store.path)
        try:
            with conn:
                conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, raw))
        finally:
            conn.close()

    return _write


class _FailingConnection:
    """Delegates to a real connection but raises on the n-th statement."""

    def __init__(self, conn: sqlite3.Connection, fail_on: int) -> None:
        self._conn = conn
        self._fail_on = fail_on
        self._calls = 0

    def execute(self, sql, params=()):
        self._calls += 1
        if self._calls == self._fail_on:
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, params)

    def __enter__(self):
        self._conn.__enter__()
        return self

    def __exit__(self, *exc_info):
        return self._conn.__exit__(*exc_info)


@pytest.fixture
def fail_nth_statement(store: KVStore, monkeypatch) -> Callable[[int], None]:
    """Make every connection the store opens fail on its n-th statement."""

    def _arm(n: int) -> None:
        real_connect = store._connect

        @contextmanager
        def _connect():
            with real_connect() as conn:
                yield _FailingConnection(conn, n)

        monkeypatch.setattr(store, "_connect", _connect)

    return _arm
