"""
onlookers/index.py

Read-only sharing links between accounts, stored as an inverted pair of key ranges.

A link (creator, onlooker, app) lets `onlooker` read `creator`'s app. It is stored twice:

    ro/creator/<creator>/onlooker/<onlooker>/app/<app>     forward: "can X see Y's app", "who did I share with"
    ro/onlooker/<onlooker>/creator/<creator>/app/<app>     reverse: "who shares with me"

Value is a sentinel; presence is the fact.

Rules:
- This module is the only writer of `ro/` keys. Forward and reverse keys are put or
  deleted together in one batch, so neither is ever visible without the other.
- is_authorized() consults the forward key only.
- The range revokes scan first and batch-delete second. A grant racing into the scanned
  range can survive (if the scan already passed it) or be removed (if not). Tolerated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..store import KVStore

logger = logging.getLogger(__name__)

SEP = "/"
ROOT = "ro"
CREATOR = "creator"
ONLOOKER = "onlooker"
APP = "app"

SENTINEL = 1

_FORWARD_ROOT = SEP.join([ROOT, CREATOR]) + SEP


@dataclass(frozen=True)
class Link:
    creator: str
    onlooker: str
    app: str


@dataclass(frozen=True)
class Granted:
    """One entry of "who I share with"."""

    onlooker: str
    app: str


@dataclass(frozen=True)
class Received:
    """One entry of "who shares with me"."""

    creator: str
    app: str


@dataclass
class AccountLinks:
    granted: List[Granted] = field(default_factory=list)
    received: List[Received] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "onlookers": [{"onlooker": g.onlooker, "app": g.app} for g in self.granted],
            "creators": [{"creator": r.creator, "app": r.app} for r in self.received],
        }


# ----------------------------
# Key codec
# ----------------------------

def _segment(value: str) -> str:
    if not value or SEP in value:
        raise ValueError(f"identifier must be non-empty and free of {SEP!r}: {value!r}")
    return value


def forward_key(creator_id: str, onlooker_id: str, app: str) -> str:
    return SEP.join([ROOT, CREATOR, _segment(creator_id), ONLOOKER, _segment(onlooker_id), APP, _segment(app)])


def reverse_key(creator_id: str, onlooker_id: str, app: str) -> str:
    return SEP.join([ROOT, ONLOOKER, _segment(onlooker_id), CREATOR, _segment(creator_id), APP, _segment(app)])


def _prefix(*parts: str) -> str:
    return SEP.join([ROOT, *(_segment(p) for p in parts)]) + SEP


def parse_key(key: str) -> Optional[Link]:
    """Decode a forward or reverse key back into its link. None if the key is malformed."""
    parts = key.split(SEP)
    if len(parts) != 7 or parts[0] != ROOT or parts[5] != APP:
        return None
    first_role, first_id, second_role, second_id, app = parts[1], parts[2], parts[3], parts[4], parts[6]
    if (first_role, second_role) == (CREATOR, ONLOOKER):
        return Link(creator=first_id, onlooker=second_id, app=app)
    if (first_role, second_role) == (ONLOOKER, CREATOR):
        return Link(creator=second_id, onlooker=first_id, app=app)
    return None


# ----------------------------
# Queries
# ----------------------------

def is_authorized(store: KVStore, creator_id: str, onlooker_id: str, app: str) -> bool:
    return store.has(forward_key(creator_id, onlooker_id, app))


def _scan_links(store: KVStore, prefix: str) -> List[Link]:
    links: List[Link] = []
    for key in store.scan_prefix(prefix):
        link = parse_key(key)
        if link is None:
            logger.error("Malformed onlooker key %r; skipping", key)
            continue
        links.append(link)
    return links


def all_links(store: KVStore, account_id: str) -> AccountLinks:
    """
    Links where `account_id` is the creator (granted) and where it is the onlooker (received).
    Ordered by the store's key order: second identifier, then app name.
    """
    granted = [Granted(onlooker=link.onlooker, app=link.app)
               for link in _scan_links(store, _prefix(CREATOR, account_id))]
    received = [Received(creator=link.creator, app=link.app)
                for link in _scan_links(store, _prefix(ONLOOKER, account_id))]
    return AccountLinks(granted=granted, received=received)


# ----------------------------
# Mutations
# ----------------------------

def grant(store: KVStore, creator_id: str, onlooker_id: str, app: str) -> bool:
    (
        store.batch()
        .put(forward_key(creator_id, onlooker_id, app), SENTINEL)
        .put(reverse_key(creator_id, onlooker_id, app), SENTINEL)
        .write()
    )
    logger.debug("Granted %s read access to %s/%s", onlooker_id, creator_id, app)
    return True


def revoke(store: KVStore, creator_id: str, onlooker_id: str, app: str) -> bool:
    (
        store.batch()
        .delete(forward_key(creator_id, onlooker_id, app))
        .delete(reverse_key(creator_id, onlooker_id, app))
        .write()
    )
    logger.debug("Revoked %s read access to %s/%s", onlooker_id, creator_id, app)
    return True


def _revoke_range(store: KVStore, prefix: str) -> int:
    """Delete every link whose key starts with `prefix`, mirror keys included."""
    batch = store.batch()
    count = 0
    for key in store.scan_prefix(prefix):
        batch.delete(key)
        link = parse_key(key)
        if link is None:
            logger.error("Malformed onlooker key %r; deleting without mirror", key)
            continue
        if key.startswith(_FORWARD_ROOT):
            batch.delete(reverse_key(link.creator, link.onlooker, link.app))
        else:
            batch.delete(forward_key(link.creator, link.onlooker, link.app))
        count += 1
    batch.write()
    return count


def revoke_onlooker(store: KVStore, creator_id: str, onlooker_id: str) -> bool:
    """Revoke every app `onlooker_id` can see of `creator_id`."""
    count = _revoke_range(store, _prefix(CREATOR, creator_id, ONLOOKER, onlooker_id))
    logger.debug("Revoked %d links from %s to %s", count, creator_id, onlooker_id)
    return True


def revoke_all_onlookers(store: KVStore, creator_id: str) -> bool:
    """Revoke every link `creator_id` has granted, to anyone."""
    count = _revoke_range(store, _prefix(CREATOR, creator_id))
    logger.debug("Revoked all %d links granted by %s", count, creator_id)
    return True


def remove_account_links(store: KVStore, account_id: str) -> bool:
    """
    Remove every link touching `account_id`: those it granted and those it received.
    Two independent range revokes, each atomic on its own.
    """
    granted = _revoke_range(store, _prefix(CREATOR, account_id))
    received = _revoke_range(store, _prefix(ONLOOKER, account_id))
    logger.debug("Removed %d granted and %d received links for %s", granted, received, account_id)
    return True
