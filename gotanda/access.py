"""
Access decision for reads of another account's app.

Pure composition of the directory and the onlooker index. No transport concerns:
the HTTP layer turns a decision into a status code.

It answers one question only:
May this requester perform this request against owner O's app A?
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from .identity.db import resolve_account_safe
from .onlookers.index import is_authorized
from .store import KVStore


class AccessDecision(str, Enum):
    OWNER = "OWNER"           # requester owns the app: every operation
    READ_ONLY = "READ_ONLY"   # onlooker, and this request only reads
    DENY = "DENY"


@dataclass(frozen=True)
class ReadOnlyPolicy:
    """
    Which requests count as reads. Owned by the router, since it knows the sync protocol.
    A request is a read if its method is listed or its path starts with a listed prefix
    (e.g. POST to a bulk-read endpoint).
    """

    methods: FrozenSet[str] = frozenset({"GET"})
    path_prefixes: Tuple[str, ...] = ()

    def is_read_only(self, method: str, path: str) -> bool:
        if method.upper() in self.methods:
            return True
        return any(path.startswith(p) for p in self.path_prefixes)


@dataclass(frozen=True)
class AccessResult:
    decision: AccessDecision
    reasons: List[str] = field(default_factory=list)
    owner_id: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision != AccessDecision.DENY


def decide_access(
    store: KVStore,
    *,
    requester_id: str,
    owner_key: str,
    app: str,
    method: str,
    path: str,
    policy: ReadOnlyPolicy,
) -> AccessResult:
    """
    `owner_key` may be any directory key (account, federated identity); it is resolved first.
    """
    owner = resolve_account_safe(store, owner_key)
    if owner is None:
        return AccessResult(AccessDecision.DENY, ["OWNER_NOT_FOUND"])

    if owner.account_id == requester_id:
        return AccessResult(AccessDecision.OWNER, ["REQUESTER_IS_OWNER"], owner.account_id)

    if not is_authorized(store, owner.account_id, requester_id, app):
        return AccessResult(AccessDecision.DENY, ["NOT_AN_ONLOOKER"], owner.account_id)

    if not policy.is_read_only(method, path):
        return AccessResult(AccessDecision.DENY, ["ONLOOKER", "WRITE_NOT_ALLOWED"], owner.account_id)

    return AccessResult(AccessDecision.READ_ONLY, ["ONLOOKER", "READ_ONLY_REQUEST"], owner.account_id)


def can_read(store: KVStore, requester_id: str, owner_key: str, app: str) -> bool:
    result = decide_access(
        store,
        requester_id=requester_id,
        owner_key=owner_key,
        app=app,
        method="GET",
        path="/",
        policy=ReadOnlyPolicy(),
    )
    return result.allowed
