from __future__ import annotations

"""
onlookers/router.py

Sharing HTTP surface.

- /me/...      the caller manages who may read their apps
- /access/...  decision endpoint for the sync-engine proxy sitting in front of the
               per-account databases (that proxy is not part of this service)

Onlookers and owners may be named by any directory key (account id or federated
identity key such as `github-1234`); they are resolved before touching the index.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from ..access import ReadOnlyPolicy, decide_access
from ..auth import get_store, require_account
from ..identity.db import resolve_account_safe
from ..identity.types import PublicAccount
from ..store import KVStore
from ..validation import require_identifier
from . import index as oidx

# Separates owner id from app name in the per-account database name.
USER_APP_SEP = "."

# Reads for the CouchDB-style sync protocol: plain GETs, plus POSTs to bulk-read endpoints.
SYNC_READ_ONLY_POLICY = ReadOnlyPolicy(
    methods=frozenset({"GET"}),
    path_prefixes=("/_changes", "/_all_docs", "/_local", "/_bulk_get"),
)


onlooker_router = APIRouter(prefix="/me", tags=["onlookers"])
access_router = APIRouter(prefix="/access", tags=["access"])


def _resolve_onlooker(store: KVStore, onlooker_key: str) -> PublicAccount:
    require_identifier(onlooker_key, "onlooker")
    onlooker = resolve_account_safe(store, onlooker_key)
    if not onlooker:
        raise HTTPException(status_code=400, detail="bad onlooker")
    return onlooker


# ----------------------------
# Caller-managed links
# ----------------------------

@onlooker_router.get("/onlookers")
def list_links(
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    return oidx.all_links(store, account.account_id).to_dict()


@onlooker_router.put("/onlooker/{onlooker_key}/app/{app}")
def add_onlooker_app(
    onlooker_key: str,
    app: str,
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    require_identifier(app, "app")
    onlooker = _resolve_onlooker(store, onlooker_key)
    ok = oidx.grant(store, account.account_id, onlooker.account_id, app)
    return {"ok": ok, "onlooker": onlooker.account_id, "app": app}


@onlooker_router.delete("/onlooker/{onlooker_key}/app/{app}")
def del_onlooker_app(
    onlooker_key: str,
    app: str,
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    require_identifier(app, "app")
    onlooker = _resolve_onlooker(store, onlooker_key)
    ok = oidx.revoke(store, account.account_id, onlooker.account_id, app)
    return {"ok": ok, "onlooker": onlooker.account_id, "app": app}


@onlooker_router.delete("/onlooker/{onlooker_key}")
def del_onlooker(
    onlooker_key: str,
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    onlooker = _resolve_onlooker(store, onlooker_key)
    ok = oidx.revoke_onlooker(store, account.account_id, onlooker.account_id)
    return {"ok": ok, "onlooker": onlooker.account_id}


@onlooker_router.delete("/onlookers")
def del_onlookers(
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    return {"ok": oidx.revoke_all_onlookers(store, account.account_id)}


@onlooker_router.delete("/links")
def del_all_links(
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    # Stop sharing and stop onlooking, in one call.
    return {"ok": oidx.remove_account_links(store, account.account_id)}


# ----------------------------
# Proxy decision
# ----------------------------

@access_router.get("/owner/{owner_key}/app/{app}")
def check_access(
    owner_key: str,
    app: str,
    method: str = Query(default="GET"),
    path: str = Query(default="/"),
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    require_identifier(owner_key, "owner")
    require_identifier(app, "app")

    result = decide_access(
        store,
        requester_id=account.account_id,
        owner_key=owner_key,
        app=app,
        method=method,
        path=path,
        policy=SYNC_READ_ONLY_POLICY,
    )
    if not result.allowed:
        # Same body whatever the reason, so callers can't enumerate accounts.
        raise HTTPException(status_code=401, detail="bad request")

    return {
        "ok": True,
        "decision": result.decision.value,
        "reasons": result.reasons,
        "db_name": f"{result.owner_id}{USER_APP_SEP}{app}",
    }
