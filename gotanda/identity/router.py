from __future__ import annotations

"""
identity/router.py

Directory HTTP surface: who am I, API token management, admin seeding.

- Every caller route authenticates with a bearer token (auth.require_account).
- Admin routes are fail-closed unless GOTANDA_ADMIN_API_KEY is configured.
- Handlers are plain `def`: store calls are blocking and run in FastAPI's threadpool.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from ..auth import get_settings, get_store, require_account, require_admin
from ..config import Settings
from ..store import KVStore
from ..validation import require_identifier
from . import db as idb
from .types import PublicAccount


identity_router = APIRouter(tags=["identity"])
admin_identity_router = APIRouter(prefix="/admin", tags=["identity-admin"], dependencies=[Depends(require_admin)])


# ----------------------------
# Caller APIs
# ----------------------------

@identity_router.get("/me")
def identity_me(account: PublicAccount = Depends(require_account)) -> Dict[str, Any]:
    return account.model_dump(by_alias=True)


@identity_router.get("/auth/tokens")
def list_tokens(
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    names = idb.list_token_names(store, account.account_id)
    return {"items": names, "meta": {"count": len(names)}}


@identity_router.delete("/auth/tokens")
def delete_tokens(
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    ok = idb.delete_all_tokens(store, account.account_id)
    return {"ok": bool(ok)}


@identity_router.api_route("/auth/token/{name}", methods=["GET", "POST"])
def issue_token(
    name: str,
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    # Re-issuing under an existing name kills the old token.
    require_identifier(name, "token name")
    token = idb.rotate_token(store, account.account_id, name)
    if not token:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"ok": True, "name": name, "token": token}


@identity_router.delete("/auth/token/{name}")
def revoke_token(
    name: str,
    account: PublicAccount = Depends(require_account),
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    require_identifier(name, "token name")
    ok = idb.delete_token(store, account.account_id, name)
    return {"ok": bool(ok), "name": name}


# ----------------------------
# Admin seeding (federated login itself lives outside this service)
# ----------------------------

@admin_identity_router.post("/accounts/federated")
def seed_federated_account(
    profile: Dict[str, Any] = Body(...),
    store: KVStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if profile.get("id") is None:
        raise HTTPException(status_code=400, detail="profile id is required")
    # Validate the provider exactly as it will be keyed; an explicit "" is not "github".
    require_identifier(str(profile.get("provider", "github")), "provider")
    require_identifier(str(profile["id"]), "profile id")

    try:
        account = idb.find_or_create_federated(store, profile, settings.allowlist)
    except ValueError:
        # pydantic ValidationError included
        raise HTTPException(status_code=400, detail="bad profile")
    if account is None:
        raise HTTPException(status_code=403, detail="Identity not allowed")
    return account.model_dump(by_alias=True)


@admin_identity_router.post("/accounts/{account_id}/tokens/{name}")
def seed_token(
    account_id: str,
    name: str,
    store: KVStore = Depends(get_store),
) -> Dict[str, Any]:
    require_identifier(account_id, "account id")
    require_identifier(name, "token name")
    token = idb.create_token(store, account_id, name)
    if not token:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"ok": True, "account_id": account_id, "name": name, "token": token}
