"""
FastAPI dependencies: store handle, settings, bearer-token caller, admin gate.
"""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .config import Settings
from .identity.db import is_token_key, resolve_account_safe
from .identity.types import PublicAccount
from .store import KVStore


def get_store(request: Request) -> KVStore:
    # main.create_app() sets app.state.store.
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _bearer_token(authorization: Optional[str]) -> str:
    scheme, _, value = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()


def require_account(
    authorization: Optional[str] = Header(default=None),
    store: KVStore = Depends(get_store),
) -> PublicAccount:
    """
    Resolve `Authorization: Bearer <token>` to the caller's public account.
    Only token keys authenticate; account ids and identity keys are not secrets.
    """
    token = _bearer_token(authorization)
    if not token or not is_token_key(token):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")

    account = resolve_account_safe(store, token)
    if account is None:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
    return account


def require_admin(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    # Fail-closed: without a configured key the admin surface does not exist.
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=403,
            detail={
                "ok": False,
                "error": "ADMIN_DISABLED",
                "message": "GOTANDA_ADMIN_API_KEY is not configured.",
            },
        )
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")
