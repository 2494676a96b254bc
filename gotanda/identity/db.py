"""
identity/db.py

User directory over the ordered KV store.

Keys and values:
- `gotanda-<random>`          => Account record (the key *is* the account id)
- `<provider>-<external id>`  => account key (federated identity mapping, e.g. `github-1234`)
- `token-<random>`            => account key (API token mapping; the key is the secret)

Rules:
- Absence is a return value (None / False), never an exception.
- A value that is not JSON, a record that fails validation, or a mapping that points
  nowhere is corruption:
  logged at ERROR and treated as absent.
- Every write that touches an account record and a mapping goes through one batch.

Known hazard: token create/delete is read-modify-write on the account record with no
compare-and-set. Two concurrent writers for one account can lose a list entry while the
token mapping they wrote survives. Callers serialize per account.
"""

from __future__ import annotations

import base64
import logging
import secrets
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from ..store import KVStore, StoreDecodeError
from .types import ALLOW_ALL, Account, AllowlistPolicy, ApiToken, FederatedProfile, PublicAccount

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "gotanda-"
TOKEN_PREFIX = "token-"

ACCOUNT_ID_BYTES = 9
TOKEN_BYTES = 21

# Separator of the onlooker keyspace; never part of a directory key.
KEY_SEP = "/"

# Cached provider payloads we refuse to persist.
RAW_PROFILE_FIELDS = ("_raw", "_json")


# ----------------------------
# Key helpers
# ----------------------------

def base64url_random(nbytes: int) -> str:
    # RFC 4648 section 5 alphabet; byte counts used here are multiples of 3, so no padding.
    return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).decode("ascii").rstrip("=")


def identity_key(provider: str, external_id: str) -> str:
    for part in (provider, external_id):
        if not part or KEY_SEP in part:
            raise ValueError(f"identity part must be non-empty and free of {KEY_SEP!r}: {part!r}")
    key = f"{provider}-{external_id}"
    if is_account_key(key) or is_token_key(key):
        raise ValueError(f"provider {provider!r} collides with a reserved key prefix")
    return key


def is_account_key(key: str) -> bool:
    return key.startswith(ACCOUNT_PREFIX)


def is_token_key(key: str) -> bool:
    return key.startswith(TOKEN_PREFIX)


def _redact(key: str) -> str:
    # Token keys are secrets; keep enough to correlate log lines.
    if is_token_key(key):
        return key[: len(TOKEN_PREFIX) + 4] + "..."
    return key


# ----------------------------
# Lookup
# ----------------------------

def _read(store: KVStore, key: str) -> Optional[Any]:
    try:
        return store.get(key)
    except StoreDecodeError as exc:
        logger.error("Value under %s is not valid JSON (%s); treating as absent", _redact(key), exc.__cause__)
        return None


def _decode_account(key: str, raw: Any) -> Optional[Account]:
    try:
        account = Account.model_validate(raw)
    except ValidationError as exc:
        logger.error("Account record under %s failed validation (%d errors); treating as absent",
                     key, exc.error_count())
        return None
    if account.account_id != key:
        logger.error("Account record under %s claims id %s; treating as absent", key, account.account_id)
        return None
    return account


def _load_account(store: KVStore, account_key: str) -> Optional[Account]:
    if not is_account_key(account_key):
        return None
    raw = _read(store, account_key)
    if raw is None:
        return None
    return _decode_account(account_key, raw)


def resolve_account(store: KVStore, key: str) -> Optional[Account]:
    """
    Resolve an account key, identity key or token key to the internal account record.
    Identity and token keys are followed exactly one level; the target must be an account key.
    """
    if is_account_key(key):
        return _load_account(store, key)

    target = _read(store, key)
    if target is None:
        return None
    if not isinstance(target, str) or not is_account_key(target):
        logger.error("%s does not point at an account key; treating as absent", _redact(key))
        return None

    account = _load_account(store, target)
    if account is None:
        logger.error("%s points to %s which doesn't exist", _redact(key), target)
    return account


def resolve_account_safe(store: KVStore, key: str) -> Optional[PublicAccount]:
    account = resolve_account(store, key)
    return account.to_public() if account else None


# ----------------------------
# Federated sign-in
# ----------------------------

def _is_allowed(profile: FederatedProfile, allowlist: AllowlistPolicy) -> bool:
    if allowlist == ALLOW_ALL:
        return True
    return allowlist.admits(profile.id, profile.username)


def _new_account_id(store: KVStore) -> str:
    while True:
        candidate = ACCOUNT_PREFIX + base64url_random(ACCOUNT_ID_BYTES)
        if not store.has(candidate):
            return candidate


def sanitize_profile(profile: Mapping[str, Any]) -> dict:
    return {k: v for k, v in profile.items() if k not in RAW_PROFILE_FIELDS}


def find_or_create_federated(
    store: KVStore,
    profile: Mapping[str, Any],
    allowlist: AllowlistPolicy,
) -> Optional[PublicAccount]:
    """
    Return the account bound to this federated identity, creating it on first sight.

    Returns None when the identity is not on the allowlist. Two concurrent first logins
    for the same identity can both create an account; the later mapping write wins.
    """
    parsed = FederatedProfile.model_validate(profile)
    if not _is_allowed(parsed, allowlist):
        logger.info("Federated identity %s/%s rejected by allowlist", parsed.provider, parsed.id)
        return None

    key = identity_key(parsed.provider, parsed.id)
    hit = _read(store, key)
    if hit is not None:
        existing = resolve_account(store, key)
        if existing:
            return existing.to_public()
        # Mapping without an account: recover by creating a fresh one.
        logger.error("%s points to %r which doesn't exist. Creating.", key, hit)

    account_id = _new_account_id(store)
    stored_profile = sanitize_profile(profile)
    stored_profile["id"] = parsed.id
    account = Account(
        account_id=account_id,
        identities={parsed.provider: stored_profile},
        api_tokens=[],
    )

    store.batch().put(key, account_id).put(account_id, account.to_record()).write()
    logger.info("Created account %s for %s", account_id, key)
    return account.to_public()


# ----------------------------
# API tokens
# ----------------------------

def create_token(store: KVStore, account_id: str, name: str) -> Optional[str]:
    # Collisions are not checked: 168 random bits.
    token = TOKEN_PREFIX + base64url_random(TOKEN_BYTES)

    account = _load_account(store, account_id)
    if not account:
        return None

    account.api_tokens.append(ApiToken(token=token, name=name))
    store.batch().put(token, account_id).put(account_id, account.to_record()).write()
    logger.info("Issued API token %r for %s", name, account_id)
    return token


def delete_token(store: KVStore, account_id: str, name: str) -> bool:
    """
    Remove every token called `name` (names are meant to be unique but that is not enforced).
    """
    account = _load_account(store, account_id)
    if not account:
        return False
    if not account.api_tokens:
        return True

    batch = store.batch()
    kept: List[ApiToken] = []
    for entry in account.api_tokens:
        if entry.name == name:
            batch.delete(entry.token)
        else:
            kept.append(entry)

    # `name` not found: leave the database alone.
    if len(kept) == len(account.api_tokens):
        return True

    account.api_tokens = kept
    batch.put(account_id, account.to_record()).write()
    logger.info("Revoked API token %r for %s", name, account_id)
    return True


def delete_all_tokens(store: KVStore, account_id: str) -> bool:
    account = _load_account(store, account_id)
    if not account:
        return False
    if not account.api_tokens:
        return True

    batch = store.batch()
    for entry in account.api_tokens:
        batch.delete(entry.token)
    count = len(account.api_tokens)
    account.api_tokens = []
    batch.put(account_id, account.to_record()).write()
    logger.info("Revoked all %d API tokens for %s", count, account_id)
    return True


def rotate_token(store: KVStore, account_id: str, name: str) -> Optional[str]:
    """Invalidate any token called `name` and issue a fresh one under that name."""
    if not delete_token(store, account_id, name):
        return None
    return create_token(store, account_id, name)


def list_token_names(store: KVStore, account_id: str) -> List[str]:
    account = _load_account(store, account_id)
    if not account:
        return []
    return [entry.name for entry in account.api_tokens]
