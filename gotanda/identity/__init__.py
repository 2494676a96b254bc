"""User directory package.

Contract:
- Canonical persistence in the ordered KV store (GOTANDA_DB_PATH).
- Accounts are created on first federated login (or admin seeding); never deleted here.
- Account key, federated identity key and API token key all resolve to one account.
- API tokens never leave the package: callers get PublicAccount.
"""
from __future__ import annotations
