from __future__ import annotations

import os
from dataclasses import dataclass
from typing import FrozenSet, Optional

from .identity.types import ALLOW_ALL, Allowlist, AllowlistPolicy


# ----------------------------
# Env helpers
# ----------------------------

def _str_env(name: str, default: str) -> str:
    raw = (os.getenv(name) or "").strip()
    return raw if raw else default


def _int_env(name: str, default: int) -> int:
    try:
        raw = (os.getenv(name) or "").strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


def _optional_env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    v = v.strip()
    return v if v else None


def _csv_set(raw: str) -> FrozenSet[str]:
    return frozenset(s.strip() for s in raw.split(",") if s.strip())


def parse_allowlist(ids: str, usernames: str) -> AllowlistPolicy:
    """
    Both lists "*" means anyone may sign up. Otherwise each list is a comma-separated set.
    """
    if ids.strip() == ALLOW_ALL and usernames.strip() == ALLOW_ALL:
        return ALLOW_ALL
    return Allowlist(ids=_csv_set(ids), usernames=_csv_set(usernames))


# ----------------------------
# Settings
# ----------------------------

@dataclass(frozen=True)
class Settings:
    db_path: str
    allowlist: AllowlistPolicy
    admin_api_key: Optional[str]
    log_level: str
    host: str
    port: int


def load_settings() -> Settings:
    return Settings(
        db_path=_str_env("GOTANDA_DB_PATH", "./.data/gotanda-users.db"),
        allowlist=parse_allowlist(
            # set-but-empty means an empty list, not the default
            os.getenv("GITHUB_ID_ALLOWLIST", ALLOW_ALL),
            os.getenv("GITHUB_USERNAME_ALLOWLIST", ALLOW_ALL),
        ),
        admin_api_key=_optional_env("GOTANDA_ADMIN_API_KEY"),
        log_level=_str_env("GOTANDA_LOG_LEVEL", "INFO").upper(),
        host=_str_env("GOTANDA_HOST", "127.0.0.1"),
        port=_int_env("GOTANDA_PORT", 3000),
    )
