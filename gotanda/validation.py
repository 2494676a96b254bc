"""
Identifier checks for everything that arrives in a URL path.

Account ids, identity keys, token keys and app names all end up as segments of
store keys, so they are held to one safe alphabet before reaching the core.
"""

from __future__ import annotations

import re

from fastapi import HTTPException

SAFE_IDENTIFIER = re.compile(r"[A-Za-z0-9._~-]{1,200}")


def is_safe_identifier(value: str) -> bool:
    return bool(value) and SAFE_IDENTIFIER.fullmatch(value) is not None


def require_identifier(value: str, what: str) -> str:
    if not is_safe_identifier(value):
        raise HTTPException(status_code=400, detail=f"bad {what}")
    return value
