"""
gotanda package

Account directory and read-only sharing ("onlooker") index for per-account,
per-app sync databases.

Exports only the core entry points. No app wiring happens on import; see gotanda.main.
"""

__version__ = "1.0.0"

from .access import AccessDecision, AccessResult, ReadOnlyPolicy, can_read, decide_access
from .store import KVStore

__all__ = [
    "__version__",
    "AccessDecision",
    "AccessResult",
    "ReadOnlyPolicy",
    "KVStore",
    "can_read",
    "decide_access",
]
