"""
Condition Store — request-scoped scoping predicates
=====================================================
Holds the where/set predicates of the last decision for callers that do
not thread the request object through. Backed by a ContextVar so every
asyncio task (and therefore every HTTP request) sees its own copy.

Values are replaced, never mutated, so a child task that inherited the
context cannot leak predicates back into its parent.
"""

import contextvars
from typing import Any, Dict, Optional

_CONDITIONS: contextvars.ContextVar[Optional[Dict[str, Dict[str, Any]]]] = contextvars.ContextVar(
    "tenantguard_conditions", default=None
)


def reset_conditions() -> None:
    _CONDITIONS.set({})


def store_conditions(where: Optional[Dict[str, Any]] = None, set: Optional[Dict[str, Any]] = None) -> None:
    """Record non-empty where/set maps for the current request."""
    current = dict(_CONDITIONS.get() or {})
    if where:
        current["where"] = dict(where)
    if set:
        current["set"] = dict(set)
    _CONDITIONS.set(current)


def get_conditions() -> Dict[str, Dict[str, Any]]:
    """Copy of the predicates stored for the current request."""
    return {key: dict(value) for key, value in (_CONDITIONS.get() or {}).items()}


def get_condition(key: str) -> Optional[Dict[str, Any]]:
    value = (_CONDITIONS.get() or {}).get(key)
    return dict(value) if value is not None else None
