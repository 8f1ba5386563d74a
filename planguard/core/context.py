"""
Request context using contextvars.

Carries the correlation ids and the authenticated actor (user, tenant,
role) into every structured log line and error report.
"""

import contextvars
from typing import Any

CONTEXT_FIELDS = ("request_id", "trace_id", "user_id", "tenant_id", "role")

_context_vars: dict[str, contextvars.ContextVar[str | None]] = {
    field: contextvars.ContextVar(field, default=None) for field in CONTEXT_FIELDS
}


def set_request_context(**values: str | None) -> None:
    """
    Bind context fields for the current task.

    Empty values are ignored so that a later partial update (the actor,
    once the token is verified) keeps the correlation ids.
    """
    for field, value in values.items():
        if field not in _context_vars:
            raise KeyError(f"Unknown request context field: {field}")
        if value:
            _context_vars[field].set(value)


def get_request_context() -> dict[str, Any]:
    """Bound context fields; unset ones are left out."""
    context = {field: var.get() for field, var in _context_vars.items()}
    return {field: value for field, value in context.items() if value is not None}


def clear_request_context() -> None:
    for var in _context_vars.values():
        var.set(None)
