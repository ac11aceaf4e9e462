"""Error kinds raised by the payroll core.

Callers (HTTP handlers, the CLI) map ``PayrollError.kind`` to their own
transport codes.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for all payroll errors."""

    kind = "internal"

    def __init__(self, message: str, entity_id: Any = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for transport layers."""
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.entity_id is not None:
            data["entity_id"] = str(self.entity_id)
        return data


class InputInvalid(PayrollError):
    """Missing or ill-typed input (month/year, grouping, override value)."""

    kind = "input_invalid"


class NotFound(PayrollError):
    """Referenced run, item or employee does not exist."""

    kind = "not_found"


class Forbidden(PayrollError):
    """Caller's company does not own the target entity."""

    kind = "forbidden"


class PreconditionFailed(PayrollError):
    """Run state forbids the operation."""

    kind = "precondition_failed"


class Conflict(PayrollError):
    """Duplicate run for a period or lock contention during creation."""

    kind = "conflict"


class DependencyUnavailable(PayrollError):
    """A required table or collaborator is missing."""

    kind = "dependency_unavailable"


class InternalError(PayrollError):
    """Unexpected failure; the enclosing transaction is rolled back."""

    kind = "internal"
