"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from mypayroll.errors import PreconditionFailed

if TYPE_CHECKING:
    from mypayroll.models import PayrollRun


class RunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    APPROVED = "approved"
    FINALIZED = "finalized"


class InvalidTransitionError(PreconditionFailed):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None, entity_id=None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, entity_id)


class RunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → approved
    - draft → finalized (only when approval is not required)
    - approved → finalized
    - draft → deleted

    Nothing leaves finalized.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RunStatus.DRAFT: [RunStatus.APPROVED, RunStatus.FINALIZED],
        RunStatus.APPROVED: [RunStatus.FINALIZED],
        RunStatus.FINALIZED: [],  # Terminal state
    }

    # Statuses where items can be edited or recalculated
    ITEMS_MUTABLE = {RunStatus.DRAFT, RunStatus.APPROVED}

    # Statuses where items can be added or removed, and the run deleted
    STRUCTURE_MUTABLE = {RunStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str, require_approval: bool = False) -> bool:
        """Check if a transition is valid."""
        if (
            require_approval
            and from_status == RunStatus.DRAFT
            and to_status == RunStatus.FINALIZED
        ):
            return False
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(
        cls,
        from_status: str,
        to_status: str,
        require_approval: bool = False,
        entity_id=None,
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if cls.can_transition(from_status, to_status, require_approval):
            return
        reason = None
        if from_status == RunStatus.FINALIZED:
            reason = "run is already finalized"
        elif require_approval and to_status == RunStatus.FINALIZED:
            reason = "run must be approved before finalizing"
        raise InvalidTransitionError(from_status, to_status, reason, entity_id)

    @classmethod
    def can_edit_items(cls, status: str) -> bool:
        """Check if items can be edited or recalculated in this status."""
        return status in cls.ITEMS_MUTABLE

    @classmethod
    def can_change_structure(cls, status: str) -> bool:
        """Check if items can be added/deleted or the run deleted."""
        return status in cls.STRUCTURE_MUTABLE

    @classmethod
    def ensure_items_editable(cls, run: PayrollRun) -> None:
        if not cls.can_edit_items(run.status):
            raise PreconditionFailed(f"Cannot edit items of a {run.status} payroll run", run.run_id)

    @classmethod
    def ensure_draft(cls, run: PayrollRun, action: str) -> None:
        if not cls.can_change_structure(run.status):
            raise PreconditionFailed(
                f"Cannot {action}: payroll run is {run.status}, only draft runs allow it",
                run.run_id,
            )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
