"""Tests for payroll run state machine."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from mypayroll.errors import PreconditionFailed
from mypayroll.services.state_machine import (
    InvalidTransitionError,
    RunStateMachine,
    RunStatus,
)


class TestRunStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → approved
        assert RunStateMachine.can_transition("draft", "approved") is True

        # draft → finalized when approval is optional
        assert RunStateMachine.can_transition("draft", "finalized") is True

        # approved → finalized
        assert RunStateMachine.can_transition("approved", "finalized") is True
        assert RunStateMachine.can_transition("approved", "finalized", require_approval=True) is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Approval gate
        assert RunStateMachine.can_transition("draft", "finalized", require_approval=True) is False

        # No going back
        assert RunStateMachine.can_transition("approved", "draft") is False

        # Finalized is terminal
        assert RunStateMachine.can_transition("finalized", "draft") is False
        assert RunStateMachine.can_transition("finalized", "approved") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            RunStateMachine.validate_transition("finalized", "approved")

        assert exc_info.value.from_status == "finalized"
        assert exc_info.value.to_status == "approved"
        assert exc_info.value.kind == "precondition_failed"
        assert "already finalized" in exc_info.value.message

    def test_approval_required_reason(self):
        """The approval gate explains itself."""
        run_id = uuid4()

        with pytest.raises(InvalidTransitionError) as exc_info:
            RunStateMachine.validate_transition("draft", "finalized", require_approval=True, entity_id=run_id)

        assert "must be approved" in exc_info.value.message
        assert exc_info.value.entity_id == run_id

    def test_get_next_statuses(self):
        """Test getting valid next statuses."""
        assert set(RunStateMachine.get_next_statuses("draft")) == {"approved", "finalized"}
        assert RunStateMachine.get_next_statuses("approved") == [RunStatus.FINALIZED]
        assert RunStateMachine.get_next_statuses("finalized") == []
        assert RunStateMachine.get_next_statuses("unknown") == []

    def test_item_and_structure_mutability(self):
        """Items edit until finalized; structure only in draft."""
        assert RunStateMachine.can_edit_items("draft") is True
        assert RunStateMachine.can_edit_items("approved") is True
        assert RunStateMachine.can_edit_items("finalized") is False

        assert RunStateMachine.can_change_structure("draft") is True
        assert RunStateMachine.can_change_structure("approved") is False

    def test_ensure_helpers(self):
        """Guards raise PreconditionFailed with the run id."""
        run = SimpleNamespace(run_id=uuid4(), status="finalized")

        with pytest.raises(PreconditionFailed) as exc_info:
            RunStateMachine.ensure_items_editable(run)
        assert exc_info.value.entity_id == run.run_id

        with pytest.raises(PreconditionFailed, match="delete"):
            RunStateMachine.ensure_draft(run, "delete")

        RunStateMachine.ensure_draft(SimpleNamespace(run_id=uuid4(), status="draft"), "delete")
