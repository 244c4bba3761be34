"""Tests for the completion state machine."""

import pytest

from payout_engine.errors import InvalidTransitionError
from payout_engine.models import CompletionStatus
from payout_engine.services import CompletionStateMachine


class TestTransitions:

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("not_submitted", "submitted"),
            ("submitted", "approved"),
            ("submitted", "auto_approved"),
            ("submitted", "disputed"),
        ],
    )
    def test_valid(self, from_status, to_status):
        assert CompletionStateMachine.can_transition(from_status, to_status)
        CompletionStateMachine.validate_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("not_submitted", "approved"),
            ("not_submitted", "auto_approved"),
            ("approved", "disputed"),
            ("approved", "auto_approved"),
            ("auto_approved", "approved"),
            ("disputed", "approved"),
            ("submitted", "not_submitted"),
        ],
    )
    def test_invalid(self, from_status, to_status):
        assert not CompletionStateMachine.can_transition(from_status, to_status)
        with pytest.raises(InvalidTransitionError):
            CompletionStateMachine.validate_transition(from_status, to_status)

    def test_accepts_enum_members(self):
        assert CompletionStateMachine.can_transition(
            CompletionStatus.SUBMITTED, CompletionStatus.APPROVED
        )

    def test_error_for_terminal_status(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            CompletionStateMachine.validate_transition(
                CompletionStatus.APPROVED, CompletionStatus.AUTO_APPROVED
            )
        error = exc_info.value
        assert error.from_status == "approved"
        assert error.to_status == "auto_approved"
        assert error.reason == "completion is already approved"

    def test_error_for_unsubmitted(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            CompletionStateMachine.validate_transition("not_submitted", "approved")
        assert exc_info.value.reason == "job has not been submitted for approval"


class TestQueries:

    @pytest.mark.parametrize("status", ["approved", "auto_approved", "disputed"])
    def test_terminal(self, status):
        assert CompletionStateMachine.is_terminal(status)
        assert CompletionStateMachine.get_next_statuses(status) == []

    @pytest.mark.parametrize("status", ["not_submitted", "submitted"])
    def test_not_terminal(self, status):
        assert not CompletionStateMachine.is_terminal(status)

    def test_is_approved(self):
        assert CompletionStateMachine.is_approved("approved")
        assert CompletionStateMachine.is_approved("auto_approved")
        assert not CompletionStateMachine.is_approved("submitted")
        assert not CompletionStateMachine.is_approved("disputed")

    def test_only_submitted_can_be_approved(self):
        assert CompletionStateMachine.can_be_approved("submitted")
        for status in ("not_submitted", "approved", "auto_approved", "disputed"):
            assert not CompletionStateMachine.can_be_approved(status)

    def test_next_statuses_from_submitted(self):
        assert set(CompletionStateMachine.get_next_statuses("submitted")) == {
            "approved",
            "auto_approved",
            "disputed",
        }
