"""Bounty submission state machine tests."""

import pytest

from hxp.errors import ModerateNonSubmittedSubmission, StateError
from hxp.gamification.bounty_service import VALID_TRANSITIONS, validate_transition


class TestValidTransitions:
    """Only submitted entries can be moderated."""

    @pytest.mark.parametrize("target", ["approved", "rejected", "needs_revision"])
    def test_submitted_can_be_moderated(self, target):
        validate_transition("submitted", target)

    @pytest.mark.parametrize("current", ["approved", "rejected", "needs_revision"])
    @pytest.mark.parametrize("target", ["approved", "rejected", "needs_revision", "submitted"])
    def test_terminal_states(self, current, target):
        with pytest.raises(ModerateNonSubmittedSubmission):
            validate_transition(current, target)

    def test_submitted_to_submitted_invalid(self):
        with pytest.raises(StateError):
            validate_transition("submitted", "submitted")

    def test_error_is_state_error(self):
        with pytest.raises(StateError):
            validate_transition("rejected", "approved")

    def test_every_state_listed(self):
        assert set(VALID_TRANSITIONS) == {"submitted", "approved", "rejected", "needs_revision"}
        assert all(not VALID_TRANSITIONS[s] for s in ("approved", "rejected", "needs_revision"))
