import pytest

from accessgate.actions import ActionRun, ActionState, OutcomeStatus
from accessgate.actions.state import IllegalTransitionError, TRANSITIONS


def test_retry_cycle_then_success():
    run = ActionRun("grant")
    run.begin_attempt()
    run.transition(ActionState.RETRYING, error="busy")
    run.begin_attempt()
    run.transition(ActionState.SUCCEEDED)
    assert run.attempts == 2
    assert run.status == OutcomeStatus.SUCCESS
    assert run.is_terminal
    assert run.history == ["pending", "running", "retrying", "running", "succeeded"]


def test_awaiting_approval_maps_to_pending():
    run = ActionRun("grant")
    run.transition(ActionState.AWAITING_APPROVAL)
    assert run.status == OutcomeStatus.PENDING
    assert run.is_terminal


@pytest.mark.parametrize(
    "path",
    [
        [ActionState.SUCCEEDED],
        [ActionState.RETRYING],
        [ActionState.SKIPPED, ActionState.RUNNING],
        [ActionState.RUNNING, ActionState.SKIPPED],
    ],
)
def test_illegal_transitions_raise(path):
    run = ActionRun("a")
    with pytest.raises(IllegalTransitionError):
        for state in path:
            run.transition(state)


def test_status_of_running_action_is_undefined():
    run = ActionRun("a")
    run.begin_attempt()
    with pytest.raises(IllegalTransitionError):
        run.status


def test_every_state_has_a_transition_entry():
    assert set(TRANSITIONS) == set(ActionState)
