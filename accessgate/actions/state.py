"""
Action run state machine.

States:
PENDING -> RUNNING | AWAITING_APPROVAL | SKIPPED
RUNNING -> SUCCEEDED | FAILED | RETRYING
RETRYING -> RUNNING | FAILED
SUCCEEDED, FAILED, SKIPPED, AWAITING_APPROVAL are terminal for one invocation.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Set

from accessgate.actions.types import OutcomeStatus


class ActionState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    AWAITING_APPROVAL = "awaitingApproval"


TRANSITIONS: Dict[ActionState, Set[ActionState]] = {
    ActionState.PENDING: {ActionState.RUNNING, ActionState.AWAITING_APPROVAL, ActionState.SKIPPED},
    ActionState.RUNNING: {ActionState.SUCCEEDED, ActionState.FAILED, ActionState.RETRYING},
    ActionState.RETRYING: {ActionState.RUNNING, ActionState.FAILED},
    ActionState.SUCCEEDED: set(),
    ActionState.FAILED: set(),
    ActionState.SKIPPED: set(),
    ActionState.AWAITING_APPROVAL: set(),
}

TERMINAL_STATUS: Dict[ActionState, OutcomeStatus] = {
    ActionState.SUCCEEDED: OutcomeStatus.SUCCESS,
    ActionState.FAILED: OutcomeStatus.FAILED,
    ActionState.SKIPPED: OutcomeStatus.SKIPPED,
    ActionState.AWAITING_APPROVAL: OutcomeStatus.PENDING,
}


class IllegalTransitionError(RuntimeError):
    pass


class ActionRun:
    """Tracks one action's state, attempts and last error within an execution."""

    def __init__(self, action_id: str):
        self.action_id = action_id
        self.state = ActionState.PENDING
        self.history: List[str] = [ActionState.PENDING.value]
        self.attempts = 0
        self.error: Optional[str] = None
        self.replayed = False

    def transition(self, to_state: ActionState, error: Optional[str] = None) -> None:
        if to_state not in TRANSITIONS[self.state]:
            raise IllegalTransitionError(
                f"action {self.action_id}: {self.state.value} -> {to_state.value} is not allowed"
            )
        self.state = to_state
        self.history.append(to_state.value)
        if error is not None:
            self.error = error

    def begin_attempt(self) -> None:
        self.transition(ActionState.RUNNING)
        self.attempts += 1

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    @property
    def status(self) -> OutcomeStatus:
        if self.state not in TERMINAL_STATUS:
            raise IllegalTransitionError(f"action {self.action_id} has not reached a terminal state")
        return TERMINAL_STATUS[self.state]
