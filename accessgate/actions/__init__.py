from accessgate.actions.base import ActionContext, ActionHandler
from accessgate.actions.executor import ActionExecutor
from accessgate.actions.ledger import CompletionLedger, InMemoryCompletionLedger, SqliteCompletionLedger
from accessgate.actions.state import ActionRun, ActionState
from accessgate.actions.types import (
    Action,
    ActionOutcome,
    ActionPriority,
    ActionType,
    ApprovalTokens,
    ExecutionMode,
    ExecutionReport,
    OutcomeStatus,
    RetryPolicy,
)

__all__ = [
    "Action",
    "ActionContext",
    "ActionExecutor",
    "ActionHandler",
    "ActionOutcome",
    "ActionPriority",
    "ActionRun",
    "ActionState",
    "ActionType",
    "ApprovalTokens",
    "CompletionLedger",
    "ExecutionMode",
    "ExecutionReport",
    "InMemoryCompletionLedger",
    "OutcomeStatus",
    "RetryPolicy",
    "SqliteCompletionLedger",
]
