from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ActionType(str, Enum):
    GRANT_ROLE = "grantRole"
    GRANT_ENTITLEMENT = "grantEntitlement"
    CREATE_ACCOUNT = "createAccount"
    ADD_TO_GROUP = "addToGroup"
    NOTIFY = "notify"
    REMOVE_ROLE = "removeRole"
    REMOVE_ENTITLEMENT = "removeEntitlement"
    DISABLE_ACCOUNT = "disableAccount"
    REVOKE_ACCESS = "revokeAccess"
    SCHEDULE_ACTION = "scheduleAction"


class ActionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExecutionMode(str, Enum):
    LIVE = "live"
    DRY_RUN = "dryRun"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    max_retries: int = Field(3, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    timeout_seconds: float = Field(300.0, gt=0)


class Action(BaseModel):
    """
    One step of a rule's action plan. `dependencies` name other action ids
    of the same rule that must succeed first.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    id: str
    type: ActionType
    target: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    dependencies: FrozenSet[str] = Field(default_factory=frozenset)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    priority: ActionPriority = ActionPriority.MEDIUM
    requires_approval: bool = False
    dry_run: bool = False
    description: Optional[str] = None


class ActionOutcome(BaseModel):
    action_id: str
    action_type: ActionType
    target: Optional[str] = None
    status: OutcomeStatus
    state: str
    attempts: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    replayed: bool = False
    dry_run: bool = False
    history: List[str] = Field(default_factory=list)


class ExecutionReport(BaseModel):
    subject_id: str = ""
    rule_id: str = ""
    mode: ExecutionMode
    outcomes: List[ActionOutcome] = Field(default_factory=list)
    total_duration_ms: int = 0
    overall_status: str = "success"  # success / partial / failed
    cancelled: bool = False

    def outcome(self, action_id: str) -> Optional[ActionOutcome]:
        for item in self.outcomes:
            if item.action_id == action_id:
                return item
        return None

    def with_status(self, status: OutcomeStatus) -> List[ActionOutcome]:
        return [item for item in self.outcomes if item.status == status]


@dataclass(frozen=True)
class ApprovalTokens:
    """
    Approval tokens supplied by the caller. `rule_token` approves a rule that
    requires approval; `action_tokens` approve individual actions.
    """
    rule_token: Optional[str] = None
    action_tokens: Mapping[str, str] = field(default_factory=dict)

    def has_action(self, action_id: str) -> bool:
        return bool(str(self.action_tokens.get(action_id) or "").strip())

    def has_rule(self) -> bool:
        return bool(str(self.rule_token or "").strip())


def overall_status(outcomes: List[ActionOutcome]) -> str:
    statuses = [item.status for item in outcomes]
    if all(status == OutcomeStatus.SUCCESS for status in statuses):
        return "success"
    if OutcomeStatus.FAILED in statuses and OutcomeStatus.SUCCESS not in statuses:
        return "failed"
    return "partial"
