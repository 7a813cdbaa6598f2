from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from accessgate.actions.types import Action
from accessgate.conditions.types import ConditionGroup


class RuleStatus(str, Enum):
    DRAFT = "draft"
    TEST = "test"
    PUBLISHED = "published"


class LifecycleEvent(str, Enum):
    JOINER = "joiner"
    MOVER = "mover"
    LEAVER = "leaver"
    DEFAULT = "default"


class Rule(BaseModel):
    """
    A lifecycle automation rule. Lower priority numbers are evaluated first;
    priorities are unique within an event bucket.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    event: LifecycleEvent = LifecycleEvent.DEFAULT
    priority: int = Field(..., gt=0)
    status: RuleStatus = RuleStatus.DRAFT
    conditions: ConditionGroup = Field(default_factory=ConditionGroup)
    actions: Tuple[Action, ...] = Field(default_factory=tuple)
    requires_approval: bool = False
    effective_delay_days: int = Field(
        0,
        ge=0,
        validation_alias=AliasChoices("effective_delay_days", "effectiveDelayDays", "effectiveDelay"),
    )
    dry_run: bool = False
    description: Optional[str] = None
