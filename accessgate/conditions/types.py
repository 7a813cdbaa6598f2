from __future__ import annotations

from enum import Enum
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class Condition(BaseModel):
    """
    A single predicate over one subject attribute.
    `operator` is kept as authored and checked against the catalog at evaluation.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    field: str
    operator: str
    value: Any = None
    negate: bool = False
    case_sensitive: bool = False

    def negated(self) -> "Condition":
        return self.model_copy(update={"negate": not self.negate})


class ConditionGroup(BaseModel):
    """
    Conditions and nested groups folded left-to-right with this group's own
    logical operator. An empty group matches every subject.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    logical_operator: LogicalOperator = LogicalOperator.AND
    conditions: Tuple[Condition, ...] = Field(default_factory=tuple)
    groups: Tuple["ConditionGroup", ...] = Field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.conditions and not self.groups

    def iter_conditions(self):
        """Depth-first walk over every leaf condition."""
        for condition in self.conditions:
            yield condition
        for group in self.groups:
            yield from group.iter_conditions()


ConditionGroup.model_rebuild()
