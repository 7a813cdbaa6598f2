from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from accessgate.conditions.evaluator import ConditionEvaluator
from accessgate.errors import ConfigurationError
from accessgate.observability.internal_metrics import incr
from accessgate.rules.types import LifecycleEvent, Rule, RuleStatus


logger = logging.getLogger(__name__)


class RuleError(BaseModel):
    """A rule that could not be evaluated; it is treated as non-matching."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: Optional[Rule] = None
    matches: List[Rule] = Field(default_factory=list)
    errors: List[RuleError] = Field(default_factory=list)
    evaluated: int = 0

    @property
    def matched_rule_ids(self) -> List[str]:
        return [rule.id for rule in self.matches]


def order_candidates(
    rules: Sequence[Rule],
    *,
    event: Optional[LifecycleEvent] = None,
    include_unpublished: bool = False,
) -> List[Rule]:
    """
    Filter by status and event bucket, then order by priority. `sorted` is
    stable, so equal priorities keep their authored order.
    """
    wanted_event = LifecycleEvent(event) if event is not None else None
    candidates = [
        rule
        for rule in rules
        if (include_unpublished or rule.status == RuleStatus.PUBLISHED)
        and (wanted_event is None or rule.event == wanted_event)
    ]
    return sorted(candidates, key=lambda rule: rule.priority)


class RuleResolver:
    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()

    def resolve(
        self,
        rules: Sequence[Rule],
        subject_attributes: Mapping[str, Any],
        *,
        event: Optional[LifecycleEvent] = None,
        include_unpublished: bool = False,
        as_of: Optional[date] = None,
    ) -> Resolution:
        """First-match-wins: stop at the lowest-priority-number matching rule."""
        return self._run(
            rules,
            subject_attributes,
            event=event,
            include_unpublished=include_unpublished,
            as_of=as_of,
            first_only=True,
        )

    def resolve_all(
        self,
        rules: Sequence[Rule],
        subject_attributes: Mapping[str, Any],
        *,
        event: Optional[LifecycleEvent] = None,
        include_unpublished: bool = False,
        as_of: Optional[date] = None,
    ) -> Resolution:
        return self._run(
            rules,
            subject_attributes,
            event=event,
            include_unpublished=include_unpublished,
            as_of=as_of,
            first_only=False,
        )

    def _run(
        self,
        rules: Sequence[Rule],
        subject_attributes: Mapping[str, Any],
        *,
        event: Optional[LifecycleEvent],
        include_unpublished: bool,
        as_of: Optional[date],
        first_only: bool,
    ) -> Resolution:
        matches: List[Rule] = []
        errors: List[RuleError] = []
        evaluated = 0

        for rule in order_candidates(rules, event=event, include_unpublished=include_unpublished):
            evaluated += 1
            try:
                matched = self.evaluator.evaluate(rule.conditions, subject_attributes, as_of=as_of)
            except ConfigurationError as exc:
                incr("rule_config_errors")
                logger.warning("Rule %s has a configuration error (%s): %s", rule.id, exc.code, exc)
                errors.append(RuleError(rule_id=rule.id, code=exc.code, message=str(exc), details=exc.details))
                continue
            if matched:
                matches.append(rule)
                if first_only:
                    break

        incr("rules_evaluated", evaluated)
        if matches:
            incr("rules_matched", 1 if first_only else len(matches))

        return Resolution(
            rule=matches[0] if matches else None,
            matches=matches,
            errors=errors,
            evaluated=evaluated,
        )
