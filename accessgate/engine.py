from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from accessgate import config
from accessgate.actions.base import ActionHandler
from accessgate.actions.executor import ActionExecutor
from accessgate.actions.ledger import CompletionLedger
from accessgate.actions.types import ApprovalTokens, ExecutionMode, ExecutionReport
from accessgate.conditions.evaluator import ConditionEvaluator
from accessgate.risk.scoring import assess, sod_factor
from accessgate.risk.types import RiskAssessment
from accessgate.rules.loader import RuleSet
from accessgate.rules.resolver import RuleError, RuleResolver
from accessgate.rules.types import LifecycleEvent
from accessgate.sinks import Sink, SinkEvent, publish_all
from accessgate.sod.detector import check
from accessgate.sod.types import Violation
from accessgate.subjects.types import Subject


logger = logging.getLogger(__name__)


class EvaluationResult(BaseModel):
    subject_id: str
    fired_rule: Optional[str] = None
    execution: Optional[ExecutionReport] = None
    violations: List[Violation] = Field(default_factory=list)
    risk: RiskAssessment
    configuration_errors: List[RuleError] = Field(default_factory=list)
    rule_set_hash: str = ""

    @property
    def blocking_violations(self) -> List[Violation]:
        return [item for item in self.violations if item.blocking]


class LifecycleEngine:
    """
    Live evaluation of one subject: first matching published rule, its
    actions through the executor, then SoD and risk over the same snapshot.
    """

    def __init__(
        self,
        rule_set: RuleSet,
        *,
        handlers: Optional[Iterable[ActionHandler]] = None,
        ledger: Optional[CompletionLedger] = None,
        sinks: Optional[Iterable[Sink]] = None,
        clock=None,
        max_workers: Optional[int] = None,
    ):
        self.rule_set = rule_set
        self.rule_set_hash = rule_set.compute_hash()
        self.resolver = RuleResolver(ConditionEvaluator(rule_set.catalog()))
        self.executor = ActionExecutor(handlers, ledger=ledger, clock=clock, max_workers=max_workers)
        self.sinks: List[Sink] = list(sinks or ())

    def evaluate(
        self,
        subject: Subject,
        *,
        event: Optional[LifecycleEvent] = None,
        approvals: Optional[ApprovalTokens] = None,
        cancel: Optional[threading.Event] = None,
        as_of: Optional[date] = None,
    ) -> EvaluationResult:
        resolution = self.resolver.resolve(self.rule_set.rules, subject.attributes, event=event, as_of=as_of)
        fired = resolution.rule

        execution = None
        if fired is not None:
            logger.info("Rule %s fired for subject %s", fired.id, subject.id)
            execution = self.executor.execute_rule(
                fired,
                subject_id=subject.id,
                mode=ExecutionMode.LIVE,
                approvals=approvals,
                cancel=cancel,
            )
            for outcome in execution.outcomes:
                publish_all(
                    self.sinks,
                    SinkEvent(
                        kind="action_outcome",
                        subject_id=subject.id,
                        rule_id=fired.id,
                        payload=outcome.model_dump(mode="json"),
                    ),
                )

        violations = check(subject.grants, self.rule_set.sod_rules, subject.id, alias_map=self.rule_set.alias_map())
        for violation in violations:
            publish_all(
                self.sinks,
                SinkEvent(
                    kind="sod_violation",
                    subject_id=subject.id,
                    rule_id=violation.rule_id,
                    payload=violation.model_dump(mode="json"),
                ),
            )

        factors = dict(subject.risk_factors)
        factors.setdefault(config.SOD_FACTOR_LABEL, sod_factor(len(violations)))
        risk = assess(factors, self.rule_set.weights)

        result = EvaluationResult(
            subject_id=subject.id,
            fired_rule=fired.id if fired is not None else None,
            execution=execution,
            violations=violations,
            risk=risk,
            configuration_errors=resolution.errors,
            rule_set_hash=self.rule_set_hash,
        )
        publish_all(
            self.sinks,
            SinkEvent(
                kind="evaluation",
                subject_id=subject.id,
                rule_id=result.fired_rule or "",
                payload={
                    "overall_status": execution.overall_status if execution else None,
                    "risk_score": risk.score,
                    "risk_band": risk.band.value,
                    "violation_count": len(violations),
                    "rule_set_hash": self.rule_set_hash,
                },
            ),
        )
        return result
