from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from accessgate import config
from accessgate.actions.base import ActionHandler
from accessgate.actions.executor import ActionExecutor
from accessgate.actions.types import ApprovalTokens, ExecutionMode, OutcomeStatus
from accessgate.conditions.evaluator import ConditionEvaluator
from accessgate.errors import ConfigurationError
from accessgate.observability.internal_metrics import incr
from accessgate.risk.scoring import assess, sod_factor
from accessgate.rules.loader import RuleSet
from accessgate.rules.resolver import RuleError, RuleResolver
from accessgate.rules.types import LifecycleEvent
from accessgate.simulation.types import BatchReport, SimulationResult, StressReport
from accessgate.sod.detector import check
from accessgate.sod.types import Violation
from accessgate.subjects.types import Subject


logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile over an ascending sequence."""
    if not sorted_values:
        return 0.0
    rank = max(1, int(math.ceil(pct / 100.0 * len(sorted_values))))
    return float(sorted_values[min(rank, len(sorted_values)) - 1])


def compliance_issues(
    violations: Sequence[Violation],
    outcomes: Sequence,
    errors: Sequence[RuleError],
) -> List[str]:
    issues: List[str] = []
    for violation in violations:
        issues.append(
            f"SoD violation ({violation.severity.value}, {violation.enforcement.value}): {violation.message}"
        )
    for outcome in outcomes:
        if outcome.status == OutcomeStatus.PENDING:
            issues.append(f"Action {outcome.action_id} is awaiting approval")
        elif outcome.status == OutcomeStatus.FAILED:
            issues.append(f"Action {outcome.action_id} would fail: {outcome.error}")
    for error in errors:
        issues.append(f"Rule {error.rule_id} has a configuration error ({error.code}): {error.message}")
    return issues


class SimulationHarness:
    """
    What-if evaluation of a subject against a rule set, including draft and
    test rules. Actions are always rehearsed in dry-run mode; nothing is
    dispatched and no ledger is written.
    """

    def __init__(
        self,
        handlers: Optional[Iterable[ActionHandler]] = None,
        *,
        max_workers: Optional[int] = None,
        today: Callable[[], date] = _utc_today,
    ):
        self.handlers = list(handlers or ())
        self.max_workers = max(1, int(max_workers or config.SIMULATION_WORKERS))
        self._today = today

    def simulate(
        self,
        subject: Subject,
        rule_set: RuleSet,
        *,
        event: Optional[LifecycleEvent] = None,
        approvals: Optional[ApprovalTokens] = None,
        as_of: Optional[date] = None,
        rule_set_hash: Optional[str] = None,
    ) -> SimulationResult:
        effective_as_of = as_of or self._today()
        resolver = RuleResolver(ConditionEvaluator(rule_set.catalog(), today=self._today))
        resolution = resolver.resolve_all(
            rule_set.rules,
            subject.attributes,
            event=event,
            include_unpublished=True,
            as_of=effective_as_of,
        )
        errors = list(resolution.errors)
        fired = resolution.rule

        outcomes = []
        total_ms = 0
        status = "success"
        effective_at = None
        if fired is not None:
            effective_at = effective_as_of + timedelta(days=fired.effective_delay_days)
            executor = ActionExecutor(self.handlers, max_workers=1)
            try:
                report = executor.execute_rule(
                    fired,
                    subject_id=subject.id,
                    mode=ExecutionMode.DRY_RUN,
                    approvals=approvals,
                )
            except ConfigurationError as exc:
                errors.append(RuleError(rule_id=fired.id, code=exc.code, message=str(exc), details=exc.details))
                status = "failed"
            else:
                outcomes = report.outcomes
                total_ms = report.total_duration_ms
                status = report.overall_status

        violations = check(subject.grants, rule_set.sod_rules, subject.id, alias_map=rule_set.alias_map())

        factors = dict(subject.risk_factors)
        factors.setdefault(config.SOD_FACTOR_LABEL, sod_factor(len(violations)))
        assessment = assess(factors, rule_set.weights)

        incr("simulations_run")
        return SimulationResult(
            subject_id=subject.id,
            matched_rules=resolution.matched_rule_ids,
            fired_rule=fired.id if fired is not None else None,
            action_outcomes=outcomes,
            total_duration_ms=total_ms,
            overall_status=status,
            risk_score=assessment.score,
            risk_band=assessment.band,
            recommendations=assessment.recommendations,
            violations=violations,
            compliance_issues=compliance_issues(violations, outcomes, errors),
            configuration_errors=errors,
            rule_set_hash=rule_set_hash or rule_set.compute_hash(),
            effective_at=effective_at,
        )

    def simulate_batch(
        self,
        subjects: Sequence[Subject],
        rule_set: RuleSet,
        *,
        event: Optional[LifecycleEvent] = None,
        approvals: Optional[ApprovalTokens] = None,
        as_of: Optional[date] = None,
    ) -> BatchReport:
        seen = set()
        for subject in subjects:
            if subject.id in seen:
                raise ConfigurationError(
                    f"duplicate subject id `{subject.id}` in batch",
                    code="DUPLICATE_SUBJECT_ID",
                    details={"subject_id": subject.id},
                )
            seen.add(subject.id)

        rule_set_hash = rule_set.compute_hash()
        effective_as_of = as_of or self._today()
        started = time.perf_counter()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="accessgate-sim") as pool:
            futures = [
                pool.submit(
                    self.simulate,
                    subject,
                    rule_set,
                    event=event,
                    approvals=approvals,
                    as_of=effective_as_of,
                    rule_set_hash=rule_set_hash,
                )
                for subject in subjects
            ]
            results: Dict[str, SimulationResult] = {}
            for subject, future in zip(subjects, futures):
                results[subject.id] = future.result()
        wall_ms = (time.perf_counter() - started) * 1000.0

        report = BatchReport(results=results, rule_set_hash=rule_set_hash, wall_time_ms=wall_ms)
        logger.info(
            "Simulated %s subject(s) in %.1f ms: %s",
            report.subject_count,
            wall_ms,
            report.status_counts(),
        )
        return report

    def stress_test(
        self,
        subject: Subject,
        rule_set: RuleSet,
        iterations: int,
        *,
        event: Optional[LifecycleEvent] = None,
        as_of: Optional[date] = None,
    ) -> StressReport:
        if iterations < 1:
            raise ValueError("iterations must be at least 1")

        rule_set_hash = rule_set.compute_hash()
        effective_as_of = as_of or self._today()

        def timed_run() -> tuple:
            began = time.perf_counter()
            result = self.simulate(
                subject,
                rule_set,
                event=event,
                as_of=effective_as_of,
                rule_set_hash=rule_set_hash,
            )
            return (time.perf_counter() - began) * 1000.0, result.result_hash()

        started = time.perf_counter()
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="accessgate-stress") as pool:
            runs = list(pool.map(lambda _: timed_run(), range(iterations)))
        wall_ms = (time.perf_counter() - started) * 1000.0

        latencies = sorted(latency for latency, _ in runs)
        hashes = {digest for _, digest in runs}
        report = StressReport(
            subject_id=subject.id,
            iterations=iterations,
            wall_time_ms=wall_ms,
            throughput_per_second=(iterations / (wall_ms / 1000.0)) if wall_ms > 0 else float(iterations),
            latency_ms={
                "p50": _percentile(latencies, 50),
                "p95": _percentile(latencies, 95),
                "p99": _percentile(latencies, 99),
                "max": latencies[-1],
                "mean": sum(latencies) / len(latencies),
            },
            deterministic=len(hashes) == 1,
            result_hash=runs[0][1],
            distinct_hashes=len(hashes),
        )
        if not report.deterministic:
            logger.warning("Subject %s produced %s distinct results over %s runs", subject.id, len(hashes), iterations)
        logger.info(
            "Stress test for %s: %s iterations, %.1f/s, p95 %.2f ms",
            subject.id,
            iterations,
            report.throughput_per_second,
            report.latency_ms["p95"],
        )
        return report
