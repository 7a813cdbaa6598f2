from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Set

from accessgate.observability.internal_metrics import incr
from accessgate.sod.identifiers import normalize_grants
from accessgate.sod.types import PopulationReport, SoDRule, SoDRuleType, Violation


logger = logging.getLogger(__name__)


def _violation_for(
    rule: SoDRule,
    grants: Set[str],
    subject_id: str,
    alias_map: Optional[Mapping[str, str]],
) -> Optional[Violation]:
    if subject_id.strip() in {str(item).strip() for item in rule.exceptions}:
        return None
    left = grants & normalize_grants(rule.left_set, alias_map=alias_map)
    right = grants & normalize_grants(rule.right_set, alias_map=alias_map)
    if not left or not right:
        return None
    # conditional rules are evaluated with the same two-sided intersection
    label = rule.name or rule.id
    return Violation(
        subject_id=subject_id,
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=rule.type,
        severity=rule.severity,
        enforcement=rule.enforcement,
        left_matches=tuple(sorted(left)),
        right_matches=tuple(sorted(right)),
        message=(
            f"{label}: subject {subject_id} holds {', '.join(sorted(left))} "
            f"and conflicting {', '.join(sorted(right))}"
        ),
    )


def check(
    subject_grants: Iterable[Any],
    rules: Sequence[SoDRule],
    subject_id: str,
    *,
    alias_map: Optional[Mapping[str, str]] = None,
) -> List[Violation]:
    """One violation per rule whose left and right sets are both held."""
    grants = normalize_grants(subject_grants, alias_map=alias_map)
    violations: List[Violation] = []
    for rule in rules:
        violation = _violation_for(rule, grants, subject_id, alias_map)
        if violation is not None:
            violations.append(violation)
    if violations:
        incr("sod_violations", len(violations))
        logger.info("Subject %s has %s SoD violation(s)", subject_id, len(violations))
    return violations


def check_population(
    grants_by_subject: Mapping[str, Iterable[Any]],
    rules: Sequence[SoDRule],
    *,
    alias_map: Optional[Mapping[str, str]] = None,
) -> PopulationReport:
    violations: List[Violation] = []
    for subject_id in sorted(grants_by_subject):
        violations.extend(check(grants_by_subject[subject_id], rules, subject_id, alias_map=alias_map))
    return PopulationReport(violations=violations, subjects_checked=len(grants_by_subject))


def precheck(
    subject_grants: Iterable[Any],
    requested: Iterable[Any],
    rules: Sequence[SoDRule],
    subject_id: str,
    *,
    alias_map: Optional[Mapping[str, str]] = None,
) -> List[Violation]:
    """
    Violations that granting `requested` would newly create. Conflicts the
    subject already has are not reported.
    """
    current = normalize_grants(subject_grants, alias_map=alias_map)
    proposed = current | normalize_grants(requested, alias_map=alias_map)
    existing = {
        rule.id for rule in rules if _violation_for(rule, current, subject_id, alias_map) is not None
    }
    created: List[Violation] = []
    for rule in rules:
        if rule.id in existing:
            continue
        violation = _violation_for(rule, proposed, subject_id, alias_map)
        if violation is not None:
            created.append(violation)
    return created


def blocking(violations: Iterable[Violation]) -> List[Violation]:
    return [item for item in violations if item.blocking]


def conditional_rules(rules: Iterable[SoDRule]) -> List[SoDRule]:
    return [rule for rule in rules if rule.type == SoDRuleType.CONDITIONAL]
