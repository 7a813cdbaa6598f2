from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from accessgate.actions.graph import find_cycle
from accessgate.conditions.evaluator import ConditionEvaluator
from accessgate.errors import ConfigurationError
from accessgate.rules.loader import RuleSet, load_rule_set
from accessgate.rules.resolver import order_candidates
from accessgate.rules.types import Rule
from accessgate.sod.identifiers import normalize_grants
from accessgate.sod.detector import conditional_rules


def _issue(
    severity: str,
    code: str,
    message: str,
    *,
    rule_id: Optional[str] = None,
    source_file: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    issue = {
        "severity": severity,
        "code": code,
        "message": message,
    }
    if rule_id:
        issue["rule_id"] = rule_id
    if source_file:
        issue["source_file"] = source_file
    if metadata:
        issue["metadata"] = metadata
    return issue


def _lint_priorities(rules: List[Rule]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    seen: Dict[tuple, str] = {}
    for rule in rules:
        key = (rule.event.value, rule.priority)
        if key in seen:
            issues.append(
                _issue(
                    "ERROR",
                    "DUPLICATE_PRIORITY",
                    f"Rules `{seen[key]}` and `{rule.id}` share priority {rule.priority} in the `{rule.event.value}` bucket.",
                    rule_id=rule.id,
                    metadata={"conflicts_with": seen[key], "event": rule.event.value, "priority": rule.priority},
                )
            )
        else:
            seen[key] = rule.id

    ids: Dict[str, int] = {}
    for rule in rules:
        ids[rule.id] = ids.get(rule.id, 0) + 1
    for rule_id, count in sorted(ids.items()):
        if count > 1:
            issues.append(_issue("ERROR", "DUPLICATE_RULE_ID", f"Rule ID `{rule_id}` is declared {count} times.", rule_id=rule_id))
    return issues


def _lint_shadowing(rules: List[Rule]) -> List[Dict[str, Any]]:
    """A catch-all rule hides every later rule of its bucket from first-match resolution."""
    issues: List[Dict[str, Any]] = []
    by_event: Dict[str, List[Rule]] = {}
    for rule in order_candidates(rules, include_unpublished=True):
        by_event.setdefault(rule.event.value, []).append(rule)
    for event, bucket in by_event.items():
        for index, rule in enumerate(bucket):
            if not rule.conditions.is_empty:
                continue
            for later in bucket[index + 1:]:
                issues.append(
                    _issue(
                        "WARNING",
                        "RULE_UNREACHABLE_SHADOWED",
                        f"Rule `{later.id}` is shadowed by catch-all rule `{rule.id}` in the `{event}` bucket.",
                        rule_id=later.id,
                        metadata={"shadowed_by": rule.id, "priority": later.priority},
                    )
                )
            break
    return issues


def _lint_conditions(rules: List[Rule], evaluator: ConditionEvaluator) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for rule in rules:
        for error in evaluator.collect_errors(rule.conditions):
            issues.append(
                _issue(
                    "ERROR",
                    error.code,
                    str(error),
                    rule_id=rule.id,
                    metadata=error.details or None,
                )
            )
    return issues


def _lint_actions(rules: List[Rule]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for rule in rules:
        ids: Dict[str, int] = {}
        for action in rule.actions:
            ids[action.id] = ids.get(action.id, 0) + 1
        for action_id, count in sorted(ids.items()):
            if count > 1:
                issues.append(
                    _issue(
                        "ERROR",
                        "DUPLICATE_ACTION_ID",
                        f"Action ID `{action_id}` appears {count} times in rule `{rule.id}`.",
                        rule_id=rule.id,
                        metadata={"action_id": action_id},
                    )
                )

        for action in rule.actions:
            for dep in sorted(action.dependencies):
                if dep not in ids:
                    issues.append(
                        _issue(
                            "ERROR",
                            "UNKNOWN_DEPENDENCY",
                            f"Action `{action.id}` depends on unknown action `{dep}`.",
                            rule_id=rule.id,
                            metadata={"action_id": action.id, "dependency": dep},
                        )
                    )

        cycle = find_cycle(rule.actions)
        if cycle:
            issues.append(
                _issue(
                    "ERROR",
                    "CYCLIC_DEPENDENCY",
                    f"Actions of rule `{rule.id}` form a dependency cycle: {' -> '.join(cycle)}.",
                    rule_id=rule.id,
                    metadata={"cycle": cycle},
                )
            )
    return issues


def _lint_weights(rule_set: RuleSet) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    total = sum(weight.value for weight in rule_set.weights)
    if rule_set.weights and total <= 0:
        issues.append(_issue("WARNING", "WEIGHTS_ALL_ZERO", "All risk weights are zero; every subject scores 0."))
    elif rule_set.weights and not math.isclose(total, 100.0):
        issues.append(
            _issue(
                "WARNING",
                "WEIGHTS_NOT_100",
                f"Risk weights sum to {total:g}, not 100; they are rescaled at evaluation.",
                metadata={"total": total},
            )
        )

    labels: Dict[str, int] = {}
    for weight in rule_set.weights:
        labels[weight.label] = labels.get(weight.label, 0) + 1
    for label, count in sorted(labels.items()):
        if count > 1:
            issues.append(_issue("ERROR", "DUPLICATE_WEIGHT_LABEL", f"Risk weight `{label}` is declared {count} times."))
    return issues


def _lint_sod(rule_set: RuleSet) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    alias_map = rule_set.alias_map()
    for rule in rule_set.sod_rules:
        left = normalize_grants(rule.left_set, alias_map=alias_map)
        right = normalize_grants(rule.right_set, alias_map=alias_map)
        if not left or not right:
            issues.append(
                _issue(
                    "ERROR",
                    "SOD_EMPTY_SET",
                    f"SoD rule `{rule.id}` has an empty {'left' if not left else 'right'} set and can never fire.",
                    rule_id=rule.id,
                )
            )
        overlap = sorted(left & right)
        if overlap:
            issues.append(
                _issue(
                    "WARNING",
                    "SOD_OVERLAPPING_SETS",
                    f"SoD rule `{rule.id}` lists {', '.join(overlap)} on both sides; holding it alone is a violation.",
                    rule_id=rule.id,
                    metadata={"overlap": overlap},
                )
            )
    for rule in conditional_rules(rule_set.sod_rules):
        issues.append(
            _issue(
                "INFO",
                "SOD_CONDITIONAL_SYMMETRIC",
                f"SoD rule `{rule.id}` is conditional and is evaluated with the same two-sided check as mutual-exclusion.",
                rule_id=rule.id,
            )
        )
    return issues


def lint_rule_set(rule_set: RuleSet, *, source_file: Optional[str] = None) -> Dict[str, Any]:
    rules = list(rule_set.rules)
    evaluator = ConditionEvaluator(rule_set.catalog())

    issues: List[Dict[str, Any]] = []
    issues.extend(_lint_priorities(rules))
    issues.extend(_lint_shadowing(rules))
    issues.extend(_lint_conditions(rules, evaluator))
    issues.extend(_lint_actions(rules))
    issues.extend(_lint_weights(rule_set))
    issues.extend(_lint_sod(rule_set))

    if source_file:
        for issue in issues:
            issue.setdefault("source_file", source_file)

    error_count = sum(1 for issue in issues if issue["severity"] == "ERROR")
    warning_count = sum(1 for issue in issues if issue["severity"] == "WARNING")
    return {
        "ok": error_count == 0,
        "rule_count": len(rules),
        "sod_rule_count": len(rule_set.sod_rules),
        "error_count": error_count,
        "warning_count": warning_count,
        "issues": issues,
    }


def lint_rule_file(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        rule_set = load_rule_set(path)
    except ConfigurationError as exc:
        return {
            "ok": False,
            "rule_count": 0,
            "sod_rule_count": 0,
            "error_count": 1,
            "warning_count": 0,
            "issues": [
                _issue(
                    "ERROR",
                    "SCHEMA_VALIDATION_FAILED",
                    f"Rule set validation failed: {exc}",
                    source_file=str(path),
                    metadata=exc.details or None,
                )
            ],
        }
    return lint_rule_set(rule_set, source_file=str(path))
