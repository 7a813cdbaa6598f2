from accessgate.rules.lint import lint_rule_file, lint_rule_set
from accessgate.rules.loader import RuleSet, load_rule_set, load_subjects, parse_rule_set
from accessgate.rules.resolver import Resolution, RuleError, RuleResolver, order_candidates
from accessgate.rules.types import LifecycleEvent, Rule, RuleStatus

__all__ = [
    "LifecycleEvent",
    "Resolution",
    "Rule",
    "RuleError",
    "RuleResolver",
    "RuleSet",
    "RuleStatus",
    "lint_rule_file",
    "lint_rule_set",
    "load_rule_set",
    "load_subjects",
    "order_candidates",
    "parse_rule_set",
]
