from accessgate.sod.detector import blocking, check, check_population, conditional_rules, precheck
from accessgate.sod.identifiers import build_grant_alias_map, normalize_grants
from accessgate.sod.types import Enforcement, PopulationReport, Severity, SoDRule, SoDRuleType, Violation

__all__ = [
    "Enforcement",
    "PopulationReport",
    "Severity",
    "SoDRule",
    "SoDRuleType",
    "Violation",
    "blocking",
    "build_grant_alias_map",
    "check",
    "check_population",
    "conditional_rules",
    "normalize_grants",
    "precheck",
]
