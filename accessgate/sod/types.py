from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class SoDRuleType(str, Enum):
    MUTUAL_EXCLUSION = "mutual-exclusion"
    CONDITIONAL = "conditional"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Enforcement(str, Enum):
    BLOCK = "block"
    DETECT = "detect"


class SoDRule(BaseModel):
    """
    Two sets of conflicting grants. A subject holding at least one grant from
    each side is in violation unless listed in `exceptions`.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    type: SoDRuleType = SoDRuleType.MUTUAL_EXCLUSION
    left_set: FrozenSet[str] = Field(default_factory=frozenset)
    right_set: FrozenSet[str] = Field(default_factory=frozenset)
    exceptions: FrozenSet[str] = Field(default_factory=frozenset)
    severity: Severity = Severity.HIGH
    enforcement: Enforcement = Enforcement.DETECT
    description: Optional[str] = None


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: str
    rule_id: str
    rule_name: str = ""
    rule_type: SoDRuleType
    severity: Severity
    enforcement: Enforcement
    left_matches: Tuple[str, ...] = ()
    right_matches: Tuple[str, ...] = ()
    message: str

    @computed_field
    @property
    def blocking(self) -> bool:
        return self.enforcement == Enforcement.BLOCK


class PopulationReport(BaseModel):
    violations: List[Violation] = Field(default_factory=list)
    subjects_checked: int = 0

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    @property
    def affected_subject_count(self) -> int:
        return len({item.subject_id for item in self.violations})

    def by_subject(self) -> Dict[str, List[Violation]]:
        grouped: Dict[str, List[Violation]] = {}
        for item in self.violations:
            grouped.setdefault(item.subject_id, []).append(item)
        return grouped

    def by_severity(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self.violations:
            counts[item.severity.value] = counts.get(item.severity.value, 0) + 1
        return counts
