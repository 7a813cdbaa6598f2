from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from accessgate.actions.types import ActionOutcome
from accessgate.risk.types import RiskBand
from accessgate.rules.resolver import RuleError
from accessgate.sod.types import Violation
from accessgate.utils.canonical import sha256_json


class SimulationResult(BaseModel):
    subject_id: str
    matched_rules: List[str] = Field(default_factory=list)
    fired_rule: Optional[str] = None
    action_outcomes: List[ActionOutcome] = Field(default_factory=list)
    total_duration_ms: int = 0
    overall_status: str = "success"
    risk_score: int = 0
    risk_band: RiskBand = RiskBand.LOW
    recommendations: List[str] = Field(default_factory=list)
    violations: List[Violation] = Field(default_factory=list)
    compliance_issues: List[str] = Field(default_factory=list)
    configuration_errors: List[RuleError] = Field(default_factory=list)
    rule_set_hash: str = ""
    effective_at: Optional[date] = None

    def result_hash(self) -> str:
        return sha256_json(self.model_dump(mode="json"))


class BatchReport(BaseModel):
    results: Dict[str, SimulationResult] = Field(default_factory=dict)
    rule_set_hash: str = ""
    wall_time_ms: float = 0.0

    @property
    def subject_count(self) -> int:
        return len(self.results)

    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results.values():
            counts[result.overall_status] = counts.get(result.overall_status, 0) + 1
        return counts

    def band_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results.values():
            counts[result.risk_band.value] = counts.get(result.risk_band.value, 0) + 1
        return counts

    def fired_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results.values():
            if result.fired_rule:
                counts[result.fired_rule] = counts.get(result.fired_rule, 0) + 1
        return counts

    def violation_count(self) -> int:
        return sum(len(result.violations) for result in self.results.values())

    def summary(self) -> Dict[str, object]:
        return {
            "subjects": self.subject_count,
            "rule_set_hash": self.rule_set_hash,
            "wall_time_ms": round(self.wall_time_ms, 3),
            "status_counts": self.status_counts(),
            "band_counts": self.band_counts(),
            "fired_counts": self.fired_counts(),
            "violation_count": self.violation_count(),
        }


class StressReport(BaseModel):
    subject_id: str
    iterations: int
    wall_time_ms: float
    throughput_per_second: float
    latency_ms: Dict[str, float] = Field(default_factory=dict)
    deterministic: bool
    result_hash: str
    distinct_hashes: int = 1
