from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskWeight(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    label: str
    value: float = Field(..., ge=0, le=100)
    description: Optional[str] = None


class FactorContribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    weight: float
    normalized_weight: float
    factor: float
    contribution: float


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    band: RiskBand
    contributions: List[FactorContribution] = Field(default_factory=list)
    weight_total: float = 0.0
    normalized: bool = False
    recommendations: List[str] = Field(default_factory=list)

    def contribution_map(self) -> Dict[str, float]:
        return {item.label: item.contribution for item in self.contributions}
