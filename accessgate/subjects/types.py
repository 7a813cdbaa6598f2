from __future__ import annotations

from typing import Any, Dict, FrozenSet

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Subject(BaseModel):
    """
    Point-in-time snapshot of one identity: directory attributes, current
    grants (role/entitlement ids) and precomputed risk factor values (0..1)
    keyed by risk weight label.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    grants: FrozenSet[str] = Field(default_factory=frozenset)
    risk_factors: Dict[str, float] = Field(default_factory=dict)
