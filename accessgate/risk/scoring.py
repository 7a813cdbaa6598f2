"""
Weighted risk aggregation.

score = round_half_up(sum(normalized_weight * clamp(factor, 0, 1)))

Weights are rescaled to sum to 100 when they do not, so a vector authored as
{3, 2} behaves like {60, 40}. An all-zero vector always scores 0.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from accessgate import config
from accessgate.risk.types import FactorContribution, RiskAssessment, RiskBand, RiskWeight


def default_weights() -> List[RiskWeight]:
    return [RiskWeight(**item) for item in config.DEFAULT_RISK_WEIGHTS]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _factor(factors: Mapping[str, Any], label: str) -> float:
    raw = factors.get(label)
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return _clamp(value, 0.0, 1.0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_weights(weights: Sequence[RiskWeight]) -> List[float]:
    total = sum(weight.value for weight in weights)
    if total <= 0:
        return [0.0 for _ in weights]
    return [weight.value * 100.0 / total for weight in weights]


def classify(score: int) -> RiskBand:
    if score >= config.RISK_BAND_CRITICAL:
        return RiskBand.CRITICAL
    if score >= config.RISK_BAND_HIGH:
        return RiskBand.HIGH
    if score >= config.RISK_BAND_MEDIUM:
        return RiskBand.MEDIUM
    return RiskBand.LOW


def sod_factor(violation_count: int) -> float:
    """Derived SoD factor: saturates at 1.0 once the configured violation count is reached."""
    saturation = max(1, config.SOD_FACTOR_SATURATION)
    return min(1.0, violation_count / float(saturation))


def recommendations_for(band: RiskBand, factors: Mapping[str, Any]) -> List[str]:
    recommendations: List[str] = []
    if band in {RiskBand.HIGH, RiskBand.CRITICAL}:
        recommendations.append("Require an additional approval before granting further access")
    if _factor(factors, config.SOD_FACTOR_LABEL) > 0:
        recommendations.append("Remediate segregation of duties conflicts")
    if band != RiskBand.LOW:
        recommendations.append("Roll out access changes in phases")
    return recommendations


def assess(factors: Mapping[str, Any], weights: Optional[Iterable[RiskWeight]] = None) -> RiskAssessment:
    weight_list = list(weights) if weights is not None else default_weights()
    normalized = normalize_weights(weight_list)
    total = sum(weight.value for weight in weight_list)

    contributions: List[FactorContribution] = []
    raw_score = 0.0
    for weight, share in zip(weight_list, normalized):
        factor = _factor(factors, weight.label)
        contribution = share * factor
        raw_score += contribution
        contributions.append(
            FactorContribution(
                label=weight.label,
                weight=weight.value,
                normalized_weight=share,
                factor=factor,
                contribution=contribution,
            )
        )

    # float drift from the rescale must not cross a rounding boundary
    score = int(_clamp(_round_half_up(round(raw_score, 9)), 0, 100))
    band = classify(score)
    return RiskAssessment(
        score=score,
        band=band,
        contributions=contributions,
        weight_total=total,
        normalized=total > 0 and not math.isclose(total, 100.0),
        recommendations=recommendations_for(band, factors),
    )


def score(factors: Mapping[str, Any], weights: Optional[Iterable[RiskWeight]] = None) -> int:
    return assess(factors, weights).score
