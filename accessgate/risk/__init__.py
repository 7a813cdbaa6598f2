from accessgate.risk.scoring import assess, classify, default_weights, normalize_weights, score, sod_factor
from accessgate.risk.types import FactorContribution, RiskAssessment, RiskBand, RiskWeight

__all__ = [
    "FactorContribution",
    "RiskAssessment",
    "RiskBand",
    "RiskWeight",
    "assess",
    "classify",
    "default_weights",
    "normalize_weights",
    "score",
    "sod_factor",
]
