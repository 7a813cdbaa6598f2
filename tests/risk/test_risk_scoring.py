import pytest

from accessgate.risk import RiskBand, RiskWeight, assess, classify, default_weights, normalize_weights, score, sod_factor


LABELS = ["SoD Violations", "Privileged Access", "Unused Access (>90d)", "Peer Outlier", "Login Anomalies"]


def _weights(*values, labels=None):
    labels = labels or [f"f{index}" for index in range(len(values))]
    return [RiskWeight(label=label, value=value) for label, value in zip(labels, values)]


def test_default_vector_single_sod_factor_scores_medium():
    weights = _weights(30, 25, 20, 15, 10, labels=LABELS)
    factors = dict(zip(LABELS, [1, 0, 0, 0, 0]))
    result = assess(factors, weights)
    assert result.score == 30
    assert result.band == RiskBand.MEDIUM
    assert result.normalized is False
    assert result.contribution_map()["SoD Violations"] == pytest.approx(30.0)


def test_default_weights_match_config():
    assert [weight.label for weight in default_weights()] == LABELS
    assert score({"SoD Violations": 1}) == 30


def test_all_zero_weights_score_zero():
    result = assess({"f0": 1, "f1": 1}, _weights(0, 0))
    assert result.score == 0
    assert result.band == RiskBand.LOW


def test_weights_are_rescaled_to_one_hundred():
    weights = _weights(3, 2)
    assert normalize_weights(weights) == pytest.approx([60.0, 40.0])
    result = assess({"f0": 1}, weights)
    assert result.score == 60
    assert result.normalized is True
    assert result.weight_total == 5


def test_factors_are_clamped_and_missing_factors_contribute_nothing():
    weights = _weights(50, 50)
    assert score({"f0": 1.7}, weights) == 50
    assert score({"f0": -3, "f1": 0.5}, weights) == 25
    assert score({"f0": "not a number"}, weights) == 0
    assert score({}, weights) == 0


def test_rounding_is_half_up():
    weights = _weights(100)
    assert score({"f0": 0.125}, weights) == 13
    assert score({"f0": 0.375}, weights) == 38
    assert score({"f0": 0.124}, weights) == 12


@pytest.mark.parametrize("index", range(5))
def test_score_is_monotonic_in_each_factor(index):
    weights = _weights(30, 25, 20, 15, 10)
    base = {f"f{i}": 0.3 for i in range(5)}
    previous = -1
    for step in range(11):
        factors = dict(base)
        factors[f"f{index}"] = step / 10
        current = score(factors, weights)
        assert current >= previous
        previous = current


@pytest.mark.parametrize(
    "value,band",
    [(0, RiskBand.LOW), (24, RiskBand.LOW), (25, RiskBand.MEDIUM), (49, RiskBand.MEDIUM),
     (50, RiskBand.HIGH), (74, RiskBand.HIGH), (75, RiskBand.CRITICAL), (100, RiskBand.CRITICAL)],
)
def test_band_boundaries(value, band):
    assert classify(value) == band


def test_recommendations_follow_band_and_sod_factor():
    weights = _weights(60, 40, labels=["SoD Violations", "Privileged Access"])
    high = assess({"SoD Violations": 1}, weights)
    assert high.band == RiskBand.HIGH
    assert high.recommendations == [
        "Require an additional approval before granting further access",
        "Remediate segregation of duties conflicts",
        "Roll out access changes in phases",
    ]
    assert assess({}, weights).recommendations == []
    medium = assess({"Privileged Access": 1}, weights)
    assert medium.recommendations == ["Roll out access changes in phases"]


def test_derived_sod_factor_saturates():
    assert sod_factor(0) == 0.0
    assert sod_factor(3) == 1.0
    assert sod_factor(10) == 1.0
    assert 0 < sod_factor(1) < 1


def test_weight_value_bounds_are_validated():
    with pytest.raises(ValueError):
        RiskWeight(label="x", value=120)
