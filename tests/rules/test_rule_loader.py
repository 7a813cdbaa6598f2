import pytest
import yaml

from accessgate.actions import ActionType
from accessgate.errors import ConfigurationError
from accessgate.rules import RuleStatus, load_rule_set, load_subjects, parse_rule_set
from accessgate.sod import Enforcement, Severity


def _write(tmp_path, payload, name="rules.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_loads_sample_rule_set(sample_rules_path):
    rule_set = load_rule_set(sample_rules_path)
    assert [rule.id for rule in rule_set.rules] == ["eng-joiner", "contractor-joiner", "default-joiner", "leaver"]
    eng = rule_set.rule("eng-joiner")
    assert eng.status == RuleStatus.PUBLISHED
    assert eng.actions[1].type == ActionType.GRANT_ROLE
    assert eng.actions[1].dependencies == frozenset({"create-account"})
    assert rule_set.sod_rules[0].enforcement == Enforcement.BLOCK
    assert rule_set.sod_rules[1].severity == Severity.CRITICAL
    assert "clearance" in rule_set.catalog()
    assert rule_set.alias_map()["fin_approver"] == "finance-approve"


def test_rule_set_hash_is_stable(sample_rules_path):
    assert load_rule_set(sample_rules_path).compute_hash() == load_rule_set(sample_rules_path).compute_hash()


def test_hash_changes_with_content(tmp_path):
    first = _write(tmp_path, {"rules": [{"id": "r1", "priority": 1}]}, "a.yaml")
    second = _write(tmp_path, {"rules": [{"id": "r1", "priority": 2}]}, "b.yaml")
    assert load_rule_set(first).compute_hash() != load_rule_set(second).compute_hash()


def test_missing_weights_fall_back_to_defaults(tmp_path):
    rule_set = load_rule_set(_write(tmp_path, {"rules": []}))
    assert [weight.value for weight in rule_set.weights] == [30, 25, 20, 15, 10]


def test_invalid_document_names_the_file(tmp_path):
    path = _write(tmp_path, {"rules": [{"id": "r1", "priority": 0}]})
    with pytest.raises(ConfigurationError) as exc:
        load_rule_set(path)
    assert exc.value.code == "INVALID_RULE_SET"
    assert str(path) in str(exc.value)
    assert exc.value.details["errors"][0]["loc"].startswith("rules.0.priority")


def test_unknown_action_type_is_rejected(tmp_path):
    path = _write(tmp_path, {"rules": [{"id": "r1", "priority": 1, "actions": [{"id": "a", "type": "launchRocket"}]}]})
    with pytest.raises(ConfigurationError):
        load_rule_set(path)


def test_non_mapping_document_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError) as exc:
        load_rule_set(path)
    assert exc.value.code == "INVALID_RULE_SET"


def test_missing_file_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError) as exc:
        load_rule_set(tmp_path / "absent.yaml")
    assert exc.value.code == "FILE_NOT_FOUND"


def test_parse_rule_set_accepts_plain_mapping():
    rule_set = parse_rule_set({"sod_rules": [{"id": "s1", "left_set": ["a"], "right_set": ["b"]}]})
    assert rule_set.sod_rules[0].left_set == frozenset({"a"})
    assert rule_set.rules == ()


def test_load_subjects(sample_subjects_path):
    subjects = load_subjects(sample_subjects_path)
    assert [subject.id for subject in subjects] == ["u-100", "u-200", "u-300"]
    assert subjects[1].grants == frozenset({"FIN_APPROVER", "finance-create"})
    assert subjects[0].risk_factors == {"Privileged Access": 0.2}


def test_camel_case_authoring_keys_are_accepted():
    rule_set = parse_rule_set(
        {
            "rules": [
                {
                    "id": "r1",
                    "priority": 1,
                    "requiresApproval": True,
                    "effectiveDelay": 3,
                    "dryRun": True,
                    "conditions": {
                        "logicalOperator": "OR",
                        "conditions": [
                            {"field": "department", "operator": "equals", "value": "eng", "caseSensitive": True},
                        ],
                    },
                    "actions": [
                        {
                            "id": "a",
                            "type": "grantRole",
                            "requiresApproval": True,
                            "retryPolicy": {"maxRetries": 1, "backoffMultiplier": 3, "timeoutSeconds": 10},
                        }
                    ],
                },
                {"id": "r2", "priority": 2, "effectiveDelayDays": 5},
            ],
            "sodRules": [{"id": "s1", "leftSet": ["a"], "rightSet": ["b"]}],
            "grantAliases": {"a": ["A_ALT"]},
        }
    )
    rule = rule_set.rule("r1")
    assert rule.requires_approval is True
    assert rule.effective_delay_days == 3
    assert rule.dry_run is True
    assert rule.conditions.logical_operator.value == "OR"
    assert rule.conditions.conditions[0].case_sensitive is True
    action = rule.actions[0]
    assert action.requires_approval is True
    assert action.retry_policy.max_retries == 1
    assert action.retry_policy.timeout_seconds == 10
    assert rule_set.rule("r2").effective_delay_days == 5
    assert rule_set.sod_rules[0].right_set == frozenset({"b"})
    assert rule_set.alias_map()["a_alt"] == "a"


def test_misspelled_rule_key_is_rejected():
    with pytest.raises(ConfigurationError) as exc:
        parse_rule_set({"rules": [{"id": "r1", "priority": 1, "requires_aproval": True}]})
    assert exc.value.code == "INVALID_RULE_SET"
    error = exc.value.details["errors"][0]
    assert error["loc"] == "rules.0.requires_aproval"
    assert "Extra inputs are not permitted" in error["msg"]


def test_unknown_nested_keys_are_rejected():
    with pytest.raises(ConfigurationError):
        parse_rule_set({"rules": [{"id": "r1", "priority": 1, "actions": [{"id": "a", "type": "notify", "retry_policy": {"retries": 5}}]}]})
    with pytest.raises(ConfigurationError):
        parse_rule_set({"sod_rules": [{"id": "s1", "left_set": ["a"], "right_set": ["b"], "exemptions": ["u1"]}]})
    with pytest.raises(ConfigurationError):
        parse_rule_set({"attributes": {"clearance": {"type": "enum", "choices": ["A"]}}})
    with pytest.raises(ConfigurationError):
        parse_rule_set({"version": 2})


def test_unknown_subject_key_is_rejected(tmp_path):
    path = tmp_path / "subjects.yaml"
    path.write_text(yaml.safe_dump([{"id": "u1", "grant": ["admin"]}]), encoding="utf-8")
    with pytest.raises(ConfigurationError) as exc:
        load_subjects(path)
    assert exc.value.code == "INVALID_SUBJECT"


def test_camel_case_subject_keys_are_accepted(tmp_path):
    path = tmp_path / "subjects.yaml"
    path.write_text(yaml.safe_dump({"id": "u1", "riskFactors": {"Peer Outlier": 0.5}}), encoding="utf-8")
    assert load_subjects(path)[0].risk_factors == {"Peer Outlier": 0.5}
