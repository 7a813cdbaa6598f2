import yaml

from accessgate.rules import lint_rule_file, lint_rule_set, parse_rule_set


def _codes(report):
    return [issue["code"] for issue in report["issues"]]


def test_sample_rule_set_is_clean(sample_rules_path):
    report = lint_rule_file(sample_rules_path)
    assert report["ok"] is True
    assert report["issues"] == []
    assert report["rule_count"] == 4


def test_duplicate_priority_within_bucket():
    rule_set = parse_rule_set(
        {
            "rules": [
                {"id": "a", "priority": 1, "event": "joiner", "conditions": {"conditions": [{"field": "department", "operator": "equals", "value": "x"}]}},
                {"id": "b", "priority": 1, "event": "joiner", "conditions": {"conditions": [{"field": "department", "operator": "equals", "value": "y"}]}},
                {"id": "c", "priority": 1, "event": "leaver"},
            ]
        }
    )
    report = lint_rule_set(rule_set)
    assert _codes(report) == ["DUPLICATE_PRIORITY"]
    assert report["issues"][0]["rule_id"] == "b"
    assert report["ok"] is False


def test_catch_all_shadows_later_rules():
    rule_set = parse_rule_set(
        {
            "rules": [
                {"id": "catch-all", "priority": 1},
                {"id": "specific", "priority": 2, "conditions": {"conditions": [{"field": "title", "operator": "contains", "value": "lead"}]}},
            ]
        }
    )
    report = lint_rule_set(rule_set)
    assert _codes(report) == ["RULE_UNREACHABLE_SHADOWED"]
    assert report["warning_count"] == 1
    assert report["ok"] is True


def test_condition_errors_are_reported_per_rule():
    rule_set = parse_rule_set(
        {
            "rules": [
                {
                    "id": "bad",
                    "priority": 1,
                    "conditions": {
                        "conditions": [
                            {"field": "shoe_size", "operator": "equals", "value": 9},
                            {"field": "start_date", "operator": "matches", "value": "2026"},
                        ]
                    },
                }
            ]
        }
    )
    report = lint_rule_set(rule_set)
    assert _codes(report) == ["UNKNOWN_FIELD", "OPERATOR_NOT_ALLOWED"]
    assert all(issue["rule_id"] == "bad" for issue in report["issues"])


def test_action_graph_problems():
    rule_set = parse_rule_set(
        {
            "rules": [
                {
                    "id": "r1",
                    "priority": 1,
                    "actions": [
                        {"id": "a", "type": "grantRole", "dependencies": ["b"]},
                        {"id": "b", "type": "grantRole", "dependencies": ["a"]},
                        {"id": "c", "type": "notify", "dependencies": ["ghost"]},
                        {"id": "c", "type": "notify"},
                    ],
                }
            ]
        }
    )
    codes = _codes(lint_rule_set(rule_set))
    assert "DUPLICATE_ACTION_ID" in codes
    assert "UNKNOWN_DEPENDENCY" in codes
    assert "CYCLIC_DEPENDENCY" in codes


def test_weight_totals():
    off = lint_rule_set(parse_rule_set({"weights": [{"label": "a", "value": 30}, {"label": "b", "value": 30}]}))
    assert _codes(off) == ["WEIGHTS_NOT_100"]
    assert off["issues"][0]["metadata"]["total"] == 60

    zero = lint_rule_set(parse_rule_set({"weights": [{"label": "a", "value": 0}]}))
    assert _codes(zero) == ["WEIGHTS_ALL_ZERO"]


def test_sod_rule_checks():
    rule_set = parse_rule_set(
        {
            "sod_rules": [
                {"id": "overlap", "left_set": ["a", "b"], "right_set": ["B", "c"]},
                {"id": "empty", "left_set": ["a"], "right_set": []},
                {"id": "cond", "type": "conditional", "left_set": ["x"], "right_set": ["y"]},
            ]
        }
    )
    report = lint_rule_set(rule_set)
    assert _codes(report) == ["SOD_OVERLAPPING_SETS", "SOD_EMPTY_SET", "SOD_CONDITIONAL_SYMMETRIC"]
    severities = [issue["severity"] for issue in report["issues"]]
    assert severities == ["WARNING", "ERROR", "INFO"]


def test_unloadable_file_is_a_single_schema_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text(yaml.safe_dump({"rules": [{"id": "r", "priority": -1}]}), encoding="utf-8")
    report = lint_rule_file(path)
    assert report["ok"] is False
    assert _codes(report) == ["SCHEMA_VALIDATION_FAILED"]
    assert report["issues"][0]["source_file"] == str(path)


def test_conditional_sod_rules_are_listed_after_structural_checks():
    rule_set = parse_rule_set(
        {
            "sod_rules": [
                {"id": "cond-a", "type": "conditional", "left_set": ["x"], "right_set": ["y"]},
                {"id": "plain", "left_set": ["a"], "right_set": ["a"]},
                {"id": "cond-b", "type": "conditional", "left_set": ["p"], "right_set": ["q"]},
            ]
        }
    )
    issues = lint_rule_set(rule_set)["issues"]
    assert [(issue["code"], issue["rule_id"]) for issue in issues] == [
        ("SOD_OVERLAPPING_SETS", "plain"),
        ("SOD_CONDITIONAL_SYMMETRIC", "cond-a"),
        ("SOD_CONDITIONAL_SYMMETRIC", "cond-b"),
    ]
