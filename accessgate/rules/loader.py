from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from accessgate.conditions.catalog import AttributeCatalog, AttributeDef, default_catalog
from accessgate.errors import ConfigurationError
from accessgate.risk.scoring import default_weights
from accessgate.risk.types import RiskWeight
from accessgate.rules.types import Rule
from accessgate.sod.identifiers import build_grant_alias_map
from accessgate.sod.types import SoDRule
from accessgate.subjects.types import Subject
from accessgate.utils.canonical import sha256_json


class RuleSet(BaseModel):
    """
    Immutable snapshot of everything one evaluation reads: lifecycle rules,
    SoD rules, risk weights and attribute catalog extensions.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    rules: Tuple[Rule, ...] = Field(default_factory=tuple)
    sod_rules: Tuple[SoDRule, ...] = Field(default_factory=tuple)
    weights: Tuple[RiskWeight, ...] = Field(default_factory=lambda: tuple(default_weights()))
    attributes: Tuple[AttributeDef, ...] = Field(default_factory=tuple)
    grant_aliases: Dict[str, List[str]] = Field(default_factory=dict)

    def catalog(self) -> AttributeCatalog:
        return default_catalog().extend(self.attributes)

    def alias_map(self) -> Dict[str, str]:
        return build_grant_alias_map(self.grant_aliases)

    def compute_hash(self) -> str:
        return sha256_json(self.model_dump(mode="json"))

    def rule(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


def _validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in error.get("loc", ())), "msg": str(error.get("msg"))}
        for error in exc.errors()
    ]


def _read_yaml(path: Union[str, Path]) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(
            f"rule set file not found: {file_path}",
            code="FILE_NOT_FOUND",
            details={"path": str(file_path)},
        )
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"failed to parse {file_path}: {exc}",
            code="INVALID_YAML",
            details={"path": str(file_path)},
        ) from exc


def parse_rule_set(data: Any, *, source: Optional[str] = None) -> RuleSet:
    label = source or "<rule set>"
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{label}: top level must be a mapping",
            code="INVALID_RULE_SET",
            details={"path": label},
        )

    payload = dict(data)
    raw_attributes = payload.pop("attributes", None) or {}
    try:
        if isinstance(raw_attributes, dict):
            payload["attributes"] = tuple(AttributeCatalog.from_mapping(raw_attributes).definitions())
        else:
            payload["attributes"] = raw_attributes
        if payload.get("weights") is None:
            payload.pop("weights", None)
        return RuleSet.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(
            f"{label}: invalid rule set ({exc.error_count()} error(s))",
            code="INVALID_RULE_SET",
            details={"path": label, "errors": _validation_details(exc)},
        ) from exc
    except ValueError as exc:
        raise ConfigurationError(
            f"{label}: invalid attribute catalog: {exc}",
            code="INVALID_RULE_SET",
            details={"path": label},
        ) from exc


def load_rule_set(path: Union[str, Path]) -> RuleSet:
    return parse_rule_set(_read_yaml(path), source=str(path))


def load_subjects(path: Union[str, Path]) -> List[Subject]:
    """A YAML/JSON file holding one subject mapping or a list of them."""
    data = _read_yaml(path)
    items = data if isinstance(data, list) else [data]
    subjects: List[Subject] = []
    for index, item in enumerate(items):
        try:
            subjects.append(Subject.model_validate(item))
        except ValidationError as exc:
            raise ConfigurationError(
                f"{path}: invalid subject at index {index}",
                code="INVALID_SUBJECT",
                details={"path": str(path), "index": index, "errors": _validation_details(exc)},
            ) from exc
    return subjects
