from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from accessgate.errors import ConfigurationError


class FieldType(str, Enum):
    STRING = "string"
    ENUM = "enum"
    NUMBER = "number"
    DATE = "date"
    ARRAY = "array"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IN = "in"
    NOT_IN = "notIn"
    MATCHES = "matches"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    BEFORE = "before"
    AFTER = "after"
    BETWEEN = "between"
    WITHIN_DAYS = "withinDays"
    CONTAINS_ALL = "containsAll"
    CONTAINS_ANY = "containsAny"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


_PRESENCE = frozenset({Operator.IS_EMPTY, Operator.IS_NOT_EMPTY})

OPERATORS_BY_TYPE: Dict[FieldType, FrozenSet[Operator]] = {
    FieldType.STRING: frozenset({
        Operator.EQUALS, Operator.NOT_EQUALS, Operator.CONTAINS, Operator.STARTS_WITH,
        Operator.ENDS_WITH, Operator.IN, Operator.NOT_IN, Operator.MATCHES,
    }) | _PRESENCE,
    FieldType.ENUM: frozenset({
        Operator.EQUALS, Operator.NOT_EQUALS, Operator.IN, Operator.NOT_IN,
    }) | _PRESENCE,
    FieldType.NUMBER: frozenset({
        Operator.EQUALS, Operator.NOT_EQUALS, Operator.GREATER_THAN, Operator.LESS_THAN,
        Operator.BETWEEN, Operator.IN, Operator.NOT_IN,
    }) | _PRESENCE,
    FieldType.DATE: frozenset({
        Operator.EQUALS, Operator.GREATER_THAN, Operator.LESS_THAN, Operator.BEFORE,
        Operator.AFTER, Operator.BETWEEN, Operator.WITHIN_DAYS,
    }) | _PRESENCE,
    FieldType.ARRAY: frozenset({
        Operator.CONTAINS, Operator.CONTAINS_ALL, Operator.CONTAINS_ANY,
    }) | _PRESENCE,
}


class AttributeDef(BaseModel):
    """
    One entry of the attribute catalog.
    `values` restricts the accepted condition values of enum fields.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)

    name: str
    type: FieldType
    label: Optional[str] = None
    values: Tuple[str, ...] = Field(default_factory=tuple)


DEFAULT_ATTRIBUTES: List[AttributeDef] = [
    AttributeDef(name="department", type=FieldType.STRING, label="Department"),
    AttributeDef(name="title", type=FieldType.STRING, label="Title"),
    AttributeDef(name="location", type=FieldType.STRING, label="Location"),
    AttributeDef(
        name="employment_type",
        type=FieldType.ENUM,
        label="Employment Type",
        values=("PERMANENT", "CONTRACTOR", "INTERN", "VENDOR"),
    ),
    AttributeDef(
        name="status",
        type=FieldType.ENUM,
        label="Status",
        values=("ACTIVE", "INACTIVE", "TERMINATED"),
    ),
    AttributeDef(name="ou", type=FieldType.STRING, label="Organizational Unit"),
    AttributeDef(name="manager", type=FieldType.STRING, label="Manager"),
    AttributeDef(name="cost_center", type=FieldType.STRING, label="Cost Center"),
    AttributeDef(name="company", type=FieldType.STRING, label="Company"),
    AttributeDef(name="division", type=FieldType.STRING, label="Division"),
    AttributeDef(name="email", type=FieldType.STRING, label="Email"),
    AttributeDef(name="tags", type=FieldType.ARRAY, label="Tags"),
    AttributeDef(name="start_date", type=FieldType.DATE, label="Start Date"),
    AttributeDef(name="end_date", type=FieldType.DATE, label="End Date"),
    AttributeDef(name="security_level", type=FieldType.NUMBER, label="Security Level"),
]


class AttributeCatalog:
    """
    Typed attribute catalog. Lookups of unknown fields raise ConfigurationError
    so authored rules cannot silently degrade to non-matches.
    """

    def __init__(self, definitions: Iterable[AttributeDef]):
        self._defs: Dict[str, AttributeDef] = {}
        for definition in definitions:
            self._defs[definition.name] = definition

    def __contains__(self, name: object) -> bool:
        return name in self._defs

    def __len__(self) -> int:
        return len(self._defs)

    def names(self) -> List[str]:
        return sorted(self._defs)

    def definitions(self) -> List[AttributeDef]:
        return [self._defs[name] for name in self.names()]

    def get(self, name: str) -> AttributeDef:
        definition = self._defs.get(name)
        if definition is None:
            raise ConfigurationError(
                f"unknown attribute field `{name}`",
                code="UNKNOWN_FIELD",
                details={"field": name},
            )
        return definition

    def allowed_operators(self, name: str) -> FrozenSet[Operator]:
        return OPERATORS_BY_TYPE[self.get(name).type]

    def extend(self, definitions: Iterable[AttributeDef]) -> "AttributeCatalog":
        merged = dict(self._defs)
        for definition in definitions:
            merged[definition.name] = definition
        return AttributeCatalog(merged.values())

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "AttributeCatalog":
        """Build from `{name: type}` or `{name: {type, label, values}}`."""
        definitions = []
        for name, entry in raw.items():
            if isinstance(entry, Mapping):
                definitions.append(AttributeDef(name=str(name), **dict(entry)))
            else:
                definitions.append(AttributeDef(name=str(name), type=FieldType(str(entry))))
        return cls(definitions)


def default_catalog() -> AttributeCatalog:
    return AttributeCatalog(DEFAULT_ATTRIBUTES)
