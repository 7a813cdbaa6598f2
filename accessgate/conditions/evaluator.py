from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from accessgate.conditions.catalog import (
    AttributeCatalog,
    AttributeDef,
    FieldType,
    Operator,
    OPERATORS_BY_TYPE,
    default_catalog,
)
from accessgate.conditions.types import Condition, ConditionGroup, LogicalOperator
from accessgate.errors import ConfigurationError


_MISSING = object()

_LIST_OPERATORS = {Operator.IN, Operator.NOT_IN, Operator.CONTAINS_ALL, Operator.CONTAINS_ANY}
_PRESENCE_OPERATORS = {Operator.IS_EMPTY, Operator.IS_NOT_EMPTY}


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _is_empty(value: Any) -> bool:
    if value is None or value is _MISSING:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _text(value: Any, case_sensitive: bool) -> str:
    text = str(value).strip()
    return text if case_sensitive else text.casefold()


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return float(value)


def _to_date(value: Any, as_of: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if text.lower() == "today":
        return as_of
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text).date()


def _as_list(value: Any) -> List[Any]:
    """Condition list values may be authored as a list or a comma-separated string."""
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [value]


def _subject_items(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


class ConditionEvaluator:
    """
    Evaluates condition groups against one subject's attribute map.

    Pure: the catalog and the `as_of` date are the only inputs besides the
    arguments, so the same snapshot always yields the same answer.
    """

    def __init__(self, catalog: Optional[AttributeCatalog] = None, *, today: Callable[[], date] = _utc_today):
        self.catalog = catalog or default_catalog()
        self._today = today
        self._coercers: Dict[FieldType, Callable[[Any, Condition, date], Any]] = {
            FieldType.STRING: self._coerce_text,
            FieldType.ENUM: self._coerce_text,
            FieldType.NUMBER: lambda value, cond, as_of: _to_number(value),
            FieldType.DATE: lambda value, cond, as_of: _to_date(value, as_of),
            FieldType.ARRAY: self._coerce_text,
        }
        self._operators: Dict[FieldType, Dict[Operator, Callable[[Any, Any, Condition, date], bool]]] = {
            FieldType.STRING: {
                Operator.EQUALS: lambda a, e, c, d: a == e,
                Operator.NOT_EQUALS: lambda a, e, c, d: a != e,
                Operator.CONTAINS: lambda a, e, c, d: e in a,
                Operator.STARTS_WITH: lambda a, e, c, d: a.startswith(e),
                Operator.ENDS_WITH: lambda a, e, c, d: a.endswith(e),
                Operator.IN: lambda a, e, c, d: a in e,
                Operator.NOT_IN: lambda a, e, c, d: a not in e,
                Operator.MATCHES: self._matches,
            },
            FieldType.ENUM: {
                Operator.EQUALS: lambda a, e, c, d: a == e,
                Operator.NOT_EQUALS: lambda a, e, c, d: a != e,
                Operator.IN: lambda a, e, c, d: a in e,
                Operator.NOT_IN: lambda a, e, c, d: a not in e,
            },
            FieldType.NUMBER: {
                Operator.EQUALS: lambda a, e, c, d: a == e,
                Operator.NOT_EQUALS: lambda a, e, c, d: a != e,
                Operator.GREATER_THAN: lambda a, e, c, d: a > e,
                Operator.LESS_THAN: lambda a, e, c, d: a < e,
                Operator.BETWEEN: lambda a, e, c, d: e[0] <= a <= e[1],
                Operator.IN: lambda a, e, c, d: a in e,
                Operator.NOT_IN: lambda a, e, c, d: a not in e,
            },
            FieldType.DATE: {
                Operator.EQUALS: lambda a, e, c, d: a == e,
                Operator.GREATER_THAN: lambda a, e, c, d: a > e,
                Operator.AFTER: lambda a, e, c, d: a > e,
                Operator.LESS_THAN: lambda a, e, c, d: a < e,
                Operator.BEFORE: lambda a, e, c, d: a < e,
                Operator.BETWEEN: lambda a, e, c, d: e[0] <= a <= e[1],
                Operator.WITHIN_DAYS: lambda a, e, c, d: d <= a <= d + timedelta(days=e),
            },
            FieldType.ARRAY: {
                Operator.CONTAINS: lambda a, e, c, d: e in a,
                Operator.CONTAINS_ALL: lambda a, e, c, d: set(e).issubset(a),
                Operator.CONTAINS_ANY: lambda a, e, c, d: bool(set(e).intersection(a)),
            },
        }

    # -- public API -------------------------------------------------------

    def evaluate(
        self,
        group: ConditionGroup,
        attributes: Mapping[str, Any],
        *,
        as_of: Optional[date] = None,
    ) -> bool:
        self.validate(group)
        return self._evaluate_group(group, attributes, as_of or self._today())

    def evaluate_condition(
        self,
        condition: Condition,
        attributes: Mapping[str, Any],
        *,
        as_of: Optional[date] = None,
    ) -> bool:
        effective_as_of = as_of or self._today()
        self._prepare(condition, effective_as_of)
        return self._evaluate_leaf(condition, attributes, effective_as_of)

    def validate(self, group: ConditionGroup) -> None:
        """Raise ConfigurationError for the first malformed condition in the tree."""
        as_of = self._today()
        for condition in group.iter_conditions():
            self._prepare(condition, as_of)

    def collect_errors(self, group: ConditionGroup) -> List[ConfigurationError]:
        errors: List[ConfigurationError] = []
        as_of = self._today()
        for condition in group.iter_conditions():
            try:
                self._prepare(condition, as_of)
            except ConfigurationError as exc:
                errors.append(exc)
        return errors

    # -- evaluation -------------------------------------------------------

    def _evaluate_group(self, group: ConditionGroup, attributes: Mapping[str, Any], as_of: date) -> bool:
        if group.is_empty:
            return True

        thunks: List[Callable[[], bool]] = [
            (lambda c=condition: self._evaluate_leaf(c, attributes, as_of)) for condition in group.conditions
        ]
        thunks.extend(
            (lambda g=child: self._evaluate_group(g, attributes, as_of)) for child in group.groups
        )

        if group.logical_operator == LogicalOperator.AND:
            result = True
            for thunk in thunks:
                result = result and thunk()
                if not result:
                    return False
            return result

        result = False
        for thunk in thunks:
            result = result or thunk()
            if result:
                return True
        return result

    def _evaluate_leaf(self, condition: Condition, attributes: Mapping[str, Any], as_of: date) -> bool:
        result = self._apply(condition, attributes, as_of)
        return (not result) if condition.negate else result

    def _apply(self, condition: Condition, attributes: Mapping[str, Any], as_of: date) -> bool:
        definition = self.catalog.get(condition.field)
        operator = Operator(condition.operator)
        raw = attributes.get(condition.field, _MISSING) if attributes is not None else _MISSING

        if operator == Operator.IS_EMPTY:
            return _is_empty(raw)
        if operator == Operator.IS_NOT_EMPTY:
            return not _is_empty(raw)

        if raw is _MISSING or raw is None:
            # null differs from any configured value; nothing else can match
            return operator == Operator.NOT_EQUALS

        expected = self._prepare(condition, as_of)
        try:
            if definition.type == FieldType.ARRAY:
                actual: Any = {self._coerce_text(item, condition, as_of) for item in _subject_items(raw)}
            else:
                actual = self._coercers[definition.type](raw, condition, as_of)
        except (TypeError, ValueError):
            return False

        try:
            return bool(self._operators[definition.type][operator](actual, expected, condition, as_of))
        except TypeError:
            return False

    def _matches(self, actual: str, expected: "re.Pattern[str]", condition: Condition, as_of: date) -> bool:
        return expected.search(actual) is not None

    def _coerce_text(self, value: Any, condition: Condition, as_of: date) -> str:
        return _text(value, condition.case_sensitive)

    # -- validation -------------------------------------------------------

    def _prepare(self, condition: Condition, as_of: date) -> Any:
        """
        Validate a condition against the catalog and return its coerced
        expected value.
        """
        definition = self.catalog.get(condition.field)
        try:
            operator = Operator(condition.operator)
        except ValueError:
            raise ConfigurationError(
                f"unknown operator `{condition.operator}` on field `{condition.field}`",
                code="UNKNOWN_OPERATOR",
                details={"field": condition.field, "operator": condition.operator},
            ) from None

        if operator not in OPERATORS_BY_TYPE[definition.type]:
            raise ConfigurationError(
                f"operator `{operator.value}` is not allowed for {definition.type.value} field `{condition.field}`",
                code="OPERATOR_NOT_ALLOWED",
                details={"field": condition.field, "operator": operator.value, "field_type": definition.type.value},
            )

        if operator in _PRESENCE_OPERATORS:
            return None

        try:
            return self._expected_value(definition, operator, condition, as_of)
        except ConfigurationError:
            raise
        except (TypeError, ValueError, re.error) as exc:
            raise ConfigurationError(
                f"invalid value {condition.value!r} for `{condition.field} {operator.value}`: {exc}",
                code="INVALID_VALUE",
                details={"field": condition.field, "operator": operator.value},
            ) from exc

    def _expected_value(self, definition: AttributeDef, operator: Operator, condition: Condition, as_of: date) -> Any:
        value = condition.value
        if value is None:
            raise ValueError("value is required")

        if operator == Operator.MATCHES:
            flags = 0 if condition.case_sensitive else re.IGNORECASE
            return re.compile(str(value), flags)

        if operator == Operator.WITHIN_DAYS:
            days = int(value)
            if days < 0:
                raise ValueError("withinDays must be non-negative")
            return days

        coerce = self._coercers[definition.type]

        if operator == Operator.BETWEEN:
            bounds = _as_list(value)
            if len(bounds) != 2:
                raise ValueError("between expects exactly two bounds")
            low, high = coerce(bounds[0], condition, as_of), coerce(bounds[1], condition, as_of)
            if low > high:
                raise ValueError("between lower bound exceeds upper bound")
            return (low, high)

        if operator in _LIST_OPERATORS:
            items = [coerce(item, condition, as_of) for item in _as_list(value)]
            if not items:
                raise ValueError("list operator needs at least one value")
            self._check_enum_values(definition, items, condition)
            return frozenset(items)

        expected = coerce(value, condition, as_of)
        self._check_enum_values(definition, [expected], condition)
        return expected

    def _check_enum_values(self, definition: AttributeDef, items: Sequence[Any], condition: Condition) -> None:
        if definition.type != FieldType.ENUM or not definition.values:
            return
        allowed = {_text(v, condition.case_sensitive) for v in definition.values}
        unknown = sorted(str(item) for item in items if item not in allowed)
        if unknown:
            raise ConfigurationError(
                f"value(s) {', '.join(unknown)} not allowed for enum field `{definition.name}`",
                code="INVALID_ENUM_VALUE",
                details={"field": definition.name, "values": unknown},
            )
