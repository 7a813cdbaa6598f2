from accessgate.conditions.catalog import (
    AttributeCatalog,
    AttributeDef,
    FieldType,
    Operator,
    OPERATORS_BY_TYPE,
    default_catalog,
)
from accessgate.conditions.evaluator import ConditionEvaluator
from accessgate.conditions.types import Condition, ConditionGroup, LogicalOperator

__all__ = [
    "AttributeCatalog",
    "AttributeDef",
    "Condition",
    "ConditionEvaluator",
    "ConditionGroup",
    "FieldType",
    "LogicalOperator",
    "Operator",
    "OPERATORS_BY_TYPE",
    "default_catalog",
]
