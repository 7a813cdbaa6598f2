from __future__ import annotations

from typing import Any, Dict, Optional


class AccessGateError(Exception):
    """Base class for engine errors."""


class ConfigurationError(AccessGateError, ValueError):
    """
    Authored configuration cannot be evaluated: unknown field or operator,
    a value that does not fit the field type, a malformed rule set.
    Never retried.
    """

    def __init__(self, message: str, *, code: str = "CONFIGURATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class CyclicDependencyError(ConfigurationError):
    def __init__(self, cycle: list[str]):
        super().__init__(
            f"cyclic action dependency: {' -> '.join(cycle)}",
            code="CYCLIC_DEPENDENCY",
            details={"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


class TransientActionError(AccessGateError, RuntimeError):
    """Raised by action handlers for failures worth retrying."""


class ActionTimeoutError(AccessGateError, TimeoutError):
    """An action exhausted its `timeout_seconds` budget."""
