from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from accessgate.subjects.types import Subject


class AttributeSource(ABC):
    """Supplies a subject's directory attributes (HR system, LDAP, IdP)."""

    @abstractmethod
    def attributes_for(self, subject_id: str) -> Optional[Mapping[str, Any]]:
        """Return the attribute map, or None for an unknown subject."""
        pass


class GrantCatalog(ABC):
    """Supplies the grants a subject currently holds."""

    @abstractmethod
    def grants_for(self, subject_id: str) -> FrozenSet[str]:
        pass


class StaticDirectory(AttributeSource, GrantCatalog):
    """In-memory attributes and grants, used by simulations and tests."""

    def __init__(self, subjects: Optional[Iterable[Subject]] = None):
        self._subjects: Dict[str, Subject] = {}
        self._lock = Lock()
        for subject in subjects or ():
            self.put(subject)

    def put(self, subject: Subject) -> None:
        with self._lock:
            self._subjects[subject.id] = subject

    def attributes_for(self, subject_id: str) -> Optional[Mapping[str, Any]]:
        with self._lock:
            subject = self._subjects.get(subject_id)
        return dict(subject.attributes) if subject else None

    def grants_for(self, subject_id: str) -> FrozenSet[str]:
        with self._lock:
            subject = self._subjects.get(subject_id)
        return subject.grants if subject else frozenset()

    def subject_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._subjects)

    def snapshot(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            return self._subjects.get(subject_id)


def resolve_subject(
    subject_id: str,
    attributes: AttributeSource,
    grants: GrantCatalog,
    *,
    risk_factors: Optional[Mapping[str, float]] = None,
) -> Subject:
    """Assemble an immutable Subject from the two collaborators."""
    attrs = attributes.attributes_for(subject_id)
    if attrs is None:
        raise LookupError(f"unknown subject `{subject_id}`")
    return Subject(
        id=subject_id,
        attributes=dict(attrs),
        grants=frozenset(grants.grants_for(subject_id)),
        risk_factors=dict(risk_factors or {}),
    )
