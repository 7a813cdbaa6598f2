from accessgate.subjects.sources import AttributeSource, GrantCatalog, StaticDirectory, resolve_subject
from accessgate.subjects.types import Subject

__all__ = ["AttributeSource", "GrantCatalog", "StaticDirectory", "Subject", "resolve_subject"]
