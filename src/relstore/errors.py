"""Error taxonomy shared by the store, the descriptors and the repository.

Absence is never an error: reads return ``None`` or ``[]``. Only unknown
types, malformed records and duplicate registrations raise.
"""

from __future__ import annotations

from dataclasses import dataclass


class RelstoreError(Exception):
    """Base class for all relstore errors."""


class UnknownTypeError(RelstoreError, KeyError):
    """An operation referenced a record type that was never registered."""

    def __init__(self, type_name: str, known: list[str] | None = None) -> None:
        self.type_name = type_name
        self.known = known or []
        super().__init__(type_name)

    def __str__(self) -> str:
        return f"Record type '{self.type_name}' not registered. Available: {self.known}"


class DuplicateTypeError(RelstoreError, ValueError):
    """A record type name was registered twice in the same repository."""


@dataclass
class FieldError:
    """One violated field: dotted location plus a human-readable message."""

    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}" if self.location else self.message


class ValidationError(RelstoreError, ValueError):
    """A record did not conform to its type's validator."""

    def __init__(self, type_name: str, errors: list[FieldError]) -> None:
        self.type_name = type_name
        self.errors = errors
        super().__init__(str(self))

    def __str__(self) -> str:
        details = "; ".join(str(e) for e in self.errors) or "invalid record"
        return f"Invalid '{self.type_name}' record: {details}"

    @classmethod
    def single(cls, type_name: str, location: str, message: str) -> ValidationError:
        return cls(type_name, [FieldError(location, message)])
