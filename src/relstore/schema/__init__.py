"""Record type descriptors, relations and validator adapters."""

from relstore.schema.record_type import IdFieldRule, Loader, RecordType, Relation, RelationKind
from relstore.schema.validators import (
    CallableValidator,
    PassthroughValidator,
    PydanticValidator,
    Validator,
)

__all__ = [
    "CallableValidator",
    "IdFieldRule",
    "Loader",
    "PassthroughValidator",
    "PydanticValidator",
    "RecordType",
    "Relation",
    "RelationKind",
    "Validator",
]
