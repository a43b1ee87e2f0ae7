"""relstore — normalized in-process entity store with relations, deep merge and change events."""

from relstore.config import StoreConfig, load_config
from relstore.errors import (
    DuplicateTypeError,
    FieldError,
    RelstoreError,
    UnknownTypeError,
    ValidationError,
)
from relstore.events.notifier import ChangeEvent, ChangeFilter
from relstore.events.scheduler import AsyncioScheduler, ManualScheduler
from relstore.messages import Message
from relstore.repository import Repository
from relstore.schema import IdFieldRule, RecordType, Relation, RelationKind
from relstore.store.merge import FieldPatch, FullReplace, IndexedEdit

__all__ = [
    "AsyncioScheduler",
    "ChangeEvent",
    "ChangeFilter",
    "DuplicateTypeError",
    "FieldError",
    "FieldPatch",
    "FullReplace",
    "IdFieldRule",
    "IndexedEdit",
    "ManualScheduler",
    "Message",
    "RecordType",
    "Relation",
    "RelationKind",
    "RelstoreError",
    "Repository",
    "StoreConfig",
    "UnknownTypeError",
    "ValidationError",
    "load_config",
]
