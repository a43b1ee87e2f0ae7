"""Record type descriptors and relation metadata."""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from relstore.errors import ValidationError
from relstore.messages import Message, Payload
from relstore.schema.validators import Validator, as_validator

# Loader: async (id) -> record | None
Loader = Callable[[Any], Awaitable[Mapping[str, Any] | None]]


class RelationKind(str, enum.Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"


@dataclass(frozen=True)
class Relation:
    """A directed edge from one record type to another.

    ``local_key`` is the field on the source record (a scalar or a list of
    reference stubs), ``foreign_key`` the field on the target record it is
    matched against, and ``array_key`` the field read from each stub.
    """

    target_type: str
    kind: RelationKind
    foreign_key: str
    local_key: str
    array_key: str = "id"

    def as_dict(self) -> dict[str, str]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d


@dataclass(frozen=True)
class IdFieldRule:
    """Identity field used for the collection found at a merge path.

    With ``recursive=True`` the rule also applies to every level reached by
    repeatedly descending into ``children``.
    """

    id_field: str = "id"
    children: str | None = None
    recursive: bool = False

    @classmethod
    def coerce(cls, spec: str | Mapping[str, Any] | IdFieldRule) -> IdFieldRule:
        if isinstance(spec, IdFieldRule):
            return spec
        if isinstance(spec, str):
            return cls(id_field=spec)
        return cls(
            id_field=spec.get("id_field", spec.get("idField", "id")),
            children=spec.get("children"),
            recursive=bool(spec.get("recursive", False)),
        )


@dataclass
class RecordType:
    """Per-type metadata: identity field, validator, relations, merge paths."""

    name: str
    validator: Validator | None = None
    id_field: str = "id"
    loader: Loader | None = None
    relations: dict[str, Relation] = field(default_factory=dict)
    merge_paths: dict[str, IdFieldRule] = field(default_factory=dict)
    related_fields: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validator = as_validator(self.validator, self.name)

    # ── Validation & identity ────────────────────────────────

    def validate(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        return self.validator.validate(raw)

    def identity_of(self, record: Mapping[str, Any]) -> Any:
        value = record.get(self.id_field) if isinstance(record, Mapping) else None
        if value is None:
            raise ValidationError.single(self.name, self.id_field, "identity field is missing")
        return value

    # ── Relations ────────────────────────────────────────────

    def declare_relation(self, relation: Relation) -> RecordType:
        self.relations[relation.target_type] = relation
        return self

    def has_many(
        self, target_type: str, local_key: str, array_key: str = "id", foreign_key: str = "id"
    ) -> RecordType:
        """One-to-many via ``local_key``, a list of ``{array_key: id}`` stubs."""
        return self.declare_relation(
            Relation(target_type, RelationKind.ONE_TO_MANY, foreign_key, local_key, array_key)
        )

    def has_one(
        self, target_type: str, foreign_key: str, local_key: str = "id", array_key: str = "id"
    ) -> RecordType:
        return self.declare_relation(
            Relation(target_type, RelationKind.ONE_TO_ONE, foreign_key, local_key, array_key)
        )

    def belongs_to(
        self, target_type: str, foreign_key: str, local_key: str = "id", array_key: str = "id"
    ) -> RecordType:
        """One-to-one via the scalar ``foreign_key`` held on this record.

        Stored mirrored: the source field becomes the relation's local key.
        """
        return self.declare_relation(
            Relation(target_type, RelationKind.ONE_TO_ONE, local_key, foreign_key, array_key)
        )

    def get_relation(self, target_type: str) -> Relation | None:
        return self.relations.get(target_type)

    def rename_related(self, target_type: str, field_name: str) -> RecordType:
        self.related_fields[target_type] = field_name
        return self

    def related_field_name(self, target_type: str) -> str:
        return self.related_fields.get(target_type, target_type)

    # ── Merge paths ──────────────────────────────────────────

    def set_merge_path(self, table: Mapping[str, str | Mapping[str, Any] | IdFieldRule]) -> RecordType:
        self.merge_paths = {path: IdFieldRule.coerce(spec) for path, spec in table.items()}
        return self

    # ── Messages ─────────────────────────────────────────────

    def create_message(self, payload: Payload) -> Message:
        return Message(type=self.name, payload=payload)
