"""Relation resolution over the entity store.

Lookups by identity go through ``find_by_id`` supplied by the repository, so
misses on loader-backed types warm the cache like any other read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from relstore.identity import identity_key
from relstore.schema.record_type import Relation, RelationKind
from relstore.store.entity_store import EntityStore, Record

logger = logging.getLogger(__name__)

FindById = Callable[[str, Any], "Record | None"]


class RelationResolver:
    """Resolve declared relations, shallow or fully nested."""

    def __init__(self, store: EntityStore, find_by_id: FindById) -> None:
        self._store = store
        self._find_by_id = find_by_id

    # ── Shallow ──────────────────────────────────────────────

    def get_related(self, source_type: str, source_id: Any, target_type: str) -> list[Record]:
        source_record = self._find_by_id(source_type, source_id)
        if source_record is None:
            return []
        relation = self._store.get_type(source_type).get_relation(target_type)
        if relation is None:
            return []
        return self.resolve(source_record, relation)

    def resolve(self, source_record: Mapping[str, Any], relation: Relation) -> list[Record]:
        """Records of ``relation.target_type`` reachable from ``source_record``."""
        value = source_record.get(relation.local_key)
        if value is None:
            return []
        target = relation.target_type

        if relation.kind is RelationKind.ONE_TO_MANY:
            if isinstance(value, (list, tuple)):
                related = []
                for stub in value:
                    ref = stub.get(relation.array_key) if isinstance(stub, Mapping) else stub
                    if ref is None:
                        continue
                    record = self._find_by_id(target, ref)
                    if record is not None:
                        related.append(record)
                return related
            return self._store.find_by(target, relation.foreign_key, value)

        if relation.foreign_key == self._store.get_type(target).id_field:
            record = self._find_by_id(target, value)
            return [record] if record is not None else []
        return self._store.find_by(target, relation.foreign_key, value)[:1]

    # ── Fully nested ─────────────────────────────────────────

    def get_full_related_data(
        self, type_name: str, record_id: Any = None
    ) -> Record | list[Record] | None:
        """Materialize a record (or every record of the type) with all relations.

        Each root starts its own traversal; within a traversal a ``(type, id)``
        already visited is returned raw instead of being expanded again.
        """
        if record_id is None:
            results = []
            for record in self._store.find_all(type_name):
                materialized = self._materialize(type_name, record, set())
                if materialized is not None:
                    results.append(materialized)
            return results

        record = self._find_by_id(type_name, record_id)
        if record is None:
            return None
        return self._materialize(type_name, record, set())

    def _materialize(
        self, type_name: str, record: Record, visited: set[tuple[str, str]]
    ) -> Record:
        record_type = self._store.get_type(type_name)
        node = (type_name, identity_key(record.get(record_type.id_field)))
        if node in visited:
            return record
        visited.add(node)

        out = dict(record)
        for target_type, relation in record_type.relations.items():
            related = [
                self._materialize(target_type, r, visited) for r in self.resolve(record, relation)
            ]
            if relation.local_key != record_type.id_field:
                out.pop(relation.local_key, None)
            name = record_type.related_field_name(target_type)
            if relation.kind is RelationKind.ONE_TO_MANY:
                out[name] = related
            else:
                out[name] = related[0] if related else None
        return out

    # ── Relation metadata ────────────────────────────────────

    def get_full_relation(self) -> dict[str, dict[str, Any]]:
        """Global relation tree. Each type is expanded once, at its first occurrence."""
        visited: set[str] = set()
        return {name: self._relation_node(name, visited) for name in self._store.type_names}

    def _relation_node(self, type_name: str, visited: set[str]) -> dict[str, Any]:
        node: dict[str, Any] = {"type": type_name, "relations": {}}
        if type_name in visited:
            return node
        visited.add(type_name)

        record_type = self._store.get_type(type_name)
        for target_type, relation in record_type.relations.items():
            entry: dict[str, Any] = relation.as_dict()
            entry["field_name"] = record_type.related_field_name(target_type)
            if self._store.has_type(target_type):
                entry["relations"] = self._relation_node(target_type, visited)["relations"]
            else:
                entry["relations"] = {}
            node["relations"][target_type] = entry
        return node

    def get_relations_for_type(self, type_name: str) -> dict[str, dict[str, str]]:
        if not self._store.has_type(type_name):
            return {}
        record_type = self._store.get_type(type_name)
        return {target: rel.as_dict() for target, rel in record_type.relations.items()}

    def get_all_relations(self) -> dict[str, dict[str, dict[str, str]]]:
        return {
            name: rels
            for name in self._store.type_names
            if (rels := self.get_relations_for_type(name))
        }

    def describe_relations(self) -> str:
        lines = ["Relations:"]
        for source, targets in self.get_all_relations().items():
            lines.append(f"  {source}:")
            for target, rel in targets.items():
                arrow = "=>" if rel["kind"] == RelationKind.ONE_TO_MANY.value else "->"
                lines.append(f"    {arrow} {target} ({rel['kind']})")
                lines.append(
                    f"       local_key={rel['local_key']}, foreign_key={rel['foreign_key']}, "
                    f"array_key={rel['array_key']}"
                )
        return "\n".join(lines)
