"""Map-of-maps record storage.

``EntityStore`` holds ``type name -> {identity key -> record}``. It validates
through the registered descriptors and reports every mutation to a single
``on_change(type_name)`` callback; it knows nothing about listeners.
Records are copied on the way in and on the way out, so callers never hold
a stored dict.
"""

from __future__ import annotations

import copy
import functools
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Literal

from relstore.errors import UnknownTypeError
from relstore.identity import identity_key
from relstore.schema.record_type import RecordType

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _compare(a: Any, b: Any) -> int:
    try:
        if a < b:
            return -1
        if a > b:
            return 1
    except TypeError:
        pass
    return 0


class EntityStore:
    """Records of every registered type, keyed by string identity."""

    def __init__(self, on_change: Callable[[str], None] | None = None) -> None:
        self._types: dict[str, RecordType] = {}
        self._data: dict[str, dict[str, Record]] = {}
        self._on_change = on_change or (lambda _type_name: None)

    # ── Types ────────────────────────────────────────────────

    def add_type(self, record_type: RecordType) -> None:
        self._types[record_type.name] = record_type
        self._data[record_type.name] = {}

    def get_type(self, type_name: str) -> RecordType:
        record_type = self._types.get(type_name)
        if record_type is None:
            raise UnknownTypeError(type_name, list(self._types))
        return record_type

    def has_type(self, type_name: str) -> bool:
        return type_name in self._types

    @property
    def type_names(self) -> list[str]:
        return list(self._types)

    def _bucket(self, type_name: str) -> dict[str, Record]:
        self.get_type(type_name)
        return self._data[type_name]

    # ── Writes ───────────────────────────────────────────────

    def put(self, type_name: str, candidate: Mapping[str, Any]) -> Record:
        """Validate and store without notifying."""
        record_type = self.get_type(type_name)
        record = copy.deepcopy(record_type.validate(candidate))
        key = identity_key(record_type.identity_of(record))
        self._data[type_name][key] = record
        return copy.deepcopy(record)

    def save(self, type_name: str, candidate: Mapping[str, Any]) -> Record:
        record = self.put(type_name, candidate)
        self._on_change(type_name)
        return record

    def save_many(self, type_name: str, candidates: Iterable[Mapping[str, Any]]) -> list[Record]:
        return [self.save(type_name, c) for c in candidates]

    def remove(self, type_name: str, record_id: Any) -> bool:
        bucket = self._bucket(type_name)
        if bucket.pop(identity_key(record_id), None) is None:
            return False
        self._on_change(type_name)
        return True

    def replace_collection(self, type_name: str, records: Iterable[Mapping[str, Any]]) -> list[Record]:
        """Re-save ``records`` one by one, then purge everything else of the type.

        Not transactional: a ValidationError leaves earlier records saved and
        skips the purge.
        """
        bucket = self._bucket(type_name)
        kept: set[str] = set()
        for candidate in records:
            record = self.put(type_name, candidate)
            kept.add(identity_key(self._types[type_name].identity_of(record)))
        stale = [key for key in bucket if key not in kept]
        for key in stale:
            del bucket[key]
        if stale:
            logger.debug("Purged %d %s record(s) absent from merge result", len(stale), type_name)
        self._on_change(type_name)
        return self.find_all(type_name)

    # ── Reads ────────────────────────────────────────────────

    def peek(self, type_name: str, record_id: Any) -> Record | None:
        record = self._bucket(type_name).get(identity_key(record_id))
        return copy.deepcopy(record) if record is not None else None

    def find_all(self, type_name: str) -> list[Record]:
        return copy.deepcopy(list(self._bucket(type_name).values()))

    def find_by(self, type_name: str, field: str, value: Any) -> list[Record]:
        return [r for r in self.find_all(type_name) if r.get(field) == value]

    def group_by(self, type_name: str, field: str) -> dict[str, list[Record]]:
        groups: dict[str, list[Record]] = {}
        for record in self.find_all(type_name):
            groups.setdefault(identity_key(record.get(field)), []).append(record)
        return groups

    def sort_by(
        self, type_name: str, field: str, order: Literal["asc", "desc"] = "asc"
    ) -> list[Record]:
        sign = -1 if order == "desc" else 1
        return sorted(
            self.find_all(type_name),
            key=functools.cmp_to_key(lambda a, b: sign * _compare(a.get(field), b.get(field))),
        )

    # ── Introspection ────────────────────────────────────────

    def stats(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"count": len(bucket), "ids": list(bucket)} for name, bucket in self._data.items()
        }

    def state(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"by_id": copy.deepcopy(bucket), "all_ids": list(bucket)}
            for name, bucket in self._data.items()
        }
