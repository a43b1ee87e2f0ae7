"""Deep-merge engine for collection updates.

``merge_records`` applies a list of full records or a mapping of
identity -> patch to a collection and returns the resulting list. Nothing is
mutated in place: merged records are fresh dicts.

Patch shapes:

- ``None`` deletes (top level) or sets the field to ``None`` (nested).
- ``FieldPatch`` / a plain mapping is deep-merged into an existing record, or
  copied verbatim (plus identity) when the identity is new.
- ``FullReplace`` replaces the record wholesale.
- ``IndexedEdit`` / a non-empty mapping whose keys are all numeric edits the
  nested collection element-by-element, addressing elements by identity.
"""

from __future__ import annotations

import copy
import fnmatch
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from relstore.errors import ValidationError
from relstore.identity import identity_key, is_numeric_key, parse_identity, same_identity
from relstore.schema.record_type import IdFieldRule

logger = logging.getLogger(__name__)

DEFAULT_ID_FIELD = "id"


@dataclass
class FieldPatch:
    """Deep-merge ``fields`` into the existing record."""

    fields: Mapping[str, Any]


@dataclass
class FullReplace:
    """Replace the existing record with ``record``."""

    record: Mapping[str, Any]


@dataclass
class IndexedEdit:
    """Edit a nested collection: child identity -> patch, ``None`` removes."""

    edits: Mapping[str, Any]


class IdFieldResolver:
    """Resolve the identity field for the collection at a dotted path.

    Lookup order: exact path, trailing sub-path (longest first), recursive
    ancestor whose remaining segments are all its ``children`` field, glob
    pattern. Falls back to ``"id"``.
    """

    def __init__(self, table: Mapping[str, IdFieldRule] | None = None) -> None:
        self._table = dict(table or {})
        self._patterns = [p for p in self._table if "*" in p]

    def resolve(self, path: str) -> str:
        rule = self._table.get(path)
        if rule is not None:
            return rule.id_field

        segments = path.split(".")
        for i in range(1, len(segments)):
            rule = self._table.get(".".join(segments[i:]))
            if rule is not None:
                return rule.id_field

        for i in range(len(segments) - 1, 0, -1):
            rule = self._table.get(".".join(segments[:i]))
            if rule is None or not rule.recursive or not rule.children:
                continue
            if all(s == rule.children for s in segments[i:]):
                return rule.id_field

        for pattern in self._patterns:
            if fnmatch.fnmatchcase(path, pattern):
                return self._table[pattern].id_field

        return DEFAULT_ID_FIELD


@dataclass
class MergeContext:
    type_name: str
    id_field: str
    resolver: IdFieldResolver = field(default_factory=IdFieldResolver)
    infer_indexed_edits: bool = True


def looks_indexed(value: Any) -> bool:
    """A non-empty mapping whose keys all parse as numbers."""
    return (
        isinstance(value, Mapping)
        and len(value) > 0
        and all(is_numeric_key(k) for k in value)
    )


def merge_records(
    records: list[Mapping[str, Any]],
    payload: list[Mapping[str, Any]] | Mapping[str, Any],
    ctx: MergeContext,
) -> list[dict[str, Any]]:
    """Apply ``payload`` to ``records`` and return the merged collection."""
    updates = normalize_payload(payload, ctx)
    result: list[dict[str, Any]] = [dict(r) for r in records]

    for key, patch in updates.items():
        idx = _find_index(result, ctx.id_field, key)

        if patch is None:
            if idx is not None:
                del result[idx]
            continue

        if isinstance(patch, FullReplace):
            replacement = copy.deepcopy(dict(patch.record))
            replacement[ctx.id_field] = (
                result[idx].get(ctx.id_field) if idx is not None else parse_identity(key)
            )
            if idx is not None:
                result[idx] = replacement
            else:
                result.insert(0, replacement)
            continue

        fields = patch.fields if isinstance(patch, FieldPatch) else patch
        if not isinstance(fields, Mapping):
            raise ValidationError.single(ctx.type_name, key, "patch must be a mapping or None")

        if idx is not None:
            result[idx] = deep_merge(result[idx], fields, "", ctx)
        else:
            created = {**copy.deepcopy(dict(fields)), ctx.id_field: parse_identity(key)}
            result.insert(0, created)

    logger.debug("Merged %d update(s) into %s -> %d record(s)", len(updates), ctx.type_name, len(result))
    return result


def normalize_payload(
    payload: list[Mapping[str, Any]] | Mapping[str, Any], ctx: MergeContext
) -> dict[str, Any]:
    """Turn list input into the identity -> patch mapping form."""
    if isinstance(payload, Mapping):
        return {identity_key(k) if not isinstance(k, str) else k: v for k, v in payload.items()}
    if not isinstance(payload, (list, tuple)):
        raise ValidationError.single(ctx.type_name, "", "payload must be a list or a mapping")

    updates: dict[str, Any] = {}
    for item in payload:
        record = item.record if isinstance(item, FullReplace) else item
        value = record.get(ctx.id_field) if isinstance(record, Mapping) else None
        if value is None:
            raise ValidationError.single(ctx.type_name, ctx.id_field, "identity field is missing")
        updates[identity_key(value)] = item
    return updates


def deep_merge(
    target: Mapping[str, Any], patch: Mapping[str, Any], path: str, ctx: MergeContext
) -> dict[str, Any]:
    """Recursively merge ``patch`` into a copy of ``target``."""
    result = dict(target)
    for name, value in patch.items():
        field_path = f"{path}.{name}" if path else name

        if value is None:
            result[name] = None
        elif isinstance(value, IndexedEdit):
            result[name] = _apply_indexed(result.get(name), value.edits, field_path, ctx)
        elif ctx.infer_indexed_edits and looks_indexed(value):
            result[name] = _apply_indexed(result.get(name), value, field_path, ctx)
        elif isinstance(value, FullReplace):
            result[name] = copy.deepcopy(dict(value.record))
        elif isinstance(value, (Mapping, FieldPatch)):
            fields = value.fields if isinstance(value, FieldPatch) else value
            current = result.get(name)
            base = current if isinstance(current, Mapping) else {}
            result[name] = deep_merge(base, fields, field_path, ctx)
        else:
            result[name] = copy.deepcopy(value)
    return result


def _apply_indexed(current: Any, edits: Mapping[str, Any], path: str, ctx: MergeContext) -> Any:
    id_field = ctx.resolver.resolve(path)

    if isinstance(current, Mapping):
        out = dict(current)
        for raw_key, child in edits.items():
            key = raw_key if isinstance(raw_key, str) else identity_key(raw_key)
            slot = _find_slot(out, key)
            if child is None:
                if slot is not None:
                    del out[slot]
                continue
            existing = out.get(slot) if slot is not None else None
            out[slot if slot is not None else key] = _merge_child(existing, child, key, id_field, path, ctx)
        return out

    items: list[Any] = list(current) if isinstance(current, list) else []
    for raw_key, child in edits.items():
        key = raw_key if isinstance(raw_key, str) else identity_key(raw_key)
        idx = _find_index(items, id_field, key)
        if child is None:
            if idx is not None:
                del items[idx]
            continue
        if idx is not None:
            items[idx] = _merge_child(items[idx], child, key, id_field, path, ctx)
        else:
            items.insert(0, _merge_child(None, child, key, id_field, path, ctx))
    return items


def _merge_child(
    existing: Any, child: Any, key: str, id_field: str, path: str, ctx: MergeContext
) -> Any:
    if isinstance(child, FullReplace):
        replaced = copy.deepcopy(dict(child.record))
        replaced[id_field] = parse_identity(key)
        return replaced
    fields = child.fields if isinstance(child, FieldPatch) else child
    if not isinstance(fields, Mapping):
        return copy.deepcopy(child)
    if isinstance(existing, Mapping):
        return deep_merge(existing, fields, path, ctx)
    return {**copy.deepcopy(dict(fields)), id_field: parse_identity(key)}


def _find_index(items: list[Any], id_field: str, key: str) -> int | None:
    for i, item in enumerate(items):
        if isinstance(item, Mapping) and same_identity(item.get(id_field), key):
            return i
    return None


def _find_slot(mapping: Mapping[Any, Any], key: str) -> Any:
    if key in mapping:
        return key
    for existing in mapping:
        if identity_key(existing) == key:
            return existing
    return None
