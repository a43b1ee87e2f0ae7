"""Repository — the façade over store, merge engine, relations and notifier.

Responsibilities:
1. Own the record type descriptors (one Repository never shares them)
2. CRUD and scans against the entity store
3. Loader integration: cache-only peek, awaited fetch, background warm-up
4. Deep merge of whole collections (merge_rpc) and batched message ingestion
5. Relation declaration and resolution
6. Change notification to filtered listeners
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from relstore.config import StoreConfig
from relstore.errors import DuplicateTypeError, UnknownTypeError
from relstore.events.notifier import ChangeEvent, ChangeFilter, ChangeListener, ChangeNotifier
from relstore.events.scheduler import AsyncioScheduler, TaskScheduler
from relstore.identity import identity_key
from relstore.messages import Message, Payload
from relstore.schema.record_type import IdFieldRule, Loader, RecordType
from relstore.store.entity_store import EntityStore, Record
from relstore.store.merge import IdFieldResolver, MergeContext, merge_records
from relstore.store.relations import RelationResolver

logger = logging.getLogger(__name__)


class RelationBuilder:
    """Returned by ``Repository.define_relation``; each method declares and chains."""

    def __init__(
        self, repository: Repository, source: RecordType, target_type: str, field_name: str | None
    ) -> None:
        self._repository = repository
        self._source = source
        self._target_type = target_type
        if field_name:
            source.rename_related(target_type, field_name)

    # Omitted keys default to the identity field of the record type they live on.

    def has_many(
        self, local_key: str, array_key: str = "id", foreign_key: str | None = None
    ) -> Repository:
        self._source.has_many(
            self._target_type,
            local_key=local_key,
            array_key=array_key,
            foreign_key=foreign_key or self._target_id_field(),
        )
        return self._repository

    def has_one(self, foreign_key: str, local_key: str | None = None) -> Repository:
        self._source.has_one(
            self._target_type, foreign_key=foreign_key, local_key=local_key or self._source.id_field
        )
        return self._repository

    def belongs_to(self, foreign_key: str, local_key: str | None = None) -> Repository:
        self._source.belongs_to(
            self._target_type, foreign_key=foreign_key, local_key=local_key or self._target_id_field()
        )
        return self._repository

    def _target_id_field(self) -> str:
        return self._repository.get_type(self._target_type).id_field


class Repository:
    """Normalized in-process entity store with relations and change events."""

    def __init__(
        self, config: StoreConfig | None = None, scheduler: TaskScheduler | None = None
    ) -> None:
        self.config = config or StoreConfig()
        self._notifier = ChangeNotifier(
            scheduler or AsyncioScheduler(delay=self.config.notifier.flush_delay)
        )
        self._store = EntityStore(on_change=self._emit_change)
        self._relations = RelationResolver(self._store, self.find_by_id)
        self._loads: dict[tuple[str, str], asyncio.Task] = {}

    # ── Type registration ────────────────────────────────────

    def register(
        self,
        name: str,
        validator: Any = None,
        *,
        id_field: str | None = None,
        loader: Loader | None = None,
        merge_paths: Mapping[str, str | Mapping[str, Any] | IdFieldRule] | None = None,
    ) -> RecordType:
        """Register a record type and return its descriptor.

        ``validator`` may be a pydantic model class, a Validator, a plain
        callable, or None for pass-through.
        """
        if self._store.has_type(name):
            raise DuplicateTypeError(f"Record type '{name}' already registered")
        record_type = RecordType(
            name=name,
            validator=validator,
            id_field=id_field or self.config.merge.default_id_field,
            loader=loader,
        )
        if merge_paths:
            record_type.set_merge_path(merge_paths)
        self._store.add_type(record_type)
        logger.info("Registered record type: %s (id_field=%s)", name, record_type.id_field)
        return record_type

    def get_type(self, name: str) -> RecordType:
        return self._store.get_type(name)

    @property
    def type_names(self) -> list[str]:
        return self._store.type_names

    # ── Writes ───────────────────────────────────────────────

    def save(self, type_name: str, candidate: Mapping[str, Any]) -> Record:
        return self._store.save(type_name, candidate)

    def save_many(self, type_name: str, candidates: Iterable[Mapping[str, Any]]) -> list[Record]:
        return self._store.save_many(type_name, candidates)

    async def update(
        self, type_name: str, record_id: Any, patch: Mapping[str, Any]
    ) -> Record | None:
        """Shallow-merge ``patch`` over an existing record. ``None`` if absent."""
        existing = await self.fetch(type_name, record_id)
        if existing is None:
            return None
        id_field = self._store.get_type(type_name).id_field
        merged = {**existing, **patch, id_field: existing[id_field]}
        return self._store.save(type_name, merged)

    def remove(self, type_name: str, record_id: Any) -> bool:
        return self._store.remove(type_name, record_id)

    # ── Reads ────────────────────────────────────────────────

    def peek(self, type_name: str, record_id: Any) -> Record | None:
        """Cache-only lookup, never triggers a loader."""
        return self._store.peek(type_name, record_id)

    def find_by_id(self, type_name: str, record_id: Any) -> Record | None:
        """Cached lookup; a miss on a loader-backed type starts a background load.

        The miss is still reported as ``None``; re-query once the load lands.
        """
        record = self._store.peek(type_name, record_id)
        if record is None and self._store.get_type(type_name).loader is not None:
            self._start_load(type_name, record_id)
        return record

    async def fetch(self, type_name: str, record_id: Any) -> Record | None:
        """Cached lookup that awaits the loader on a miss."""
        record = self._store.peek(type_name, record_id)
        if record is not None or self._store.get_type(type_name).loader is None:
            return record
        task = self._start_load(type_name, record_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    def find_all(self, type_name: str) -> list[Record]:
        return self._store.find_all(type_name)

    def find_by(self, type_name: str, field: str, value: Any) -> list[Record]:
        return self._store.find_by(type_name, field, value)

    def group_by(self, type_name: str, field: str) -> dict[str, list[Record]]:
        return self._store.group_by(type_name, field)

    def sort_by(
        self, type_name: str, field: str, order: Literal["asc", "desc"] = "asc"
    ) -> list[Record]:
        return self._store.sort_by(type_name, field, order)

    # ── Loader ───────────────────────────────────────────────

    def _start_load(self, type_name: str, record_id: Any) -> asyncio.Task | None:
        key = (type_name, identity_key(record_id))
        task = self._loads.get(key)
        if task is not None:
            return task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; skipping load of %s:%s", type_name, record_id)
            return None
        task = loop.create_task(self._load(type_name, record_id))
        self._loads[key] = task
        task.add_done_callback(lambda _t: self._loads.pop(key, None))
        return task

    async def _load(self, type_name: str, record_id: Any) -> Record | None:
        loader = self._store.get_type(type_name).loader
        try:
            loaded = await loader(record_id)
            if loaded is None:
                logger.debug("Loader for %s returned nothing for id=%s", type_name, record_id)
                return None
            record = self._store.save(type_name, loaded)
            logger.debug("Loaded %s:%s", type_name, record_id)
            return record
        except Exception as e:
            logger.warning("Loader for %s failed on id=%s: %s", type_name, record_id, e)
            return None

    async def wait_for_loads(self) -> None:
        """Wait until every in-flight loader call has finished."""
        while True:
            pending = [t for t in self._loads.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    # ── Deep merge & messages ────────────────────────────────

    def merge_rpc(self, type_name: str, payload: Payload) -> list[Record]:
        """Apply a list of records or a mapping of id -> patch | None to a type.

        The merged result becomes the type's full collection. Exactly one
        change notification is emitted.
        """
        record_type = self._store.get_type(type_name)
        ctx = MergeContext(
            type_name=type_name,
            id_field=record_type.id_field,
            resolver=IdFieldResolver(record_type.merge_paths),
            infer_indexed_edits=self.config.merge.infer_indexed_edits,
        )
        merged = merge_records(self._store.find_all(type_name), payload, ctx)
        return self._store.replace_collection(type_name, merged)

    def handle_messages(self, messages: Iterable[Message | Mapping[str, Any]]) -> None:
        """Dispatch inbound messages to merge_rpc; unknown types are skipped."""
        for raw in messages:
            message = Message.coerce(raw)
            if not self._store.has_type(message.type):
                logger.warning("Skipping message for unknown record type: %s", message.type)
                continue
            self.merge_rpc(message.type, message.payload)

    # ── Relations ────────────────────────────────────────────

    def define_relation(
        self, source_type: str, target_type: str, field_name: str | None = None
    ) -> RelationBuilder:
        source = self._store.get_type(source_type)
        if not self._store.has_type(target_type):
            raise UnknownTypeError(target_type, self._store.type_names)
        return RelationBuilder(self, source, target_type, field_name)

    def get_related(self, source_type: str, source_id: Any, target_type: str) -> list[Record]:
        return self._relations.get_related(source_type, source_id, target_type)

    def get_full_related_data(
        self, type_name: str, record_id: Any = None
    ) -> Record | list[Record] | None:
        return self._relations.get_full_related_data(type_name, record_id)

    def get_full_relation(self) -> dict[str, dict[str, Any]]:
        return self._relations.get_full_relation()

    def get_all_relations(self) -> dict[str, dict[str, dict[str, str]]]:
        return self._relations.get_all_relations()

    def get_relations_for_type(self, type_name: str) -> dict[str, dict[str, str]]:
        return self._relations.get_relations_for_type(type_name)

    def describe_relations(self) -> str:
        text = self._relations.describe_relations()
        logger.info("%s", text)
        return text

    # ── Change notification ──────────────────────────────────

    def _emit_change(self, type_name: str) -> None:
        self._notifier.emit(ChangeEvent(type_name, self._store.find_all(type_name)))

    def on_data_changed(self, listener: ChangeListener, filter: ChangeFilter | None = None) -> str:
        return self._notifier.subscribe(listener, filter)

    def off_data_changed(self, listener_id: str) -> bool:
        return self._notifier.unsubscribe(listener_id)

    def listener_count(self) -> int:
        return self._notifier.listener_count

    def clear_listeners(self) -> None:
        self._notifier.clear()

    def flush(self) -> int:
        """Deliver pending change events immediately."""
        return self._notifier.flush()

    # ── Introspection ────────────────────────────────────────

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return self._store.stats()

    def get_state(self) -> dict[str, dict[str, Any]]:
        return self._store.state()
