"""
Persistence context: one unit of work over the Movies database.
The context owns an identity map and a snapshot-based change tracker, exposes one entity set per
top-level entity type, and writes every staged insert, update, and delete in a single transaction on `commit`.
Owned dependents (director, actors) are written and removed explicitly alongside their owner.
"""

from __future__ import annotations

import logging
import weakref
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection, CursorResult, Engine, Row
from sqlalchemy.sql import Executable

from src.data.entities import Genre, Movie
from src.data.errors import (
    ConcurrencyConflict,
    ConstraintViolation,
    InvalidEntityStateError,
    translate_store_errors,
)
from src.data.mapping import MOVIES_MODEL, EntityMapping, ModelMappings, OwnedMapping
from src.data.query import EntityQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityState(Enum):
    DETACHED = "detached"
    ADDED = "added"
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(eq=False)
class EntityEntry:
    entity: Any
    mapping: EntityMapping
    state: EntityState
    key: Any = None
    original: dict[str, Any] = field(default_factory=dict)
    original_owned: dict[str, Any] = field(default_factory=dict)

    def accept_changes(self) -> None:
        self.key = getattr(self.entity, self.mapping.key)
        self.original = self.mapping.scalar_values(self.entity)
        self.original_owned = self.mapping.owned_snapshot(self.entity)
        self.state = EntityState.UNCHANGED

    def changed_properties(self) -> dict[str, Any]:
        current = self.mapping.scalar_values(self.entity)
        return {
            attribute: value
            for attribute, value in current.items()
            if attribute != self.mapping.key and value != self.original.get(attribute)
        }

    def changed_owned(self) -> list[OwnedMapping]:
        current = self.mapping.owned_snapshot(self.entity)
        return [
            owned
            for owned in self.mapping.owned
            if current[owned.attribute] != self.original_owned.get(owned.attribute)
        ]

    def detect_changes(self) -> None:
        if self.state not in (EntityState.UNCHANGED, EntityState.MODIFIED):
            return
        if getattr(self.entity, self.mapping.key) != self.key:
            raise InvalidEntityStateError(f"The key of a tracked {self.mapping.name} cannot be changed")
        dirty = bool(self.changed_properties()) or bool(self.changed_owned())
        self.state = EntityState.MODIFIED if dirty else EntityState.UNCHANGED


class ChangeTracker:
    """Identity map plus per-instance entries for everything the context has loaded or staged."""

    def __init__(self) -> None:
        self._entries: dict[Any, EntityEntry] = {}
        self._identity_map: dict[tuple[type, Any], Any] = {}
        self._deleted: weakref.WeakSet[Any] = weakref.WeakSet()

    def entry_for(self, entity: Any) -> EntityEntry | None:
        return self._entries.get(entity)

    def lookup(self, entity_type: type, key: Any) -> Any | None:
        return self._identity_map.get((entity_type, key))

    def is_deleted(self, entity: Any) -> bool:
        return entity in self._deleted

    def track(self, entity: Any, mapping: EntityMapping, state: EntityState) -> EntityEntry:
        entry = EntityEntry(entity=entity, mapping=mapping, state=state)
        if state is EntityState.ADDED:
            entry.key = getattr(entity, mapping.key)
        else:
            entry.accept_changes()
            entry.state = state
        self._entries[entity] = entry
        self.register_key(entry)
        return entry

    def register_key(self, entry: EntityEntry) -> None:
        key = getattr(entry.entity, entry.mapping.key)
        if key is not None:
            self._identity_map[(entry.mapping.entity_type, key)] = entry.entity

    def forget(self, entity: Any, *, deleted: bool = False) -> None:
        entry = self._entries.pop(entity, None)
        if entry is not None and entry.key is not None:
            self._identity_map.pop((entry.mapping.entity_type, entry.key), None)
        if deleted:
            self._deleted.add(entity)

    def state_of(self, entity: Any) -> EntityState:
        if entity in self._deleted:
            return EntityState.DELETED
        entry = self._entries.get(entity)
        if entry is None:
            return EntityState.DETACHED
        entry.detect_changes()
        return entry.state

    def detect_changes(self) -> None:
        for entry in self._entries.values():
            entry.detect_changes()

    def entries(self) -> list[EntityEntry]:
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()
        self._identity_map.clear()


class EntitySet(Generic[T]):
    """Addressable collection for one top-level entity type."""

    def __init__(self, context: MoviesContext, mapping: EntityMapping) -> None:
        self._context = context
        self.mapping = mapping

    def query(self) -> EntityQuery[T]:
        return EntityQuery(self._context, self.mapping)

    def find(self, key: Any, *, ignore_query_filters: bool = False) -> T | None:
        """Read the entity with `key` from the store; `None` when absent or hidden by the query filter.

        An instance staged with an explicit `key` and not yet committed is returned as is.
        Otherwise this performs a store round-trip. A tracked instance that is unchanged is
        refreshed in place and returned; one with pending modifications keeps its local edits.
        """

        tracked = self._context.change_tracker.lookup(self.mapping.entity_type, key)
        if tracked is not None:
            state = self._context.entry_state(tracked)
            if state is EntityState.DELETED:
                return None
            if state is EntityState.ADDED:
                return tracked

        key_attribute = self.mapping.key
        query = self.query().where(lambda columns: getattr(columns, key_attribute) == key)
        if ignore_query_filters:
            query = query.ignore_query_filters()
        return query.first()

    def add(self, entity: T) -> None:
        self._check_type(entity)
        self._context.add(entity)

    def remove(self, entity: T) -> None:
        self._check_type(entity)
        self._context.remove(entity)

    def _check_type(self, entity: Any) -> None:
        if not isinstance(entity, self.mapping.entity_type):
            raise TypeError(f"Expected {self.mapping.name}, got {type(entity).__name__}")


class MoviesContext:
    def __init__(self, engine: Engine, model: ModelMappings = MOVIES_MODEL) -> None:
        self._engine = engine
        self._model = model
        self.change_tracker = ChangeTracker()
        self.movies: EntitySet[Movie] = EntitySet(self, model.for_type(Movie))
        self.genres: EntitySet[Genre] = EntitySet(self, model.for_type(Genre))

    def __enter__(self) -> MoviesContext:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def close(self) -> None:
        self.change_tracker.clear()

    def entry_state(self, entity: Any) -> EntityState:
        return self.change_tracker.state_of(entity)

    def movies_of_genre(self, genre: Genre) -> EntityQuery[Movie]:
        """Movies whose main genre is `genre`; the inverse navigation is a query, not a collection."""

        genre_id = genre.id
        return self.movies.query().where(lambda movie: movie.main_genre_id == genre_id)

    def add(self, entity: Any) -> None:
        """Stage an insert. No identity is assigned and the store is not touched until `commit`."""

        tracker = self.change_tracker
        if tracker.is_deleted(entity):
            raise InvalidEntityStateError("Cannot add an entity that has already been deleted")

        entry = tracker.entry_for(entity)
        if entry is not None:
            if entry.state is EntityState.DELETED:
                entry.state = EntityState.UNCHANGED
                entry.detect_changes()
            return

        mapping = self._model.for_type(type(entity))
        key = getattr(entity, mapping.key)
        if key is not None and tracker.lookup(mapping.entity_type, key) is not None:
            raise InvalidEntityStateError(f"Another {mapping.name} with key {key!r} is already tracked")
        tracker.track(entity, mapping, EntityState.ADDED)

    def remove(self, entity: Any) -> None:
        """Stage a delete. A detached instance carrying only its key is enough to delete the row."""

        tracker = self.change_tracker
        if tracker.is_deleted(entity):
            raise InvalidEntityStateError("Entity has already been deleted")

        entry = tracker.entry_for(entity)
        if entry is None:
            mapping = self._model.for_type(type(entity))
            key = getattr(entity, mapping.key)
            if key is None:
                raise InvalidEntityStateError(f"Cannot remove a {mapping.name} without a key")
            if tracker.lookup(mapping.entity_type, key) is not None:
                raise InvalidEntityStateError(f"Another {mapping.name} with key {key!r} is already tracked")
            tracker.track(entity, mapping, EntityState.DELETED)
        elif entry.state is EntityState.ADDED:
            tracker.forget(entity)
        else:
            entry.state = EntityState.DELETED

    def commit(self) -> int:
        """Write all staged changes in one transaction and return the number of entities written.

        On failure the transaction is rolled back and tracked entities keep their pre-commit state.
        """

        tracker = self.change_tracker
        tracker.detect_changes()
        order = {mapping.entity_type: position for position, mapping in enumerate(self._model.entities)}

        def by_model_order(entry: EntityEntry) -> int:
            return order[entry.mapping.entity_type]

        entries = tracker.entries()
        added = sorted((e for e in entries if e.state is EntityState.ADDED), key=by_model_order)
        modified = sorted((e for e in entries if e.state is EntityState.MODIFIED), key=by_model_order)
        deleted = sorted(
            (e for e in entries if e.state is EntityState.DELETED), key=by_model_order, reverse=True
        )
        if not (added or modified or deleted):
            return 0

        for entry in added:
            self._check_constraints(entry.mapping, entry.entity)
        for entry in modified:
            self._check_constraints(entry.mapping, entry.entity)

        assigned_keys: list[tuple[EntityEntry, Any]] = []
        with translate_store_errors("commit"):
            with self._engine.begin() as connection:
                for entry in added:
                    key = insert_entity_graph(connection, entry.mapping, entry.entity)
                    assigned_keys.append((entry, key))
                for entry in modified:
                    self._update(connection, entry)
                for entry in deleted:
                    self._delete(connection, entry)

        for entry, key in assigned_keys:
            setattr(entry.entity, entry.mapping.key, key)
            entry.accept_changes()
            tracker.register_key(entry)
        for entry in modified:
            entry.accept_changes()
        for entry in deleted:
            tracker.forget(entry.entity, deleted=True)

        logger.info(
            "Committed unit of work: %d insert(s), %d update(s), %d delete(s)",
            len(added),
            len(modified),
            len(deleted),
        )
        return len(added) + len(modified) + len(deleted)

    def _check_constraints(self, mapping: EntityMapping, entity: Any) -> None:
        tables_and_rows = [(mapping.table, mapping.to_row(entity, include_key=False))]
        for owned in mapping.owned:
            for row in owned.to_rows(None, getattr(entity, owned.attribute)):
                row.pop(owned.owner_column)
                tables_and_rows.append((owned.table, row))

        for table, row in tables_and_rows:
            for column_name, value in row.items():
                column = table.c[column_name]
                if value is None and not column.nullable:
                    raise ConstraintViolation(f"{table.name}.{column_name} is required")
                max_length = getattr(column.type, "length", None)
                if max_length and isinstance(value, str) and len(value) > max_length:
                    raise ConstraintViolation(
                        f"{table.name}.{column_name} exceeds the maximum length of {max_length}"
                    )

    def _update(self, connection: Connection, entry: EntityEntry) -> None:
        mapping = entry.mapping
        changes = entry.changed_properties()
        if changes:
            values = {mapping.column_name(attribute): value for attribute, value in changes.items()}
            statement = update(mapping.table).where(mapping.key_column == entry.key).values(values)
            result = _execute(connection, statement)
            if result.rowcount == 0:
                raise ConcurrencyConflict(f"{mapping.name} {entry.key!r} no longer exists in the store")

        for owned in entry.changed_owned():
            _execute(connection, delete(owned.table).where(owned.owner_key_column == entry.key))
            rows = owned.to_rows(entry.key, getattr(entry.entity, owned.attribute))
            if rows:
                _execute(connection, insert(owned.table), rows)

    def _delete(self, connection: Connection, entry: EntityEntry) -> None:
        mapping = entry.mapping
        for owned in mapping.owned:
            _execute(connection, delete(owned.table).where(owned.owner_key_column == entry.key))
        result = _execute(connection, delete(mapping.table).where(mapping.key_column == entry.key))
        if result.rowcount == 0:
            raise ConcurrencyConflict(f"{mapping.name} {entry.key!r} no longer exists in the store")

    def _fetch(self, statement: Executable) -> list[Row[Any]]:
        with translate_store_errors("query"):
            with self._engine.connect() as connection:
                return list(_execute(connection, statement))

    def _fetch_scalar(self, statement: Executable) -> Any:
        with translate_store_errors("query"):
            with self._engine.connect() as connection:
                return _execute(connection, statement).scalar_one()

    def _materialize(
        self,
        mapping: EntityMapping,
        statement: Executable,
        *,
        tracking: bool,
        includes: tuple[str, ...],
    ) -> list[Any]:
        # One transaction, so a concurrent delete cannot split an owner from its owned rows.
        with translate_store_errors("query"):
            with self._engine.begin() as connection:
                rows = [row._mapping for row in _execute(connection, statement)]
                keys = [row[mapping.key_column] for row in rows]
                owned_rows = self._fetch_owned(connection, mapping, keys)

        results: list[Any] = []
        for row, key in zip(rows, keys):
            owned_values = {
                owned.attribute: owned.from_rows(owned_rows[owned.attribute].get(key, []))
                for owned in mapping.owned
            }
            if not tracking:
                results.append(mapping.from_row(row, owned_values))
                continue
            entity = self._merge_loaded(mapping, key, row, owned_values)
            if entity is not None:
                results.append(entity)

        for navigation in includes:
            self._load_navigation(mapping, navigation, results, tracking=tracking)
        return results

    def _fetch_owned(
        self, connection: Connection, mapping: EntityMapping, keys: list[Any]
    ) -> dict[str, dict[Any, list[Any]]]:
        grouped: dict[str, dict[Any, list[Any]]] = {}
        for owned in mapping.owned:
            by_owner: dict[Any, list[Any]] = defaultdict(list)
            if keys:
                statement = owned.table.select().where(owned.owner_key_column.in_(keys))
                ordering = [owned.owner_key_column]
                if owned.sequence_column is not None:
                    ordering.append(owned.table.c[owned.sequence_column])
                for row in _execute(connection, statement.order_by(*ordering)):
                    by_owner[row._mapping[owned.owner_key_column]].append(row._mapping)
            grouped[owned.attribute] = by_owner
        return grouped

    def _merge_loaded(
        self,
        mapping: EntityMapping,
        key: Any,
        row: Any,
        owned_values: dict[str, Any],
    ) -> Any | None:
        tracker = self.change_tracker
        existing = tracker.lookup(mapping.entity_type, key)
        if existing is None:
            entity = mapping.from_row(row, owned_values)
            tracker.track(entity, mapping, EntityState.UNCHANGED)
            return entity

        entry = tracker.entry_for(existing)
        entry.detect_changes()
        if entry.state is EntityState.DELETED:
            return None
        if entry.state is EntityState.UNCHANGED:
            mapping.apply_row(existing, row, owned_values)
            entry.accept_changes()
        return existing

    def _load_navigation(
        self,
        mapping: EntityMapping,
        navigation: str,
        entities: list[Any],
        *,
        tracking: bool,
    ) -> None:
        relationship = mapping.relationship(navigation)
        foreign_key = relationship.resolve_foreign_key(mapping.entity_type)
        wanted = {getattr(entity, foreign_key) for entity in entities} - {None}
        if not wanted:
            return

        principal = self._model.for_type(relationship.principal_type)
        principal_key = relationship.principal_key
        query: EntityQuery[Any] = EntityQuery(self, principal).where(
            lambda columns: getattr(columns, principal_key).in_(list(wanted))
        )
        if not tracking:
            query = query.as_no_tracking()
        by_key = {getattr(item, principal_key): item for item in query.to_list()}
        for entity in entities:
            setattr(entity, navigation, by_key.get(getattr(entity, foreign_key)))


def _execute(
    connection: Connection, statement: Executable, parameters: Any = None
) -> CursorResult[Any]:
    logger.debug("Executing SQL: %s", statement)
    if parameters is None:
        return connection.execute(statement)
    return connection.execute(statement, parameters)


def insert_entity_graph(connection: Connection, mapping: EntityMapping, entity: Any) -> Any:
    """Insert `entity` and its owned dependents; return the (possibly store-generated) key."""

    key = getattr(entity, mapping.key)
    row = mapping.to_row(entity, include_key=key is not None)
    result = _execute(connection, insert(mapping.table).values(row))
    if key is None:
        key = result.inserted_primary_key[0]

    for owned in mapping.owned:
        rows = owned.to_rows(key, getattr(entity, owned.attribute))
        if rows:
            _execute(connection, insert(owned.table), rows)
    return key
