"""
Declarative mapping between the entity model and the relational schema.
Entities stay free of persistence metadata; this module alone decides table names, column types,
owned dependent tables, relationships, the standing query filter, and seed rows.
`validate_model` checks the whole configuration once at startup, before any request is served.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text
from sqlalchemy.exc import NoReferencedColumnError, NoReferencedTableError
from sqlalchemy.sql.elements import ColumnElement

from src.data.entities import AgeRating, Genre, Movie, Person
from src.data.errors import MappingError
from src.data.value_converters import Char8Date, EnumToInt

TITLE_MAX_LENGTH = 128
NAME_MAX_LENGTH = 256
VISIBLE_RELEASE_CUTOFF = date(1997, 1, 1)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


class AttributeColumns:
    """Resolves entity attribute names to table columns (`release_date` -> `Pictures.ReleaseDate`)."""

    def __init__(self, entity_type: type, table: Table, properties: Mapping[str, str]) -> None:
        self._entity_type = entity_type
        self._table = table
        self._properties = properties

    def __getattr__(self, name: str) -> Column[Any]:
        try:
            column_name = self._properties[name]
        except KeyError:
            raise AttributeError(
                f"{self._entity_type.__name__} has no mapped attribute {name!r}"
            ) from None
        return self._table.c[column_name]


QueryPredicate = Callable[[AttributeColumns], ColumnElement[bool]]


@dataclass(frozen=True, eq=False)
class OwnedMapping:
    """A dependent entity stored in its own table, keyed by the owner's identity."""

    attribute: str
    entity_type: type
    table: Table
    owner_column: str
    properties: Mapping[str, str]
    many: bool = False
    sequence_column: str | None = None

    @property
    def owner_key_column(self) -> Column[Any]:
        return self.table.c[self.owner_column]

    def _items(self, value: Any) -> list[Any]:
        if value is None:
            return []
        return list(value) if self.many else [value]

    def to_rows(self, owner_key: Any, value: Any) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for position, item in enumerate(self._items(value), start=1):
            row = {self.owner_column: owner_key}
            if self.sequence_column is not None:
                row[self.sequence_column] = position
            for attribute, column_name in self.properties.items():
                row[column_name] = getattr(item, attribute)
            rows.append(row)
        return rows

    def from_rows(self, rows: Iterable[Mapping[Any, Any]]) -> Any:
        items = [
            self.entity_type(
                **{
                    attribute: row[self.table.c[column_name]]
                    for attribute, column_name in self.properties.items()
                }
            )
            for row in rows
        ]
        if self.many:
            return items
        return items[0] if items else None

    def snapshot(self, value: Any) -> tuple[Any, ...] | None:
        values = tuple(
            tuple(getattr(item, attribute) for attribute in self.properties)
            for item in self._items(value)
        )
        if self.many:
            return values
        return values[0] if values else None


@dataclass(frozen=True, eq=False)
class RelationshipMapping:
    """Many-to-one navigation from the mapped entity to a principal entity."""

    navigation: str
    principal_type: type
    principal_key: str = "id"
    foreign_key: str | None = None

    def resolve_foreign_key(self, dependent_type: type) -> str:
        if self.foreign_key is not None:
            return self.foreign_key
        return infer_foreign_key(dependent_type, self.navigation, self.principal_type)


@dataclass(frozen=True, eq=False)
class EntityMapping:
    entity_type: type
    table: Table
    key: str
    properties: Mapping[str, str]
    owned: tuple[OwnedMapping, ...] = ()
    relationships: tuple[RelationshipMapping, ...] = ()
    query_filter: QueryPredicate | None = None
    seed: Callable[[], list[Any]] | None = None
    columns: AttributeColumns = field(init=False)

    def __post_init__(self) -> None:
        columns = AttributeColumns(self.entity_type, self.table, self.properties)
        object.__setattr__(self, "columns", columns)

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def key_column(self) -> Column[Any]:
        return self.table.c[self.properties[self.key]]

    def column_name(self, attribute: str) -> str:
        return self.properties[attribute]

    def relationship(self, navigation: str) -> RelationshipMapping:
        for relationship in self.relationships:
            if relationship.navigation == navigation:
                return relationship
        raise ValueError(f"{self.name} has no navigation named {navigation!r}")

    def scalar_values(self, entity: Any) -> dict[str, Any]:
        return {attribute: getattr(entity, attribute) for attribute in self.properties}

    def owned_snapshot(self, entity: Any) -> dict[str, Any]:
        return {
            owned.attribute: owned.snapshot(getattr(entity, owned.attribute)) for owned in self.owned
        }

    def to_row(self, entity: Any, *, include_key: bool) -> dict[str, Any]:
        return {
            column_name: getattr(entity, attribute)
            for attribute, column_name in self.properties.items()
            if include_key or attribute != self.key
        }

    def from_row(self, row: Mapping[Any, Any], owned_values: Mapping[str, Any]) -> Any:
        entity = self.entity_type()
        self.apply_row(entity, row, owned_values)
        return entity

    def apply_row(self, entity: Any, row: Mapping[Any, Any], owned_values: Mapping[str, Any]) -> None:
        for attribute, column_name in self.properties.items():
            setattr(entity, attribute, row[self.table.c[column_name]])
        for attribute, value in owned_values.items():
            setattr(entity, attribute, value)


@dataclass(frozen=True, eq=False)
class ModelMappings:
    metadata: MetaData
    entities: tuple[EntityMapping, ...]

    def for_type(self, entity_type: type) -> EntityMapping:
        for mapping in self.entities:
            if mapping.entity_type is entity_type:
                return mapping
        raise MappingError(f"No mapping configured for {entity_type.__name__}")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def infer_foreign_key(dependent_type: type, navigation: str, principal_type: type) -> str:
    """Find the field backing a navigation by naming convention.

    `<navigation>_id` wins; otherwise a single field ending in `<principal>_id`
    (so `main_genre_id` backs a `genre` navigation to `Genre`).
    """

    names = [item.name for item in fields(dependent_type)]
    exact = f"{navigation}_id"
    if exact in names:
        return exact

    suffix = f"{_snake_case(principal_type.__name__)}_id"
    candidates = [name for name in names if name.endswith(suffix)]
    if len(candidates) != 1:
        raise MappingError(
            f"Cannot infer foreign key for {dependent_type.__name__}.{navigation}: "
            f"expected exactly one field ending in {suffix!r}, found {candidates}"
        )
    return candidates[0]


def _seed_genres() -> list[Genre]:
    return [Genre(id=1, name="Fantasy")]


def _seed_movies() -> list[Movie]:
    return [
        Movie(
            id=1,
            title="Harry Potter and the Half Blood Prince",
            release_date=date(2009, 7, 15),
            synopsis="Harry waves a stick and Snape goes pew pew",
            age_rating=AgeRating.ADOLESCENT,
            main_genre_id=1,
            director=Person(first_name="David", last_name="Yates"),
            actors=[
                Person(first_name="Daniel", last_name="Radcliffe"),
                Person(first_name="Emma", last_name="Watson"),
                Person(first_name="Rupert", last_name="Grint"),
            ],
        )
    ]


def build_genre_mapping(metadata: MetaData) -> EntityMapping:
    table = Table(
        "Genres",
        metadata,
        Column("Id", Integer, primary_key=True, autoincrement=True),
        Column("Name", String(NAME_MAX_LENGTH), nullable=False),
    )
    return EntityMapping(
        entity_type=Genre,
        table=table,
        key="id",
        properties={"id": "Id", "name": "Name"},
        seed=_seed_genres,
    )


def _person_table(metadata: MetaData, name: str, *, many: bool) -> Table:
    key_columns = [
        Column("PictureId", Integer, ForeignKey("Pictures.Id"), primary_key=True, autoincrement=False)
    ]
    if many:
        key_columns.append(Column("Id", Integer, primary_key=True, autoincrement=False))
    return Table(
        name,
        metadata,
        *key_columns,
        Column("FirstName", String(NAME_MAX_LENGTH), nullable=False),
        Column("LastName", String(NAME_MAX_LENGTH), nullable=False),
    )


def build_movie_mapping(metadata: MetaData) -> EntityMapping:
    table = Table(
        "Pictures",
        metadata,
        Column("Id", Integer, primary_key=True, autoincrement=True),
        Column("Title", String(TITLE_MAX_LENGTH), nullable=False),
        Column("ReleaseDate", Char8Date(), nullable=False),
        Column("Plot", Text, nullable=True),
        Column("AgeRating", EnumToInt(AgeRating), nullable=False),
        Column("MainGenreId", Integer, ForeignKey("Genres.Id"), nullable=False),
    )
    person_properties = {"first_name": "FirstName", "last_name": "LastName"}

    return EntityMapping(
        entity_type=Movie,
        table=table,
        key="id",
        properties={
            "id": "Id",
            "title": "Title",
            "release_date": "ReleaseDate",
            "synopsis": "Plot",
            "age_rating": "AgeRating",
            "main_genre_id": "MainGenreId",
        },
        owned=(
            OwnedMapping(
                attribute="director",
                entity_type=Person,
                table=_person_table(metadata, "Picture_Directors", many=False),
                owner_column="PictureId",
                properties=person_properties,
            ),
            OwnedMapping(
                attribute="actors",
                entity_type=Person,
                table=_person_table(metadata, "Picture_Actors", many=True),
                owner_column="PictureId",
                properties=person_properties,
                many=True,
                sequence_column="Id",
            ),
        ),
        relationships=(
            RelationshipMapping(
                navigation="genre",
                principal_type=Genre,
                principal_key="id",
                foreign_key="main_genre_id",
            ),
        ),
        query_filter=lambda movie: movie.release_date >= VISIBLE_RELEASE_CUTOFF,
        seed=_seed_movies,
    )


def build_model() -> ModelMappings:
    metadata = MetaData()
    # Principals first: inserts and seeding follow this order, deletes run in reverse.
    return ModelMappings(
        metadata=metadata,
        entities=(build_genre_mapping(metadata), build_movie_mapping(metadata)),
    )


def _field_names(entity_type: type) -> set[str]:
    return {item.name for item in fields(entity_type)}


def _references(column: Column[Any], target: Column[Any]) -> bool:
    try:
        return any(foreign_key.column is target for foreign_key in column.foreign_keys)
    except (NoReferencedTableError, NoReferencedColumnError) as exc:
        raise MappingError(
            f"Unresolvable foreign key on {column.table.name}.{column.name}: {exc}"
        ) from exc


def _validate_properties(label: str, entity_type: type, table: Table, properties: Mapping[str, str]) -> None:
    entity_fields = _field_names(entity_type)
    for attribute, column_name in properties.items():
        if attribute not in entity_fields:
            raise MappingError(f"{label}: {entity_type.__name__} has no field {attribute!r}")
        if column_name not in table.c:
            raise MappingError(f"{label}: table {table.name!r} has no column {column_name!r}")


def validate_model(model: ModelMappings) -> None:
    """Raise `MappingError` when any mapping disagrees with the entities or table metadata."""

    for mapping in model.entities:
        _validate_properties(mapping.name, mapping.entity_type, mapping.table, mapping.properties)
        entity_fields = _field_names(mapping.entity_type)

        if mapping.key not in mapping.properties:
            raise MappingError(f"{mapping.name}: key {mapping.key!r} is not a mapped property")
        primary_key = list(mapping.table.primary_key.columns)
        if len(primary_key) != 1 or primary_key[0] is not mapping.key_column:
            raise MappingError(
                f"{mapping.name}: key column must be the sole primary key of {mapping.table.name!r}"
            )

        for owned in mapping.owned:
            label = f"{mapping.name}.{owned.attribute}"
            if owned.attribute not in entity_fields:
                raise MappingError(f"{label}: owning entity has no such field")
            _validate_properties(label, owned.entity_type, owned.table, owned.properties)
            if owned.owner_column not in owned.table.c:
                raise MappingError(
                    f"{label}: table {owned.table.name!r} has no column {owned.owner_column!r}"
                )
            if not _references(owned.owner_key_column, mapping.key_column):
                raise MappingError(
                    f"{label}: {owned.table.name}.{owned.owner_column} does not reference the owner key"
                )
            if owned.sequence_column is not None and owned.sequence_column not in owned.table.c:
                raise MappingError(
                    f"{label}: table {owned.table.name!r} has no column {owned.sequence_column!r}"
                )

        for relationship in mapping.relationships:
            label = f"{mapping.name}.{relationship.navigation}"
            if relationship.navigation not in entity_fields:
                raise MappingError(f"{label}: entity has no such navigation field")
            principal = model.for_type(relationship.principal_type)
            if relationship.principal_key != principal.key:
                raise MappingError(
                    f"{label}: principal key {relationship.principal_key!r} is not {principal.name}'s key"
                )
            foreign_key = relationship.resolve_foreign_key(mapping.entity_type)
            if foreign_key not in mapping.properties:
                raise MappingError(f"{label}: foreign key {foreign_key!r} is not a mapped property")
            foreign_key_column = mapping.table.c[mapping.column_name(foreign_key)]
            if not _references(foreign_key_column, principal.key_column):
                raise MappingError(
                    f"{label}: column {foreign_key_column.name!r} does not reference "
                    f"{principal.table.name}.{principal.key_column.name}"
                )


MOVIES_MODEL = build_model()
