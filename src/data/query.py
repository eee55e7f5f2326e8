"""
Composable, lazily-evaluated queries over a mapped entity set.
Composition only builds a SQLAlchemy `Select`; the store is hit when a query is materialized
through `to_list`, `first`, `single`, `count`, or iteration.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.sql.elements import ColumnElement

from src.data.mapping import AttributeColumns, EntityMapping, QueryPredicate

if TYPE_CHECKING:
    from src.data.context import MoviesContext

T = TypeVar("T")
P = TypeVar("P")

OrderKey = Callable[[AttributeColumns], ColumnElement[Any]]
Selector = Callable[[AttributeColumns], Mapping[str, ColumnElement[Any]]]


class EntityQuery(Generic[T]):
    def __init__(
        self,
        context: MoviesContext,
        mapping: EntityMapping,
        *,
        predicates: tuple[QueryPredicate, ...] = (),
        ordering: tuple[OrderKey, ...] = (),
        apply_filters: bool = True,
        tracking: bool = True,
        includes: tuple[str, ...] = (),
    ) -> None:
        self._context = context
        self._mapping = mapping
        self._predicates = predicates
        self._ordering = ordering
        self._apply_filters = apply_filters
        self._tracking = tracking
        self._includes = includes

    def _derive(self, **changes: Any) -> EntityQuery[T]:
        state: dict[str, Any] = {
            "predicates": self._predicates,
            "ordering": self._ordering,
            "apply_filters": self._apply_filters,
            "tracking": self._tracking,
            "includes": self._includes,
        }
        state.update(changes)
        return EntityQuery(self._context, self._mapping, **state)

    def where(self, predicate: QueryPredicate) -> EntityQuery[T]:
        return self._derive(predicates=self._predicates + (predicate,))

    def order_by(self, *keys: OrderKey) -> EntityQuery[T]:
        return self._derive(ordering=self._ordering + keys)

    def ignore_query_filters(self) -> EntityQuery[T]:
        """Bypass the mapping's standing filter for this query only."""

        return self._derive(apply_filters=False)

    def as_no_tracking(self) -> EntityQuery[T]:
        return self._derive(tracking=False)

    def include(self, navigation: str) -> EntityQuery[T]:
        self._mapping.relationship(navigation)
        return self._derive(includes=self._includes + (navigation,))

    def select(self, projection: Callable[..., P], selector: Selector) -> ProjectionQuery[P]:
        """Narrow the query to the selected columns; results are built with `projection(**row)`."""

        return ProjectionQuery(self, projection, selector)

    def _filtered(self, statement: Select[Any]) -> Select[Any]:
        columns = self._mapping.columns
        if self._apply_filters and self._mapping.query_filter is not None:
            statement = statement.where(self._mapping.query_filter(columns))
        for predicate in self._predicates:
            statement = statement.where(predicate(columns))
        return statement

    def _ordered(self, statement: Select[Any]) -> Select[Any]:
        columns = self._mapping.columns
        ordering = [key(columns) for key in self._ordering] or [self._mapping.key_column]
        return statement.order_by(*ordering)

    @property
    def statement(self) -> Select[Any]:
        return self._ordered(self._filtered(select(self._mapping.table)))

    def to_list(self) -> list[T]:
        return self._context._materialize(
            self._mapping,
            self.statement,
            tracking=self._tracking,
            includes=self._includes,
        )

    def first(self) -> T | None:
        rows = self._context._materialize(
            self._mapping,
            self.statement.limit(1),
            tracking=self._tracking,
            includes=self._includes,
        )
        return rows[0] if rows else None

    def single(self) -> T | None:
        rows = self._context._materialize(
            self._mapping,
            self.statement.limit(2),
            tracking=self._tracking,
            includes=self._includes,
        )
        if len(rows) > 1:
            raise ValueError(f"Query for {self._mapping.name} returned more than one row")
        return rows[0] if rows else None

    def count(self) -> int:
        inner = self._filtered(select(self._mapping.table)).subquery()
        return int(self._context._fetch_scalar(select(func.count()).select_from(inner)))

    def __iter__(self) -> Iterator[T]:
        return iter(self.to_list())


class ProjectionQuery(Generic[P]):
    """Read-only narrowed query; results are never tracked."""

    def __init__(self, source: EntityQuery[Any], projection: Callable[..., P], selector: Selector) -> None:
        self._source = source
        self._projection = projection
        self._selector = selector

    @property
    def statement(self) -> Select[Any]:
        mapping = self._source._mapping
        selected = self._selector(mapping.columns)
        statement = select(*(expression.label(name) for name, expression in selected.items()))
        statement = statement.select_from(mapping.table)
        return self._source._ordered(self._source._filtered(statement))

    def to_list(self) -> list[P]:
        rows = self._source._context._fetch(self.statement)
        return [self._projection(**row._mapping) for row in rows]

    def first(self) -> P | None:
        rows = self._source._context._fetch(self.statement.limit(1))
        return self._projection(**rows[0]._mapping) if rows else None

    def __iter__(self) -> Iterator[P]:
        return iter(self.to_list())
