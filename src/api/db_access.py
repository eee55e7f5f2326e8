# This file wraps the database engine shared by every request the API serves.
# It exists to keep engine construction, schema bootstrap, and connectivity probes out of router code.
# Each request gets its own short-lived persistence context built from the shared engine.
# Keeping this layer small makes store behavior easier to audit and troubleshoot.

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.common.db import create_db_engine, test_connection
from src.data.context import MoviesContext
from src.data.mapping import MOVIES_MODEL, ModelMappings
from src.data.schema import ensure_schema


class DatabaseClient:
    """Owns the engine and hands out persistence contexts."""

    def __init__(self, *, database_url: str, model: ModelMappings = MOVIES_MODEL) -> None:
        self._engine: Engine = create_db_engine(database_url)
        self._model = model

    @property
    def engine(self) -> Engine:
        return self._engine

    def can_connect(self) -> bool:
        return test_connection(self._engine)

    def table_exists(self, table_name: str) -> bool:
        try:
            return inspect(self._engine).has_table(table_name)
        except SQLAlchemyError:
            return False

    def ensure_schema(self) -> bool:
        return ensure_schema(self._engine, self._model)

    def create_context(self) -> MoviesContext:
        return MoviesContext(self._engine, self._model)

    def dispose(self) -> None:
        self._engine.dispose()
