"""
Schema bootstrap for the Movies database.
On the first run the mapped tables are created and seeded in one transaction. On later runs the
existing schema is compared with the mapping, and any conflict aborts startup.
"""

from __future__ import annotations

import logging

from sqlalchemy import Table, inspect, text
from sqlalchemy.engine import Connection, Engine, Inspector

from src.data.context import insert_entity_graph
from src.data.errors import SchemaMismatchError, translate_store_errors
from src.data.mapping import MOVIES_MODEL, ModelMappings, validate_model

logger = logging.getLogger(__name__)


def ensure_schema(engine: Engine, model: ModelMappings = MOVIES_MODEL) -> bool:
    """Create and seed the schema if none of its tables exist; otherwise verify it.

    Returns True when the schema was created by this call.
    """

    validate_model(model)
    expected = list(model.metadata.sorted_tables)

    with translate_store_errors("schema bootstrap"):
        inspector = inspect(engine)
        existing = set(inspector.get_table_names())
        if not any(table.name in existing for table in expected):
            with engine.begin() as connection:
                model.metadata.create_all(connection)
                seed_model(connection, model)
            logger.info("Created and seeded schema: %s", ", ".join(t.name for t in expected))
            return True

        verify_schema(inspector, model)
    logger.info("Existing schema matches the configured mapping")
    return False


def verify_schema(inspector: Inspector, model: ModelMappings) -> None:
    existing = set(inspector.get_table_names())
    for table in model.metadata.sorted_tables:
        if table.name not in existing:
            raise SchemaMismatchError(f"Table {table.name!r} is missing from the database")

        stored_columns = {column["name"] for column in inspector.get_columns(table.name)}
        missing = [column.name for column in table.columns if column.name not in stored_columns]
        if missing:
            raise SchemaMismatchError(f"Table {table.name!r} is missing column(s): {', '.join(missing)}")

        stored_keys = {
            (
                tuple(foreign_key["constrained_columns"]),
                foreign_key["referred_table"],
                tuple(foreign_key["referred_columns"]),
            )
            for foreign_key in inspector.get_foreign_keys(table.name)
        }
        for constraint in table.foreign_key_constraints:
            wanted = (
                tuple(constraint.column_keys),
                constraint.referred_table.name,
                tuple(element.column.name for element in constraint.elements),
            )
            if wanted not in stored_keys:
                raise SchemaMismatchError(
                    f"Foreign key {table.name}{list(wanted[0])} -> {wanted[1]}{list(wanted[2])} "
                    "cannot be resolved against the database"
                )


def seed_model(connection: Connection, model: ModelMappings) -> None:
    """Insert every mapping's seed entities, owned dependents included."""

    for mapping in model.entities:
        if mapping.seed is None:
            continue
        entities = mapping.seed()
        for entity in entities:
            insert_entity_graph(connection, mapping, entity)
        if entities:
            _resync_identity(connection, mapping.table)
        logger.info("Seeded %d %s row(s)", len(entities), mapping.name)


def _resync_identity(connection: Connection, table: Table) -> None:
    # Explicit keys do not advance PostgreSQL serial sequences.
    if connection.dialect.name != "postgresql":
        return
    preparer = connection.dialect.identifier_preparer
    key_column = list(table.primary_key.columns)[0]
    quoted_table = preparer.format_table(table)
    quoted_column = preparer.quote(key_column.name)
    connection.execute(
        text(
            f"SELECT setval(pg_get_serial_sequence(:table_name, :column_name), "
            f"(SELECT COALESCE(MAX({quoted_column}), 1) FROM {quoted_table}))"
        ),
        {"table_name": quoted_table, "column_name": key_column.name},
    )
