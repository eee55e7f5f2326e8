"""
Persistence error taxonomy.
Store-level failures are translated into these types so callers never depend on driver exceptions.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, StatementError


class PersistenceError(Exception):
    """Base class for every data-access failure."""


class FormatError(PersistenceError, ValueError):
    """A stored value cannot be decoded into its application type."""


class ConstraintViolation(PersistenceError):
    """The store (or a mapped column constraint) rejected an insert or update."""


class ConcurrencyConflict(PersistenceError):
    """An update or delete affected no rows because the row changed or vanished."""


class ConnectivityError(PersistenceError):
    """The store could not be reached."""


class InvalidEntityStateError(PersistenceError):
    """An operation was attempted on an entity in a state that forbids it."""


class MappingError(PersistenceError):
    """Mapping configuration is inconsistent with the entity model or table metadata."""


class SchemaMismatchError(MappingError):
    """An existing database schema does not match the configured mapping."""


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    """Re-raise driver-level failures from `action` as persistence errors."""

    try:
        yield
    except IntegrityError as exc:
        raise ConstraintViolation(f"{action} rejected by the store: {exc.orig}") from exc
    except (OperationalError, InterfaceError) as exc:
        raise ConnectivityError(f"{action} failed, store unreachable: {exc.orig}") from exc
    except StatementError as exc:
        if isinstance(exc.orig, FormatError):
            raise exc.orig from exc
        raise
