"""
Shared test configuration.
It asserts expected behavior and guards against regressions in the corresponding component.
These tests are executed by `pytest` locally and in CI and should remain deterministic.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.engine import Engine

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

TEST_ENV_DEFAULTS = {
    "PROJECT_NAME": "test-project",
    "ENV": "test",
    "LOG_LEVEL": "INFO",
    "DB_HOST": "localhost",
    "DB_PORT": "5432",
    "DB_NAME": "movies_test",
    "DB_USER": "movies",
    "DB_PASSWORD": "movies_password",
    "API_HOST": "0.0.0.0",
    "API_PORT": "8000",
}

# The API module builds its app at import time, so defaults must exist before collection.
for _key, _value in TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _value)
os.environ["DATABASE_URL"] = "sqlite://"

from src.common.db import create_db_engine  # noqa: E402
from src.data.context import MoviesContext  # noqa: E402
from src.data.schema import ensure_schema  # noqa: E402


@pytest.fixture(autouse=True)
def base_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure required environment variables are present during tests."""

    for key, value in TEST_ENV_DEFAULTS.items():
        if os.getenv(key) is None:
            monkeypatch.setenv(key, value)
    monkeypatch.setenv("DATABASE_URL", "sqlite://")


@pytest.fixture
def empty_engine() -> Iterator[Engine]:
    """Fresh in-memory database with no tables."""

    engine = create_db_engine("sqlite://")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def engine(empty_engine: Engine) -> Engine:
    """In-memory database with the schema created and seeded."""

    ensure_schema(empty_engine)
    return empty_engine


@pytest.fixture
def context(engine: Engine) -> Iterator[MoviesContext]:
    with MoviesContext(engine) as movies_context:
        yield movies_context


@pytest.fixture
def executed_sql(engine: Engine) -> Iterator[list[str]]:
    """Collects every SQL statement sent to `engine` while the test runs."""

    statements: list[str] = []

    def _capture(_conn: Any, _cursor: Any, statement: str, *_: Any) -> None:
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _capture)
    try:
        yield statements
    finally:
        event.remove(engine, "before_cursor_execute", _capture)
