import os
from collections.abc import Iterator
from datetime import date

import pytest
from sqlalchemy.engine import Engine

from src.common.db import create_db_engine
from src.common.db import test_connection as db_test_connection
from src.data.context import MoviesContext
from src.data.entities import Movie
from src.data.schema import ensure_schema

if os.getenv("RUN_DB_INTEGRATION") != "1":
    pytest.skip("Set RUN_DB_INTEGRATION=1 to run database integration tests", allow_module_level=True)


@pytest.fixture
def postgres_engine() -> Iterator[Engine]:
    database_url = os.getenv("INTEGRATION_DATABASE_URL")
    if not database_url:
        pytest.skip("INTEGRATION_DATABASE_URL is not set")
    engine = create_db_engine(database_url)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.mark.integration
def test_db_connection_optional(postgres_engine: Engine) -> None:
    if not db_test_connection(postgres_engine):
        pytest.skip("Postgres unavailable in local test environment")
    assert db_test_connection(postgres_engine) is True


@pytest.mark.integration
def test_seeded_database_accepts_new_movies(postgres_engine: Engine) -> None:
    if not db_test_connection(postgres_engine):
        pytest.skip("Postgres unavailable in local test environment")
    ensure_schema(postgres_engine)

    movie = Movie(title="Integration Check", release_date=date(2020, 1, 1), main_genre_id=1)
    with MoviesContext(postgres_engine) as context:
        assert context.movies.find(1) is not None
        context.movies.add(movie)
        context.commit()
        assert movie.id is not None and movie.id > 1
        context.movies.remove(movie)
        context.commit()
