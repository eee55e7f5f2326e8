# This file provides shared helpers for API endpoint tests.
# It exists so tests can run against a fresh seeded in-memory database or a fake client.
# The helpers build consistent config objects and scoped TestClient contexts.
# Centralized test wiring keeps API tests small and focused on behavior.

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from typing import Any

from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from src.api.api_config import ApiConfig, get_api_config
from src.api.app import app
from src.api.dependencies import get_config, get_database_client, get_movie_service
from src.data.context import MoviesContext
from src.data.entities import AgeRating, Movie, Person


def build_test_config() -> ApiConfig:
    """Create deterministic API config for tests."""

    return ApiConfig(
        api_name="Test Movies API",
        host="0.0.0.0",
        port=8000,
        environment="test",
        database_url="sqlite://",
        enable_request_logging=False,
        allowed_origins=[],
        app_version="0.1.0",
    )


class FakeDBClient:
    """Simple fake DB dependency for health/readiness endpoint tests."""

    def __init__(self, *, connected: bool = True, existing_tables: set[str] | None = None) -> None:
        self._connected = connected
        self._tables = existing_tables if existing_tables is not None else {"Pictures", "Genres"}

    def can_connect(self) -> bool:
        return self._connected

    def table_exists(self, table_name: str) -> bool:
        return self._connected and table_name in self._tables


def _reset_cached_clients() -> None:
    if get_database_client.cache_info().currsize:
        get_database_client().dispose()
    get_database_client.cache_clear()
    get_api_config.cache_clear()


@contextmanager
def api_test_client(
    *,
    config: ApiConfig | None = None,
    db_client: Any | None = None,
    movie_service: Any | None = None,
    raise_server_exceptions: bool = True,
) -> Iterator[TestClient]:
    """Yield a TestClient backed by a fresh seeded database, with scoped dependency overrides."""

    resolved_config = config or build_test_config()
    _reset_cached_clients()

    app.dependency_overrides[get_config] = lambda: resolved_config
    if db_client is not None:
        app.dependency_overrides[get_database_client] = lambda: db_client
    if movie_service is not None:
        app.dependency_overrides[get_movie_service] = lambda: movie_service

    try:
        with TestClient(app, raise_server_exceptions=raise_server_exceptions) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        _reset_cached_clients()


def app_engine() -> Engine:
    """Engine of the database the running test client is serving."""

    return get_database_client().engine


def store_movie(engine: Engine, **overrides: Any) -> Movie:
    """Insert a movie directly through a persistence context and return it with its id."""

    values: dict[str, Any] = {
        "title": "Spirited Away",
        "release_date": date(2001, 7, 20),
        "synopsis": "A girl works in a bathhouse for spirits.",
        "age_rating": AgeRating.ALL_AGES,
        "main_genre_id": 1,
        "director": Person(first_name="Hayao", last_name="Miyazaki"),
        "actors": [Person(first_name="Rumi", last_name="Hiiragi")],
    }
    values.update(overrides)
    movie = Movie(**values)
    with MoviesContext(engine) as context:
        context.movies.add(movie)
        context.commit()
    return movie
