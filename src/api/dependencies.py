# This file provides dependency factories for FastAPI routes and middleware.
# It exists so the database client is created once and shared through dependency injection.
# Every request gets its own persistence context, closed when the response is done.
# The setup keeps routers thin and makes endpoint tests easy to override.

from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.api.api_config import ApiConfig, get_api_config
from src.api.db_access import DatabaseClient
from src.api.services.movie_service import MovieService
from src.data.context import MoviesContext


@lru_cache(maxsize=1)
def get_database_client() -> DatabaseClient:
    config = get_api_config()
    return DatabaseClient(database_url=config.database_url)


def get_movies_context(
    db: Annotated[DatabaseClient, Depends(get_database_client)],
) -> Iterator[MoviesContext]:
    context = db.create_context()
    try:
        yield context
    finally:
        context.close()


def get_movie_service(
    context: Annotated[MoviesContext, Depends(get_movies_context)],
) -> MovieService:
    return MovieService(context=context)


def get_config() -> ApiConfig:
    return get_api_config()
