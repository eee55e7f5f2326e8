# This file implements the movie operations behind the HTTP endpoints.
# It exists so routers stay thin: each method is one unit of work on a request-scoped persistence context.
# Lookups return None for a missing movie and let the router decide how to surface it.
# Store failures propagate as persistence errors and are mapped to HTTP responses centrally.

from __future__ import annotations

import logging
from datetime import date

from src.data.context import MoviesContext
from src.data.entities import Movie, MovieTitle

logger = logging.getLogger(__name__)


class MovieService:
    """CRUD operations over the movie entity set."""

    def __init__(self, *, context: MoviesContext) -> None:
        self.context = context

    def list_movies(self) -> list[Movie]:
        return self.context.movies.query().include("genre").to_list()

    def list_titles_by_year(self, year: int) -> list[MovieTitle]:
        """Id and title of every visible movie released in `year`; no other column is read."""

        first_day = date(year, 1, 1)
        last_day = date(year, 12, 31)
        query = (
            self.context.movies.query()
            .where(lambda movie: movie.release_date >= first_day)
            .where(lambda movie: movie.release_date <= last_day)
        )
        return query.select(MovieTitle, lambda movie: {"id": movie.id, "title": movie.title}).to_list()

    def get_movie(self, movie_id: int) -> Movie | None:
        return self._load(movie_id)

    def create_movie(self, movie: Movie) -> Movie:
        self.context.movies.add(movie)
        self.context.commit()
        movie.genre = self.context.genres.find(movie.main_genre_id)
        logger.info("Created movie %s", movie.id)
        return movie

    def update_movie(
        self,
        movie_id: int,
        *,
        title: str | None,
        release_date: date,
        synopsis: str | None,
    ) -> Movie | None:
        movie = self._load(movie_id)
        if movie is None:
            return None

        movie.title = title
        movie.release_date = release_date
        movie.synopsis = synopsis
        self.context.commit()
        logger.info("Updated movie %s", movie_id)
        return movie

    def delete_movie(self, movie_id: int) -> bool:
        movie = self.context.movies.find(movie_id)
        if movie is None:
            return False

        self.context.movies.remove(movie)
        self.context.commit()
        logger.info("Deleted movie %s", movie_id)
        return True

    def _load(self, movie_id: int) -> Movie | None:
        return (
            self.context.movies.query()
            .include("genre")
            .where(lambda movie: movie.id == movie_id)
            .first()
        )
