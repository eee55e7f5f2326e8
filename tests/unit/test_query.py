"""
Unit tests for composable entity queries.
It asserts expected behavior and guards against regressions in the corresponding component.
These tests are executed by `pytest` locally and in CI and should remain deterministic.
"""

from datetime import date

import pytest
from sqlalchemy.engine import Engine

from src.data.context import EntityState, MoviesContext
from src.data.entities import Genre, Movie, MovieTitle


def _store(engine: Engine, *movies: Movie) -> None:
    with MoviesContext(engine) as context:
        for movie in movies:
            context.movies.add(movie)
        context.commit()


def _movie(title: str, released: date) -> Movie:
    return Movie(title=title, release_date=released, main_genre_id=1)


def test_composition_is_lazy(context: MoviesContext, executed_sql: list[str]) -> None:
    query = context.movies.query().where(lambda movie: movie.title == "Anything").order_by(
        lambda movie: movie.title
    )
    assert executed_sql == []

    assert query.to_list() == []
    assert executed_sql


def test_default_reads_hide_releases_before_1997(engine: Engine, context: MoviesContext) -> None:
    _store(engine, _movie("Toy Story", date(1995, 11, 22)), _movie("Cars", date(2006, 6, 9)))

    visible = [movie.title for movie in context.movies.query()]
    everything = [movie.title for movie in context.movies.query().ignore_query_filters()]

    assert visible == ["Harry Potter and the Half Blood Prince", "Cars"]
    assert everything == ["Harry Potter and the Half Blood Prince", "Toy Story", "Cars"]


def test_filter_boundary_is_inclusive(engine: Engine, context: MoviesContext) -> None:
    _store(engine, _movie("New Year", date(1997, 1, 1)), _movie("New Year's Eve", date(1996, 12, 31)))

    titles = [movie.title for movie in context.movies.query()]

    assert "New Year" in titles
    assert "New Year's Eve" not in titles


def test_count_respects_filter(engine: Engine, context: MoviesContext) -> None:
    _store(engine, _movie("Old", date(1980, 1, 1)))

    assert context.movies.query().count() == 1
    assert context.movies.query().ignore_query_filters().count() == 2


def test_order_by_custom_key(engine: Engine, context: MoviesContext) -> None:
    _store(engine, _movie("Amelie", date(2001, 4, 25)))

    titles = [movie.title for movie in context.movies.query().order_by(lambda movie: movie.title)]

    assert titles == ["Amelie", "Harry Potter and the Half Blood Prince"]


def test_first_and_single(engine: Engine, context: MoviesContext) -> None:
    _store(engine, _movie("Twin", date(2001, 1, 1)), _movie("Twin", date(2002, 1, 1)))
    twins = context.movies.query().where(lambda movie: movie.title == "Twin")

    assert twins.first().release_date == date(2001, 1, 1)
    assert context.movies.query().where(lambda movie: movie.title == "Missing").first() is None
    assert context.movies.query().where(lambda movie: movie.id == 1).single().id == 1
    with pytest.raises(ValueError, match="more than one"):
        twins.single()


def test_tracked_queries_share_instances(context: MoviesContext) -> None:
    first = context.movies.query().first()
    second = context.movies.query().where(lambda movie: movie.id == 1).first()

    assert first is second
    assert context.entry_state(first) is EntityState.UNCHANGED


def test_no_tracking_returns_detached_copies(context: MoviesContext) -> None:
    untracked = context.movies.query().as_no_tracking().first()
    tracked = context.movies.query().first()

    assert untracked is not tracked
    assert context.entry_state(untracked) is EntityState.DETACHED


def test_owned_dependents_load_with_owner(context: MoviesContext) -> None:
    movie = context.movies.query().first()

    assert movie.director.first_name == "David"
    assert [actor.first_name for actor in movie.actors] == ["Daniel", "Emma", "Rupert"]


def test_include_loads_genre_navigation(context: MoviesContext) -> None:
    without = context.movies.query().as_no_tracking().first()
    with_genre = context.movies.query().include("genre").first()

    assert without.genre is None
    assert isinstance(with_genre.genre, Genre)
    assert with_genre.genre.name == "Fantasy"
    assert with_genre.genre is context.genres.find(1)


def test_include_rejects_unknown_navigation(context: MoviesContext) -> None:
    with pytest.raises(ValueError, match="actors"):
        context.movies.query().include("actors")


def test_projection_selects_only_requested_columns(context: MoviesContext, executed_sql: list[str]) -> None:
    titles = (
        context.movies.query()
        .select(MovieTitle, lambda movie: {"id": movie.id, "title": movie.title})
        .to_list()
    )

    assert titles == [MovieTitle(id=1, title="Harry Potter and the Half Blood Prince")]
    assert len(executed_sql) == 1
    selected = executed_sql[0].split("FROM")[0]
    assert "Plot" not in selected
    assert "ReleaseDate" not in selected
    assert context.change_tracker.entries() == []


def test_projection_first(context: MoviesContext) -> None:
    projection = context.movies.query().select(
        MovieTitle, lambda movie: {"id": movie.id, "title": movie.title}
    )
    assert projection.first() == MovieTitle(id=1, title="Harry Potter and the Half Blood Prince")


def test_movies_of_genre_is_a_query(engine: Engine, context: MoviesContext) -> None:
    with MoviesContext(engine) as other:
        other.genres.add(Genre(name="Documentary"))
        other.commit()
    documentary = context.genres.query().where(lambda genre: genre.name == "Documentary").single()
    _store(engine, Movie(title="Planet Earth", release_date=date(2006, 3, 5), main_genre_id=documentary.id))

    fantasy = context.genres.find(1)

    assert [movie.id for movie in context.movies_of_genre(fantasy)] == [1]
    assert [movie.title for movie in context.movies_of_genre(documentary)] == ["Planet Earth"]
