"""
Entity model for the Movies database.
These are plain records with no persistence metadata; table and column rules live in `src.data.mapping`.
Entities compare by identity so the change tracker can key on instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum


class AgeRating(IntEnum):
    ALL_AGES = 0
    ELEMENTARY_SCHOOL = 1
    TEEN = 2
    ADOLESCENT = 3
    ADULT = 4


@dataclass(eq=False)
class Person:
    """Director or actor. Owned by a Movie and never addressable on its own."""

    first_name: str = ""
    last_name: str = ""


@dataclass(eq=False)
class Genre:
    id: int | None = None
    name: str = ""


@dataclass(eq=False)
class Movie:
    id: int | None = None
    title: str | None = None
    release_date: date | None = None
    synopsis: str | None = None
    age_rating: AgeRating = AgeRating.ALL_AGES
    main_genre_id: int | None = None
    genre: Genre | None = None
    director: Person | None = None
    actors: list[Person] = field(default_factory=list)


@dataclass(frozen=True)
class MovieTitle:
    """Narrowed read-only projection of a Movie."""

    id: int
    title: str | None
