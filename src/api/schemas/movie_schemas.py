# This file defines request and response schemas for the movie endpoints.
# It exists so the JSON contract (camelCase keys, nested director and actors) is explicit and versioned.
# Genre is rendered without any back-reference to its movies so payloads never cycle.
# Request models ignore unknown keys, which is how identity and relationships stay out of updates.

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.data.entities import AgeRating, Movie, Person


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="ignore",
    )


class PersonV1(CamelModel):
    first_name: str
    last_name: str

    def to_entity(self) -> Person:
        return Person(first_name=self.first_name, last_name=self.last_name)


class GenreV1(CamelModel):
    id: int
    name: str


class MovieV1(CamelModel):
    id: int
    title: str | None = None
    release_date: date
    synopsis: str | None = None
    age_rating: AgeRating
    main_genre_id: int
    genre: GenreV1 | None = None
    director: PersonV1 | None = None
    actors: list[PersonV1] = Field(default_factory=list)


class MovieTitleV1(CamelModel):
    id: int
    title: str | None = None


class MovieCreateV1(CamelModel):
    """New movie; any `id` in the body is ignored because the store assigns it."""

    title: str | None = None
    release_date: date
    synopsis: str | None = None
    age_rating: AgeRating = AgeRating.ALL_AGES
    main_genre_id: int
    director: PersonV1 | None = None
    actors: list[PersonV1] = Field(default_factory=list)

    def to_entity(self) -> Movie:
        return Movie(
            title=self.title,
            release_date=self.release_date,
            synopsis=self.synopsis,
            age_rating=self.age_rating,
            main_genre_id=self.main_genre_id,
            director=self.director.to_entity() if self.director is not None else None,
            actors=[actor.to_entity() for actor in self.actors],
        )


class MovieUpdateV1(CamelModel):
    """Only these fields are copied onto the stored movie."""

    title: str | None = None
    release_date: date
    synopsis: str | None = None
