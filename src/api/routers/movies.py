# This file defines the movie CRUD endpoints.
# It exists to translate HTTP verbs into movie service calls and service results into response models.
# A missing movie is surfaced as a 404 error payload rather than an exception from the data layer.
# The by-year route is declared before the id route so its literal segment is matched first.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, Response, status

from src.api.dependencies import get_movie_service
from src.api.error_handlers import APIError
from src.api.schemas.common import ErrorResponse
from src.api.schemas.movie_schemas import MovieCreateV1, MovieTitleV1, MovieUpdateV1, MovieV1
from src.api.services.movie_service import MovieService

router = APIRouter(prefix="/movies", tags=["movies"])
MovieServiceDep = Annotated[MovieService, Depends(get_movie_service)]

_NOT_FOUND_RESPONSE = {404: {"model": ErrorResponse, "description": "Movie not found."}}

# Ids the INTEGER key column can hold; anything else cannot name a stored movie.
_STORE_ID_RANGE = range(-(2**31), 2**31)


def _not_found(movie_id: int) -> APIError:
    return APIError(
        status_code=404,
        error_code="MOVIE_NOT_FOUND",
        message=f"Movie {movie_id} was not found.",
        details={"id": movie_id},
    )


@router.get("", response_model=list[MovieV1])
def list_movies(service: MovieServiceDep) -> list[MovieV1]:
    return [MovieV1.model_validate(movie) for movie in service.list_movies()]


@router.get("/by-year/{year}", response_model=list[MovieTitleV1])
def list_movie_titles_by_year(
    service: MovieServiceDep,
    year: int = Path(ge=1, le=9999),
) -> list[MovieTitleV1]:
    return [MovieTitleV1.model_validate(item) for item in service.list_titles_by_year(year)]


@router.get("/{movie_id}", response_model=MovieV1, name="get_movie", responses=_NOT_FOUND_RESPONSE)
def get_movie(movie_id: int, service: MovieServiceDep) -> MovieV1:
    movie = service.get_movie(movie_id) if movie_id in _STORE_ID_RANGE else None
    if movie is None:
        raise _not_found(movie_id)
    return MovieV1.model_validate(movie)


@router.post("", response_model=MovieV1, status_code=status.HTTP_201_CREATED)
def create_movie(
    payload: MovieCreateV1,
    request: Request,
    response: Response,
    service: MovieServiceDep,
) -> MovieV1:
    movie = service.create_movie(payload.to_entity())
    response.headers["Location"] = str(request.url_for("get_movie", movie_id=str(movie.id)))
    return MovieV1.model_validate(movie)


@router.put("/{movie_id}", response_model=MovieV1, responses=_NOT_FOUND_RESPONSE)
def update_movie(movie_id: int, payload: MovieUpdateV1, service: MovieServiceDep) -> MovieV1:
    if movie_id not in _STORE_ID_RANGE:
        raise _not_found(movie_id)
    movie = service.update_movie(
        movie_id,
        title=payload.title,
        release_date=payload.release_date,
        synopsis=payload.synopsis,
    )
    if movie is None:
        raise _not_found(movie_id)
    return MovieV1.model_validate(movie)


@router.delete("/{movie_id}", responses=_NOT_FOUND_RESPONSE)
def delete_movie(movie_id: int, service: MovieServiceDep) -> Response:
    if movie_id not in _STORE_ID_RANGE or not service.delete_movie(movie_id):
        raise _not_found(movie_id)
    return Response(status_code=status.HTTP_200_OK)
