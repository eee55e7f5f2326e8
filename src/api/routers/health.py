# This file defines liveness, readiness, and version endpoints for API operations.
# It exists so orchestration and monitoring systems can verify service health quickly.
# The readiness check confirms database connectivity and that the movie tables are present.

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.api.api_config import ApiConfig
from src.api.db_access import DatabaseClient
from src.api.dependencies import get_config, get_database_client
from src.api.schemas.health_schemas import HealthResponse, ReadinessResponse, VersionResponse
from src.data.entities import Genre, Movie
from src.data.mapping import MOVIES_MODEL

router = APIRouter(tags=["health"])
ConfigDep = Annotated[ApiConfig, Depends(get_config)]
DBDep = Annotated[DatabaseClient, Depends(get_database_client)]

MOVIES_TABLE = MOVIES_MODEL.for_type(Movie).table.name
GENRES_TABLE = MOVIES_MODEL.for_type(Genre).table.name


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _git_commit() -> str | None:
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            check=True,
            capture_output=True,
            text=True,
        )
        value = completed.stdout.strip()
        return value or None
    except (OSError, subprocess.SubprocessError):
        return None


@router.get("/health", response_model=HealthResponse)
def health(
    request: Request,
    config: ConfigDep,
) -> dict[str, object]:
    return {
        "request_id": request.state.request_id,
        "status": "ok",
        "environment": config.environment,
        "service_name": config.api_name,
        "timestamp": _utc_now(),
    }


@router.get("/ready", response_model=ReadinessResponse)
def ready(
    request: Request,
    db: DBDep,
) -> dict[str, object]:
    db_connected = db.can_connect()
    movies_table_ready = db_connected and db.table_exists(MOVIES_TABLE)
    genres_table_ready = db_connected and db.table_exists(GENRES_TABLE)
    is_ready = db_connected and movies_table_ready and genres_table_ready

    return {
        "request_id": request.state.request_id,
        "db_connected": db_connected,
        "movies_table_ready": movies_table_ready,
        "genres_table_ready": genres_table_ready,
        "ready": is_ready,
        "database": "reachable" if db_connected else "unreachable",
        "timestamp": _utc_now(),
    }


@router.get("/version", response_model=VersionResponse)
def version(
    request: Request,
    config: ConfigDep,
) -> dict[str, object]:
    return {
        "request_id": request.state.request_id,
        "app_version": config.app_version,
        "git_commit": _git_commit(),
        "project": config.api_name,
        "version": config.app_version,
        "timestamp": _utc_now(),
    }
