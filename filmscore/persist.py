import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from .database import Database
from .models import Movie, Score
from .schemas import ScorePayload, SourceScore
from .scoring import WEIGHTED_SOURCES

logger = logging.getLogger(__name__)

# Bump when weights or the scoring formula change; ranked lists only read current rows.
CURRENT_SCORE_VERSION = 2
# Backfilled rows come from a cache that may be older than the store.
BACKFILL_TIMESTAMP = datetime(1970, 1, 1, tzinfo=timezone.utc)

MIN_YEAR = 1888
MAX_YEAR = 2100


def parse_year(year: str | int | None) -> int | None:
    if year is None or year == "":
        return None
    try:
        value = int(str(year).strip())
    except ValueError:
        return None
    if value < MIN_YEAR or value > MAX_YEAR:
        return None
    return value


def payload_to_movie_row(payload: ScorePayload, last_fetched_at: datetime) -> dict[str, Any]:
    movie = payload.movie
    overall = payload.overall
    weighted = [s for s in payload.sources if s.source in WEIGHTED_SOURCES and s.normalized is not None]
    return {
        "imdb_id": movie.imdb_id,
        "tmdb_id": movie.tmdb_id,
        "title": movie.title,
        "year": parse_year(movie.year),
        "poster": movie.poster,
        "overview": movie.overview,
        "runtime": movie.runtime,
        "rating": movie.rating,
        "genres": movie.genres,
        "director": movie.director,
        "directors": movie.directors,
        "writers": movie.writers,
        "cinematographer": movie.cinematographer,
        "composer": movie.composer,
        "cast_members": movie.cast,
        "overall_score": overall.score if overall else None,
        "coverage": overall.coverage if overall else None,
        "disagreement": overall.disagreement if overall else None,
        "sources_count": len(weighted),
        "is_complete": len(weighted) == len(WEIGHTED_SOURCES),
        "score_version": CURRENT_SCORE_VERSION,
        "last_fetched_at": last_fetched_at,
    }


def source_to_score_row(imdb_id: str, score: SourceScore, updated_at: datetime) -> dict[str, Any]:
    return {
        "imdb_id": imdb_id,
        "source": score.source,
        "label": score.label,
        "normalized": score.normalized,
        "raw_value": score.raw.value if score.raw else None,
        "raw_scale": score.raw.scale if score.raw else None,
        "count": score.count,
        "url": score.url,
        "error": score.error,
        "from_fallback": score.from_fallback,
        "badge": score.badge,
        "updated_at": updated_at,
    }


def _insert(db: Database, table):
    if db.dialect_name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


async def persist_scores(db: Database, payload: ScorePayload, *, backfill: bool = False) -> bool:
    """Write a payload to Postgres. Returns False when the write failed.

    Live writes replace the movie row and its whole score set in one
    transaction. Backfill writes only fill gaps and stamp the epoch, so
    existing rows always win over a possibly stale cache hit.
    """
    imdb_id = payload.movie.imdb_id
    persisted_at = BACKFILL_TIMESTAMP if backfill else datetime.now(timezone.utc)
    movie_row = payload_to_movie_row(payload, persisted_at)
    score_rows = [source_to_score_row(imdb_id, score, persisted_at) for score in payload.sources]

    try:
        async with db.session() as session:
            async with session.begin():
                if backfill:
                    await session.execute(
                        _insert(db, Movie).values(movie_row).on_conflict_do_nothing(index_elements=["imdb_id"])
                    )
                    if score_rows:
                        await session.execute(
                            _insert(db, Score)
                            .values(score_rows)
                            .on_conflict_do_nothing(index_elements=["imdb_id", "source"])
                        )
                else:
                    stmt = _insert(db, Movie).values(movie_row)
                    # created_at stays as first written.
                    updates = {key: stmt.excluded[key] for key in movie_row if key != "imdb_id"}
                    await session.execute(stmt.on_conflict_do_update(index_elements=["imdb_id"], set_=updates))
                    # Delete-then-insert drops rows for sources that vanished since the last run.
                    await session.execute(delete(Score).where(Score.imdb_id == imdb_id))
                    if score_rows:
                        await session.execute(_insert(db, Score).values(score_rows))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("db_persist_failed", extra={"imdb_id": imdb_id, "backfill": backfill, "error": str(exc)})
        return False

    logger.info(
        "db_persisted",
        extra={
            "imdb_id": imdb_id,
            "sources_count": movie_row["sources_count"],
            "is_complete": movie_row["is_complete"],
            "backfill": backfill,
        },
    )
    return True


async def get_movie(db: Database, imdb_id: str) -> Movie | None:
    async with db.session() as session:
        result = await session.execute(
            select(Movie).where(Movie.imdb_id == imdb_id).options(selectinload(Movie.scores))
        )
        return result.scalar_one_or_none()


async def list_stored_movies(db: Database) -> list[tuple[str, int | None, str]]:
    """``(imdb_id, tmdb_id, title)`` for every stored movie, oldest fetch first."""
    async with db.session() as session:
        result = await session.execute(
            select(Movie.imdb_id, Movie.tmdb_id, Movie.title).order_by(Movie.last_fetched_at.asc())
        )
        return [tuple(row) for row in result.all()]
