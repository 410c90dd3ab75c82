import logging
from dataclasses import dataclass
from typing import Literal

from sqlalchemy import String, any_, cast, select

from .cache import LRUCache
from .database import Database
from .kv import ScoreKv, top_key
from .models import Movie
from .persist import CURRENT_SCORE_VERSION
from .schemas import TopMovie

logger = logging.getLogger(__name__)

MIN_COVERAGE = 0.7
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
TOP_CACHE_TTL_SECONDS = 5 * 60
TOP_CACHE_MAX_SIZE = 20

SortOrder = Literal["score", "divisive"]


@dataclass(frozen=True)
class TopMoviesOptions:
    sort: SortOrder = "score"
    limit: int = DEFAULT_LIMIT
    min_sources: int | None = None
    genre: str | None = None

    @property
    def cache_key(self) -> str:
        return top_key(self.sort, self.limit, self.min_sources, self.genre)


def new_top_cache() -> LRUCache[list[TopMovie]]:
    return LRUCache(TOP_CACHE_TTL_SECONDS, TOP_CACHE_MAX_SIZE)


def _top_query(db: Database, options: TopMoviesOptions):
    stmt = select(Movie).where(
        Movie.overall_score.is_not(None),
        Movie.coverage >= MIN_COVERAGE,
        Movie.score_version == CURRENT_SCORE_VERSION,
    )
    if options.min_sources is not None:
        stmt = stmt.where(Movie.sources_count >= options.min_sources)
    if options.genre:
        if db.dialect_name == "postgresql":
            stmt = stmt.where(options.genre == any_(Movie.genres))
        else:
            stmt = stmt.where(cast(Movie.genres, String).like(f'%"{options.genre}"%'))

    if options.sort == "divisive":
        # High spread only counts when the film is also rated well.
        stmt = stmt.where(Movie.disagreement.is_not(None)).order_by(
            (Movie.disagreement * Movie.overall_score / 100).desc()
        )
    else:
        stmt = stmt.order_by(Movie.overall_score.desc())
    return stmt.order_by(Movie.imdb_id).limit(options.limit)


def _to_top_movie(movie: Movie) -> TopMovie:
    return TopMovie(
        imdb_id=movie.imdb_id,
        tmdb_id=movie.tmdb_id,
        title=movie.title,
        year=movie.year,
        poster=movie.poster,
        director=movie.director,
        overall_score=movie.overall_score,
        coverage=movie.coverage,
        disagreement=movie.disagreement,
        sources_count=movie.sources_count,
    )


async def get_top_movies(
    db: Database,
    options: TopMoviesOptions | None = None,
    *,
    cache: LRUCache[list[TopMovie]] | None = None,
    kv: ScoreKv | None = None,
) -> list[TopMovie]:
    options = options or TopMoviesOptions()
    key = options.cache_key

    if cache is not None:
        hit = cache.get(key)
        if hit is not None:
            logger.info("top_cache_hit", extra={"layer": "L1", "key": key})
            return hit

    if kv is not None:
        stored = await kv.get_top(key)
        if stored is not None:
            logger.info("top_cache_hit", extra={"layer": "L2", "key": key})
            if cache is not None:
                cache.set(key, stored)
            return stored

    async with db.session() as session:
        result = await session.execute(_top_query(db, options))
        movies = [_to_top_movie(movie) for movie in result.scalars().all()]

    logger.info("top_cache_miss", extra={"key": key, "count": len(movies)})
    if cache is not None:
        cache.set(key, movies)
    if kv is not None:
        await kv.set_top(key, movies)
    return movies
