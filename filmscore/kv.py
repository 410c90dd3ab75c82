import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .schemas import ScorePayload, TopMovie

logger = logging.getLogger(__name__)

SEVEN_DAYS_SECONDS = 7 * 24 * 60 * 60
THIRTY_DAYS_SECONDS = 30 * 24 * 60 * 60
TOP_TTL_SECONDS = 60 * 60

# Bump when the cached payload shape changes; older entries then read as misses.
KV_SCHEMA_VERSION = 1


def compute_kv_ttl(age_hint: str | None, now: datetime | None = None) -> int | None:
    """Seconds to keep a score in L2, or None to skip the write.

    Recent films still move, so anything under two years old is not cached.
    ``age_hint`` is a year or a date starting with one.
    """
    if not age_hint:
        return None
    match = re.match(r"\s*(\d{1,4})", str(age_hint))
    if not match:
        return None
    now = now or datetime.now(timezone.utc)
    age = now.year - int(match.group(1))
    if age < 2:
        return None
    if age <= 10:
        return SEVEN_DAYS_SECONDS
    return THIRTY_DAYS_SECONDS


def score_key(imdb_id: str) -> str:
    return f"score:{imdb_id}"


def top_key(sort: str, limit: int, min_sources: int | None, genre: str | None) -> str:
    return f"top:{sort}:{limit}:{'' if min_sources is None else min_sources}:{genre or ''}"


def redis_from_url(url: str | None) -> Redis | None:
    if not url:
        logger.info("kv_disabled", extra={"reason": "REDIS_URL not set"})
        return None
    return Redis.from_url(url, decode_responses=True)


class ScoreKv:
    """Remote score and ranked-list cache. Every failure degrades to a miss."""

    def __init__(self, client: Redis | None) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _read(self, key: str) -> Any:
        if self.client is None:
            return None
        try:
            raw = await self.client.get(key)
        except RedisError as exc:
            logger.warning("kv_get_failed", extra={"key": key, "error": str(exc)})
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict) or data.get("_v") != KV_SCHEMA_VERSION:
            return None
        return data

    async def _write(self, key: str, data: dict, ttl: int) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.set(key, json.dumps({**data, "_v": KV_SCHEMA_VERSION}), ex=ttl)
        except RedisError as exc:
            logger.warning("kv_set_failed", extra={"key": key, "error": str(exc)})
            return False
        return True

    async def get_score(self, imdb_id: str) -> ScorePayload | None:
        data = await self._read(score_key(imdb_id))
        if data is None:
            return None
        data.pop("_v", None)
        try:
            payload = ScorePayload.model_validate(data)
        except ValidationError:
            return None
        logger.info("kv_hit", extra={"imdb_id": imdb_id})
        return payload

    async def set_score(self, imdb_id: str, payload: ScorePayload, age_hint: str | None) -> None:
        ttl = compute_kv_ttl(age_hint)
        if ttl is None:
            return
        if await self._write(score_key(imdb_id), payload.model_dump(mode="json"), ttl):
            logger.info("kv_set", extra={"imdb_id": imdb_id, "ttl_seconds": ttl})

    async def get_top(self, key: str) -> list[TopMovie] | None:
        data = await self._read(key)
        if data is None:
            return None
        try:
            return [TopMovie.model_validate(item) for item in data.get("movies", [])]
        except ValidationError:
            return None

    async def set_top(self, key: str, movies: list[TopMovie]) -> None:
        await self._write(key, {"movies": [movie.model_dump(mode="json") for movie in movies]}, TOP_TTL_SECONDS)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
