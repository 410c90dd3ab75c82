from dataclasses import dataclass

from .aggregator import CacheHooks
from .cache import LRUCache
from .config import Settings
from .database import Database
from .http import HttpClient
from .kv import ScoreKv, redis_from_url
from .persist import persist_scores
from .queries import new_top_cache
from .schemas import ScorePayload, TopMovie
from .sources import FetchContext
from .tmdb import TmdbClient
from .wikidata import WikidataClient


def build_cache_hooks(kv: ScoreKv, db: Database | None) -> CacheHooks:
    persist = None
    if db is not None:

        async def persist(payload: ScorePayload, backfill: bool) -> None:
            await persist_scores(db, payload, backfill=backfill)

    return CacheHooks(
        kv_get=kv.get_score if kv.enabled else None,
        kv_set=kv.set_score if kv.enabled else None,
        persist=persist,
    )


@dataclass
class Services:
    """Long-lived clients, created once per process and closed on shutdown."""

    settings: Settings
    http: HttpClient
    db: Database
    kv: ScoreKv
    tmdb: TmdbClient
    wikidata: WikidataClient
    score_cache: LRUCache[ScorePayload]
    top_cache: LRUCache[list[TopMovie]]
    hooks: CacheHooks

    @classmethod
    def create(cls, settings: Settings) -> "Services":
        http = HttpClient(timeout=settings.http_timeout)
        db = Database(settings.database_url)
        kv = ScoreKv(redis_from_url(settings.redis_url))
        return cls(
            settings=settings,
            http=http,
            db=db,
            kv=kv,
            tmdb=TmdbClient(http, settings.api_keys.tmdb_key),
            wikidata=WikidataClient(http),
            score_cache=LRUCache(settings.score_cache_ttl, settings.score_cache_max_size),
            top_cache=new_top_cache(),
            hooks=build_cache_hooks(kv, db if settings.persist_enabled else None),
        )

    def fetch_context(self) -> FetchContext:
        return FetchContext(self.http, self.settings.api_keys)

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.kv.aclose()
        await self.db.close()
