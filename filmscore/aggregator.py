import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from .cache import LRUCache
from .errors import ConfigurationError, FetchError, RequestCancelled
from .schemas import ErrorKind, MovieInfo, Outcome, ScorePayload, SourceScore, WikidataIds
from .scoring import compute_overall_score
from .sources import (
    ID_DEPENDENT_STRATEGIES,
    RT_SOURCES,
    STRATEGY_SOURCES,
    FetchContext,
    Strategy,
    build_score,
    failed_score,
    fetch_imdb,
)

logger = logging.getLogger(__name__)

KvGet = Callable[[str], Awaitable[Union[ScorePayload, None]]]
KvSet = Callable[[str, ScorePayload, Union[str, None]], Awaitable[None]]
Persist = Callable[[ScorePayload, bool], Awaitable[None]]
WikidataResolver = Callable[[], Awaitable[WikidataIds]]
Deferred = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class CacheHooks:
    kv_get: KvGet | None = None
    kv_set: KvSet | None = None
    persist: Persist | None = None


@dataclass(frozen=True)
class FetchResult:
    payload: ScorePayload
    deferred: Deferred
    # "l1", "l2" or "fetch"
    origin: str = "fetch"


def is_cacheable(payload: ScorePayload) -> bool:
    """Clean misses are safe to cache; any failed source makes the payload transient."""
    return not payload.has_errors


def build_payload(movie: MovieInfo, scores: list[SourceScore]) -> ScorePayload:
    return ScorePayload(
        movie=movie,
        sources=scores,
        overall=compute_overall_score(scores),
        missing_sources=[score.label for score in scores if score.normalized is None],
    )


async def _guarded(
    name: str, strategy: Strategy, ctx: FetchContext, movie: MovieInfo, ids: WikidataIds
) -> list[SourceScore]:
    try:
        result = await strategy(ctx, movie, ids)
    except (ConfigurationError, FetchError) as exc:
        return [failed_score(source, exc) for source in STRATEGY_SOURCES[name]]
    except Exception as exc:
        logger.exception("strategy_crashed", extra={"imdb_id": movie.imdb_id, "strategy": name})
        return [failed_score(source, exc) for source in STRATEGY_SOURCES[name]]
    return result if isinstance(result, list) else [result]


async def _resolve_ids(movie: MovieInfo, wikidata: WikidataIds | WikidataResolver | None) -> WikidataIds:
    if wikidata is None:
        return WikidataIds()
    if isinstance(wikidata, WikidataIds):
        return wikidata
    try:
        return await wikidata()
    except FetchError as exc:
        logger.warning("wikidata_failed", extra={"imdb_id": movie.imdb_id, "error": str(exc)})
        return WikidataIds()
    except Exception:
        logger.exception("wikidata_crashed", extra={"imdb_id": movie.imdb_id})
        return WikidataIds()


async def _apply_omdb_fallbacks(ctx: FetchContext, movie: MovieInfo, scores: list[SourceScore]) -> list[SourceScore]:
    rt_rows = [score for score in scores if score.source in RT_SOURCES]
    rt_failed = bool(rt_rows) and all(score.outcome is Outcome.FAILED for score in rt_rows)
    mc_failed = any(score.source == "metacritic" and score.outcome is Outcome.FAILED for score in scores)
    if not (rt_failed or mc_failed):
        return scores

    try:
        omdb = await ctx.omdb_ratings(movie.imdb_id)
    except (ConfigurationError, FetchError):
        return scores

    merged = []
    for score in scores:
        if rt_failed and score.source == "rotten_tomatoes" and omdb.rotten_tomatoes is not None:
            score = build_score("rotten_tomatoes", value=omdb.rotten_tomatoes, url=score.url, from_fallback=True)
            logger.info("omdb_fallback_applied", extra={"imdb_id": movie.imdb_id, "source": score.source})
        elif mc_failed and score.source == "metacritic" and omdb.metacritic is not None:
            score = build_score("metacritic", value=omdb.metacritic, url=score.url, from_fallback=True)
            logger.info("omdb_fallback_applied", extra={"imdb_id": movie.imdb_id, "source": score.source})
        merged.append(score)
    return merged


async def fetch_all_sources(
    movie: MovieInfo,
    wikidata: WikidataIds | WikidataResolver | None,
    ctx: FetchContext,
) -> list[SourceScore]:
    """Fan out every strategy and merge their rows, OMDb fallbacks applied."""
    tasks: list[asyncio.Task] = []
    try:
        # IMDb only needs the primary id, so it runs while the platform ids resolve.
        tasks.append(asyncio.create_task(_guarded("imdb", fetch_imdb, ctx, movie, WikidataIds())))
        ids = await _resolve_ids(movie, wikidata)
        for name, strategy in ID_DEPENDENT_STRATEGIES.items():
            tasks.append(asyncio.create_task(_guarded(name, strategy, ctx, movie, ids)))
        results = await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    scores = [score for rows in results for score in rows]
    return await _apply_omdb_fallbacks(ctx, movie, scores)


async def _until_cancelled(work: Awaitable[list[SourceScore]], signal: asyncio.Event | None) -> list[SourceScore]:
    task = asyncio.ensure_future(work)
    if signal is None:
        return await task

    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()
    task.cancel()
    await asyncio.wait({task})
    raise RequestCancelled("Request abandoned while sources were in flight")


def _backfill_job(payload: ScorePayload, hooks: CacheHooks) -> Deferred:
    async def deferred() -> None:
        if hooks.persist is None:
            return
        try:
            await hooks.persist(payload, True)
        except Exception:
            logger.exception("deferred_failed", extra={"imdb_id": payload.movie.imdb_id, "mode": "backfill"})

    return deferred


def _live_job(payload: ScorePayload, hooks: CacheHooks, *, cacheable: bool, elapsed_ms: float) -> Deferred:
    movie = payload.movie

    async def deferred() -> None:
        logger.info(
            "score_fetched",
            extra={
                "imdb_id": movie.imdb_id,
                "title": movie.title,
                "overall": payload.overall.score if payload.overall else None,
                "found": sum(1 for score in payload.sources if score.outcome is Outcome.FOUND),
                "failed": [score.source for score in payload.sources if score.outcome is Outcome.FAILED],
                "cacheable": cacheable,
                "elapsed_ms": round(elapsed_ms),
            },
        )
        if cacheable and hooks.kv_set is not None:
            try:
                await hooks.kv_set(movie.imdb_id, payload, movie.release_date or movie.year)
            except Exception:
                logger.exception("deferred_failed", extra={"imdb_id": movie.imdb_id, "mode": "kv"})
        if hooks.persist is not None:
            try:
                await hooks.persist(payload, False)
            except Exception:
                logger.exception("deferred_failed", extra={"imdb_id": movie.imdb_id, "mode": "live"})

    return deferred


async def run_fetchers(
    movie: MovieInfo,
    wikidata: WikidataIds | WikidataResolver | None,
    ctx: FetchContext,
    *,
    cache: LRUCache[ScorePayload],
    hooks: CacheHooks | None = None,
    signal: asyncio.Event | None = None,
) -> FetchResult:
    """Resolve a title's scores through L1, L2, then a full upstream fetch.

    The returned ``deferred`` job is not run here. The caller awaits it once
    the response is out: it logs, writes L2 when the payload is cacheable and
    persists to L3 (live write after a fetch, insert-if-absent after a hit).
    """
    hooks = hooks or CacheHooks()
    imdb_id = movie.imdb_id

    cached = cache.get(imdb_id)
    if cached is not None:
        return FetchResult(payload=cached, deferred=_backfill_job(cached, hooks), origin="l1")

    if hooks.kv_get is not None:
        stored = await hooks.kv_get(imdb_id)
        if stored is not None:
            logger.debug("kv_hit", extra={"imdb_id": imdb_id})
            cache.set(imdb_id, stored)
            return FetchResult(payload=stored, deferred=_backfill_job(stored, hooks), origin="l2")

    if signal is not None and signal.is_set():
        raise RequestCancelled("Request abandoned before fetching")

    started = time.perf_counter()
    scores = await _until_cancelled(fetch_all_sources(movie, wikidata, ctx), signal)

    if scores and all(score.error_kind is ErrorKind.CONFIG for score in scores):
        raise ConfigurationError("No rating source is configured")

    payload = build_payload(movie, scores)
    cacheable = is_cacheable(payload)
    if cacheable:
        cache.set(imdb_id, payload)

    elapsed_ms = (time.perf_counter() - started) * 1000
    return FetchResult(
        payload=payload,
        deferred=_live_job(payload, hooks, cacheable=cacheable, elapsed_ms=elapsed_ms),
    )
