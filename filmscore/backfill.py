"""Re-fetch and re-score every movie stored in Postgres.

Usage:
    python -m filmscore.backfill
    python -m filmscore.backfill --limit 50 --batch-size 3

Needs TMDB_API_KEY and DATABASE_URL; REDIS_URL and the OMDb keys are optional.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, replace

from dotenv import load_dotenv

from .aggregator import run_fetchers
from .config import Settings
from .errors import FilmScoreError
from .log import configure_logging
from .persist import list_stored_movies
from .services import Services

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 1.0

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


async def rescore_movie(services: Services, imdb_id: str, tmdb_id: int | None) -> bool:
    if not tmdb_id:
        logger.warning("backfill_skip", extra={"imdb_id": imdb_id, "reason": "no tmdb_id"})
        return False

    movie = await services.tmdb.resolve_movie(tmdb_id)
    # A stale L1/L2 copy would only trigger a backfill write; always go upstream here.
    services.score_cache.delete(movie.imdb_id)
    result = await run_fetchers(
        movie,
        lambda: services.wikidata.fetch_ids(movie.imdb_id),
        services.fetch_context(),
        cache=services.score_cache,
        hooks=replace(services.hooks, kv_get=None),
    )
    await result.deferred()

    payload = result.payload
    found = sum(1 for score in payload.sources if score.normalized is not None)
    logger.info(
        "backfill_done",
        extra={
            "imdb_id": movie.imdb_id,
            "title": movie.title,
            "score": round(payload.overall.score, 1) if payload.overall else None,
            "sources": f"{found}/{len(payload.sources)}",
        },
    )
    return True


async def run_backfill(
    services: Services,
    *,
    limit: int | None = None,
    batch_size: int = BATCH_SIZE,
    delay: float = BATCH_DELAY_SECONDS,
) -> BackfillReport:
    rows = await list_stored_movies(services.db)
    if limit is not None:
        rows = rows[:limit]
    report = BackfillReport(total=len(rows))
    logger.info("backfill_start", extra={"total": report.total, "batch_size": batch_size})

    for start in range(0, len(rows), batch_size):
        batch = rows[start:start + batch_size]
        results = await asyncio.gather(
            *(rescore_movie(services, imdb_id, tmdb_id) for imdb_id, tmdb_id, _title in batch),
            return_exceptions=True,
        )
        for (imdb_id, _tmdb_id, _title), outcome in zip(batch, results):
            if outcome is True:
                report.succeeded += 1
            elif outcome is False:
                report.skipped += 1
            else:
                report.failed += 1
                logger.warning("backfill_error", extra={"imdb_id": imdb_id, "error": str(outcome)})
        if start + batch_size < len(rows):
            await asyncio.sleep(delay)

    logger.info(
        "backfill_complete",
        extra={
            "total": report.total,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "skipped": report.skipped,
        },
    )
    return report


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Re-fetch and re-score every stored movie.")
    parser.add_argument("--limit", type=int, default=None, help="Only process the first N movies")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE, help="Movies fetched concurrently")
    parser.add_argument("--delay", type=float, default=BATCH_DELAY_SECONDS, help="Seconds to wait between batches")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    if not settings.api_keys.tmdb_key:
        logger.error("backfill_abort", extra={"reason": "TMDB_API_KEY not configured"})
        return 1

    services = Services.create(settings)
    try:
        report = await run_backfill(services, limit=args.limit, batch_size=args.batch_size, delay=args.delay)
    except FilmScoreError as exc:
        logger.error("backfill_fatal", extra={"error": str(exc)})
        return 1
    finally:
        await services.aclose()
    return 0 if report.failed == 0 else 2


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    return asyncio.run(_main(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
