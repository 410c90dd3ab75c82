"""Tests for durable score storage."""

from datetime import datetime

import pytest

from filmscore.aggregator import build_payload
from filmscore.database import Database
from filmscore.errors import UpstreamError
from filmscore.persist import (
    CURRENT_SCORE_VERSION,
    get_movie,
    list_stored_movies,
    parse_year,
    payload_to_movie_row,
    persist_scores,
    source_to_score_row,
)
from filmscore.sources import build_score, failed_score

from .conftest import IMDB_ID


def full_scores():
    return [
        build_score("imdb", value=9.3, count=2_900_000),
        build_score("letterboxd", value=4.5, count=1_500_000),
        build_score("metacritic", value=82, count=20, badge="must_see"),
        build_score("rotten_tomatoes", value=91, count=120, badge="certified_fresh"),
        build_score("rotten_tomatoes_all", value=82, count=120),
        build_score("rotten_tomatoes_top", value=80, count=40),
        build_score("rotten_tomatoes_audience", value=4.6, count=250_000),
        build_score("douban", value=9.7, count=3_000_000),
        build_score("allocine_press", value=4.2, count=35),
        build_score("allocine_user", value=4.6, count=117_136),
    ]


@pytest.mark.parametrize(
    "year, expected",
    [("1994", 1994), (1994, 1994), (" 2001 ", 2001), ("", None), (None, None), ("199x", None), ("1700", None), ("2200", None)],
)
def test_parse_year(year, expected):
    assert parse_year(year) == expected


def test_movie_row_counts_weighted_sources(movie):
    payload = build_payload(movie, full_scores())
    row = payload_to_movie_row(payload, datetime(2026, 1, 1))

    # The tomatometer is shown but not weighted.
    assert row["sources_count"] == 9
    assert row["is_complete"] is True
    assert row["year"] == 1994
    assert row["score_version"] == CURRENT_SCORE_VERSION
    assert row["overall_score"] == payload.overall.score


def test_movie_row_without_scores(movie):
    payload = build_payload(movie, [build_score("imdb")])
    row = payload_to_movie_row(payload, datetime(2026, 1, 1))
    assert row["overall_score"] is None
    assert row["sources_count"] == 0
    assert row["is_complete"] is False


def test_score_row_keeps_error_and_raw_value():
    updated = datetime(2026, 1, 1)
    failed = source_to_score_row(IMDB_ID, failed_score("douban", UpstreamError("Request timed out")), updated)
    assert failed["error"] == "Request timed out"
    assert failed["normalized"] is None

    found = source_to_score_row(IMDB_ID, build_score("letterboxd", value=4.5, count=10), updated)
    assert found["raw_value"] == 4.5
    assert found["raw_scale"] == "0-5"
    assert found["normalized"] == 90


async def test_live_write_stores_movie_and_scores(db, movie):
    payload = build_payload(movie, full_scores())

    assert await persist_scores(db, payload)

    stored = await get_movie(db, IMDB_ID)
    assert stored.title == "The Shawshank Redemption"
    assert stored.genres == ["Drama", "Crime"]
    assert stored.sources_count == 9
    assert stored.overall_score == pytest.approx(payload.overall.score)
    assert {score.source for score in stored.scores} == {score.source for score in payload.sources}
    badges = {score.source: score.badge for score in stored.scores}
    assert badges["metacritic"] == "must_see"


async def test_live_rewrite_replaces_score_set(db, movie):
    await persist_scores(db, build_payload(movie, full_scores()))

    fewer = [build_score("imdb", value=9.0, count=3_000_000), build_score("douban", value=9.6, count=3_100_000)]
    assert await persist_scores(db, build_payload(movie, fewer))

    stored = await get_movie(db, IMDB_ID)
    assert sorted(score.source for score in stored.scores) == ["douban", "imdb"]
    assert stored.sources_count == 2
    assert stored.is_complete is False


async def test_backfill_never_overwrites(db, movie):
    await persist_scores(db, build_payload(movie, full_scores()))
    before = await get_movie(db, IMDB_ID)

    stale = build_payload(movie, [build_score("imdb", value=5.0, count=10)])
    assert await persist_scores(db, stale, backfill=True)

    after = await get_movie(db, IMDB_ID)
    assert after.overall_score == before.overall_score
    assert after.last_fetched_at == before.last_fetched_at
    imdb = next(score for score in after.scores if score.source == "imdb")
    assert imdb.raw_value == 9.3


async def test_backfill_of_new_movie_is_stamped_at_epoch(db, movie):
    assert await persist_scores(db, build_payload(movie, full_scores()), backfill=True)

    stored = await get_movie(db, IMDB_ID)
    assert stored.last_fetched_at.replace(tzinfo=None) == datetime(1970, 1, 1)
    assert len(stored.scores) == 10


async def test_failed_write_returns_false(tmp_path, movie):
    # No tables: every statement fails.
    empty = Database(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        assert await persist_scores(empty, build_payload(movie, full_scores())) is False
    finally:
        await empty.close()


async def test_stored_movies_oldest_first(db, movie):
    older = movie.model_copy(update={"imdb_id": "tt0068646", "tmdb_id": 238, "title": "The Godfather", "year": "1972"})
    await persist_scores(db, build_payload(movie, full_scores()))
    await persist_scores(db, build_payload(older, full_scores()), backfill=True)

    assert await list_stored_movies(db) == [
        ("tt0068646", 238, "The Godfather"),
        (IMDB_ID, 278, "The Shawshank Redemption"),
    ]
