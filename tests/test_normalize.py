"""Unit tests for source normalization."""

import math

import pytest

from filmscore.normalize import SOURCE_SCALE_MAX, normalize, normalize_score, scale_label
from filmscore.schemas import SOURCE_NAMES, RawRating, SourceScore


@pytest.mark.parametrize(
    "source, raw, expected",
    [
        ("imdb", 9.3, 93.0),
        ("douban", 8.0, 80.0),
        ("letterboxd", 4.5, 90.0),
        ("metacritic", 82, 82.0),
        ("rotten_tomatoes_audience", 4.6, 92.0),
        ("allocine_press", 4.2, 84.0),
    ],
)
def test_normalize_rescales_to_100(source, raw, expected):
    assert normalize(source, raw) == pytest.approx(expected)


def test_every_source_has_a_scale():
    assert set(SOURCE_SCALE_MAX) == set(SOURCE_NAMES)


@pytest.mark.parametrize("source", SOURCE_NAMES)
@pytest.mark.parametrize("raw", [-5, 0, 0.1, 3.3, 5, 7.5, 10, 10.2, 99, 100, 250])
def test_normalize_output_is_bounded(source, raw):
    result = normalize(source, raw)
    assert result is not None
    assert 0.0 <= result <= 100.0


def test_normalize_clamps_out_of_range_values():
    assert normalize("imdb", 10.2) == 100.0
    assert normalize("metacritic", -3) == 0.0


def test_doubling_a_five_point_value_doubles_the_result():
    assert normalize("letterboxd", 2.0) == pytest.approx(2 * normalize("letterboxd", 1.0))


def test_normalize_unknown_source_or_missing_value_is_none():
    assert normalize("mubi", 8.0) is None
    assert normalize("imdb", None) is None
    assert normalize("imdb", float("nan")) is None
    assert normalize("imdb", "not a number") is None


def test_scale_label():
    assert scale_label("imdb") == "0-10"
    assert scale_label("letterboxd") == "0-5"
    assert scale_label("rotten_tomatoes") == "0-100"
    assert scale_label("mubi") is None


def test_normalize_score_recomputes_from_raw():
    score = SourceScore(source="imdb", label="IMDb", raw=RawRating(value=8.1, scale="0-10"), count=10)
    result = normalize_score(score)
    assert math.isclose(result.normalized, 81.0)
    assert result.count == 10
    assert score.normalized is None


def test_normalize_score_keeps_failed_rows_empty():
    score = SourceScore(
        source="imdb",
        label="IMDb",
        raw=RawRating(value=8.1, scale="0-10"),
        error="Request timed out",
    )
    assert normalize_score(score).normalized is None
