from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SourceName = Literal[
    "allocine_press",
    "allocine_user",
    "douban",
    "imdb",
    "letterboxd",
    "metacritic",
    "rotten_tomatoes",
    "rotten_tomatoes_all",
    "rotten_tomatoes_audience",
    "rotten_tomatoes_top",
]

SOURCE_NAMES: tuple[str, ...] = (
    "allocine_press",
    "allocine_user",
    "douban",
    "imdb",
    "letterboxd",
    "metacritic",
    "rotten_tomatoes",
    "rotten_tomatoes_all",
    "rotten_tomatoes_audience",
    "rotten_tomatoes_top",
)

SOURCE_LABELS: dict[str, str] = {
    "imdb": "IMDb",
    "letterboxd": "Letterboxd",
    "metacritic": "Metacritic",
    "rotten_tomatoes": "RT Tomatometer",
    "rotten_tomatoes_all": "RT Critics Avg (All)",
    "rotten_tomatoes_top": "RT Critics Avg (Top)",
    "rotten_tomatoes_audience": "RT Audience",
    "douban": "Douban",
    "allocine_press": "AlloCiné Press",
    "allocine_user": "AlloCiné Users",
}


class Outcome(str, Enum):
    FOUND = "found"
    CLEAN_MISS = "clean_miss"
    FAILED = "failed"


class ErrorKind(str, Enum):
    CONFIG = "config"
    UPSTREAM = "upstream"


class MovieInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    imdb_id: str
    tmdb_id: int | None = None
    title: str
    year: str | None = None
    release_date: str | None = None
    poster: str | None = None
    overview: str | None = None
    runtime: int | None = None
    rating: str | None = None
    genres: list[str] | None = None
    director: str | None = None
    directors: list[str] | None = None
    writers: list[str] | None = None
    cinematographer: str | None = None
    composer: str | None = None
    editor: str | None = None
    cast: list[str] | None = None


class WikidataIds(BaseModel):
    model_config = ConfigDict(frozen=True)

    rotten_tomatoes: str | None = None
    metacritic: str | None = None
    letterboxd: str | None = None
    douban: str | None = None
    allocine_film: str | None = None
    allocine_series: str | None = None


class RawRating(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float | None = None
    scale: str


class SourceScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: SourceName
    label: str
    normalized: float | None = Field(default=None, ge=0, le=100)
    raw: RawRating | None = None
    count: int | None = None
    url: str | None = None
    error: str | None = None
    from_fallback: bool = False
    badge: str | None = None
    # Only meaningful while a request is in flight; never cached or returned.
    error_kind: ErrorKind | None = Field(default=None, exclude=True)

    @property
    def outcome(self) -> Outcome:
        if self.error is not None:
            return Outcome.FAILED
        if self.normalized is None:
            return Outcome.CLEAN_MISS
        return Outcome.FOUND


class OverallScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    coverage: float
    disagreement: float


class ScorePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    movie: MovieInfo
    sources: list[SourceScore]
    overall: OverallScore | None = None
    missing_sources: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(score.error is not None for score in self.sources)


class TopMovie(BaseModel):
    model_config = ConfigDict(frozen=True)

    imdb_id: str
    tmdb_id: int | None = None
    title: str
    year: int | None = None
    poster: str | None = None
    director: str | None = None
    overall_score: float
    coverage: float
    disagreement: float | None = None
    sources_count: int
