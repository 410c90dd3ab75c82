import logging
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import quote

from .errors import FetchError
from .http import ACCEPT_HTML, HttpClient
from .parsers import (
    parse_douban_global_search_html,
    parse_douban_subject_search_html,
    parse_douban_suggest,
    parse_douban_suggest_by_title,
    parse_google_douban_search_html,
)
from .schemas import MovieInfo, WikidataIds

logger = logging.getLogger(__name__)

# Douban and Google throttle hard; don't let one lookup hold the request.
SUGGEST_TIMEOUT_SECONDS = 4.0
SEARCH_TIMEOUT_SECONDS = 8.0
GOOGLE_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class IdResolution:
    id: str | None
    method: str


UNRESOLVED = IdResolution(id=None, method="none")


class IdStrategy:
    """One way of finding a platform id. ``resolve`` returns None instead of raising."""

    method = "unknown"

    async def resolve(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        try:
            return await self.lookup(movie, ids)
        except FetchError as exc:
            logger.debug(
                "id_strategy_failed",
                extra={"imdb_id": movie.imdb_id, "method": self.method, "error": str(exc)},
            )
            return None
        except Exception:
            logger.exception("id_strategy_crashed", extra={"imdb_id": movie.imdb_id, "method": self.method})
            return None

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        raise NotImplementedError


class IdWaterfall:
    def __init__(self, strategies: Sequence[IdStrategy]) -> None:
        self.strategies = list(strategies)

    @property
    def trusted_method(self) -> str | None:
        return self.strategies[0].method if self.strategies else None

    async def resolve(self, movie: MovieInfo, ids: WikidataIds) -> IdResolution:
        for strategy in self.strategies:
            found = await strategy.resolve(movie, ids)
            if found:
                return IdResolution(id=found, method=strategy.method)
        return UNRESOLVED


def _raw_imdb_id(imdb_id: str) -> str:
    return imdb_id[2:] if imdb_id.startswith("tt") else imdb_id


class WikidataDoubanId(IdStrategy):
    method = "wikidata"

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        return ids.douban or None


class DoubanSuggestByImdbId(IdStrategy):
    method = "suggest_api"

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        raw_id = _raw_imdb_id(movie.imdb_id)
        payload = await self.http.get_json(
            "https://movie.douban.com/j/subject_suggest",
            params={"q": f"tt{raw_id}"},
            timeout=SUGGEST_TIMEOUT_SECONDS,
        )
        return parse_douban_suggest(payload, raw_id)


class DoubanSuggestByTitle(IdStrategy):
    """Title search, accepted only when the English sub-title matches exactly."""

    method = "suggest_title"

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        if not movie.title:
            return None
        payload = await self.http.get_json(
            "https://movie.douban.com/j/subject_suggest",
            params={"q": movie.title},
            timeout=SUGGEST_TIMEOUT_SECONDS,
        )
        return parse_douban_suggest_by_title(payload, movie.title)


class DoubanSubjectSearch(IdStrategy):
    method = "subject_search"

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        html = await self.http.get_text(
            "https://movie.douban.com/subject_search",
            params={"search_text": f"tt{_raw_imdb_id(movie.imdb_id)}"},
            headers=ACCEPT_HTML,
            timeout=SUGGEST_TIMEOUT_SECONDS,
        )
        return parse_douban_subject_search_html(html)


class DoubanGlobalSearch(IdStrategy):
    method = "global_search"

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        html = await self.http.get_text(
            "https://www.douban.com/search",
            params={"cat": "1002", "q": f"tt{_raw_imdb_id(movie.imdb_id)}"},
            headers=ACCEPT_HTML,
            timeout=SEARCH_TIMEOUT_SECONDS,
        )
        return parse_douban_global_search_html(html)


class GoogleDoubanSearch(IdStrategy):
    method = "google"

    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def lookup(self, movie: MovieInfo, ids: WikidataIds) -> str | None:
        query = quote(f'"{movie.imdb_id}" site:movie.douban.com/subject')
        html = await self.http.get_text(
            f"https://www.google.com/search?q={query}&safe=off",
            headers=ACCEPT_HTML,
            timeout=GOOGLE_TIMEOUT_SECONDS,
        )
        return parse_google_douban_search_html(html)


def build_douban_waterfall(http: HttpClient) -> IdWaterfall:
    return IdWaterfall(
        [
            WikidataDoubanId(),
            DoubanSuggestByImdbId(http),
            DoubanSuggestByTitle(http),
            DoubanSubjectSearch(http),
            DoubanGlobalSearch(http),
            GoogleDoubanSearch(http),
        ]
    )
