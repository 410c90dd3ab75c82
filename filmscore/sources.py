"""Per-platform fetch strategies.

Each strategy walks its own layers strictly in order (structured API, page
scrape, then a value from another service) and stops at the first layer that
yields a rating. The result is always one or more ``SourceScore`` rows, never
an exception for an upstream problem:

* found: ``normalized`` is set;
* clean miss: every layer that ran answered, none had a rating;
* failed: some layer raised and nothing produced a rating, ``error`` is set.
"""

import logging
import re
from typing import Awaitable, Callable, Union

from .config import ApiKeys
from .errors import ConfigurationError, FetchError
from .http import ACCEPT_HTML, ACCEPT_JSON, HttpClient
from .normalize import normalize_score, scale_label
from .omdb import fetch_omdb_by_id
from .parsers import (
    OmdbRatings,
    parse_allocine_html,
    parse_douban_abstract,
    parse_imdb_critic_reviews_html,
    parse_imdb_html,
    parse_letterboxd_api,
    parse_letterboxd_html,
    parse_metacritic_badge,
    parse_metacritic_html,
    parse_omdb_ratings,
    parse_rt_api_response,
    parse_rt_audience_html,
    parse_rt_critics_html,
)
from .schemas import SOURCE_LABELS, ErrorKind, MovieInfo, RawRating, SourceScore, WikidataIds
from .waterfall import IdWaterfall, build_douban_waterfall

logger = logging.getLogger(__name__)

LETTERBOXD_API_URL = "https://api.letterboxd.com/api/v0"
DOUBAN_ABSTRACT_TIMEOUT_SECONDS = 10.0

RT_SOURCES = (
    "rotten_tomatoes",
    "rotten_tomatoes_all",
    "rotten_tomatoes_top",
    "rotten_tomatoes_audience",
)
ALLOCINE_SOURCES = ("allocine_press", "allocine_user")

StrategyResult = Union[SourceScore, list[SourceScore]]


class FetchContext:
    """Per-request state shared by the strategies: HTTP client, keys, OMDb memo."""

    def __init__(
        self,
        http: HttpClient,
        keys: ApiKeys,
        *,
        douban_waterfall: IdWaterfall | None = None,
    ) -> None:
        self.http = http
        self.keys = keys
        self.douban_waterfall = douban_waterfall or build_douban_waterfall(http)
        self._omdb: OmdbRatings | Exception | None = None
        self.omdb_requests = 0

    async def omdb_ratings(self, imdb_id: str) -> OmdbRatings:
        """OMDb ratings for this request's title, fetched at most once."""
        if self._omdb is None:
            self.omdb_requests += 1
            try:
                data = await fetch_omdb_by_id(self.http, imdb_id, self.keys.omdb_keys)
            except (ConfigurationError, FetchError) as exc:
                self._omdb = exc
            else:
                self._omdb = parse_omdb_ratings(data)
        if isinstance(self._omdb, Exception):
            raise self._omdb
        return self._omdb


Strategy = Callable[[FetchContext, MovieInfo, WikidataIds], Awaitable[StrategyResult]]


def build_score(
    source: str,
    *,
    value: float | None = None,
    count: int | None = None,
    url: str | None = None,
    from_fallback: bool = False,
    badge: str | None = None,
) -> SourceScore:
    return normalize_score(
        SourceScore(
            source=source,
            label=SOURCE_LABELS[source],
            raw=RawRating(value=value, scale=scale_label(source) or ""),
            count=count,
            url=url,
            from_fallback=from_fallback,
            badge=badge,
        )
    )


def failed_score(source: str, exc: Exception, *, url: str | None = None) -> SourceScore:
    kind = ErrorKind.CONFIG if isinstance(exc, ConfigurationError) else ErrorKind.UPSTREAM
    return SourceScore(
        source=source,
        label=SOURCE_LABELS[source],
        url=url,
        error=str(exc) or exc.__class__.__name__,
        error_kind=kind,
    )


def missed_score(source: str, errors: list[Exception], *, url: str | None = None) -> SourceScore:
    """No layer produced a rating: a clean miss unless one of them raised."""
    if errors:
        return failed_score(source, errors[-1], url=url)
    return build_score(source, url=url)


def slugify_title(title: str) -> str:
    cleaned = re.sub(r"[^a-z0-9\s]", "", title.lower()).strip()
    return re.sub(r"\s+", "_", cleaned)


def rt_slug(movie: MovieInfo, ids: WikidataIds) -> str:
    if ids.rotten_tomatoes:
        return re.sub(r"^m/", "", ids.rotten_tomatoes)
    return slugify_title(movie.title)


async def fetch_imdb(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> SourceScore:
    url = f"https://www.imdb.com/title/{movie.imdb_id}/"
    errors: list[Exception] = []

    try:
        parsed = parse_imdb_html(await ctx.http.get_text(url, headers=ACCEPT_HTML))
    except FetchError as exc:
        errors.append(exc)
    else:
        if parsed.value is not None:
            return build_score("imdb", value=parsed.value, count=parsed.count, url=url)

    try:
        omdb = await ctx.omdb_ratings(movie.imdb_id)
    except (ConfigurationError, FetchError) as exc:
        errors.append(exc)
    else:
        if omdb.imdb is not None:
            return build_score("imdb", value=omdb.imdb, count=omdb.imdb_votes, url=url, from_fallback=True)

    return missed_score("imdb", errors, url=url)


async def fetch_rotten_tomatoes(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> list[SourceScore]:
    slug = rt_slug(movie, ids)
    if not slug:
        return [build_score(source) for source in RT_SOURCES]
    url = f"https://www.rottentomatoes.com/m/{slug}"

    tomatometer: float | None = None
    try:
        payload = await ctx.http.get_json(
            f"https://www.rottentomatoes.com/napi/movie/{slug}",
            headers=ACCEPT_JSON,
        )
        tomatometer = parse_rt_api_response(payload)
    except FetchError as exc:
        logger.debug("rt_api_failed", extra={"imdb_id": movie.imdb_id, "slug": slug, "error": str(exc)})

    # Averages, counts and the audience score only exist on the page.
    try:
        html = await ctx.http.get_text(url, headers=ACCEPT_HTML)
    except FetchError as exc:
        if tomatometer is not None:
            return [
                build_score("rotten_tomatoes", value=tomatometer, url=url),
                *(failed_score(source, exc, url=url) for source in RT_SOURCES[1:]),
            ]
        return [failed_score(source, exc, url=url) for source in RT_SOURCES]

    critics = parse_rt_critics_html(html)
    audience = parse_rt_audience_html(html)
    if tomatometer is None:
        tomatometer = critics.tomatometer
    return [
        build_score(
            "rotten_tomatoes",
            value=tomatometer,
            count=critics.all_critics_count,
            url=url,
            badge=critics.badge,
        ),
        build_score(
            "rotten_tomatoes_all",
            value=critics.critics_avg_all,
            count=critics.all_critics_count,
            url=url,
        ),
        build_score(
            "rotten_tomatoes_top",
            value=critics.critics_avg_top,
            count=critics.top_critics_count,
            url=url,
        ),
        build_score(
            "rotten_tomatoes_audience",
            value=audience.audience_avg,
            count=audience.audience_count,
            url=url,
        ),
    ]


async def fetch_metacritic(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> SourceScore:
    slug = re.sub(r"^movie/", "", ids.metacritic or "")
    url = f"https://www.metacritic.com/movie/{slug}/" if slug else None
    errors: list[Exception] = []

    if url:
        try:
            html = await ctx.http.get_text(url, headers=ACCEPT_HTML)
        except FetchError as exc:
            errors.append(exc)
        else:
            parsed = parse_metacritic_html(html)
            if parsed.value is not None:
                return build_score(
                    "metacritic",
                    value=parsed.value,
                    count=parsed.count,
                    url=url,
                    badge=parse_metacritic_badge(html),
                )

    # IMDb embeds the Metascore on its critic reviews page.
    try:
        html = await ctx.http.get_text(
            f"https://www.imdb.com/title/{movie.imdb_id}/criticreviews/",
            headers=ACCEPT_HTML,
        )
    except FetchError as exc:
        errors.append(exc)
    else:
        reviews = parse_imdb_critic_reviews_html(html)
        if reviews.value is not None:
            return build_score(
                "metacritic",
                value=reviews.value,
                count=reviews.count,
                url=url or reviews.metacritic_url,
                from_fallback=True,
            )

    return missed_score("metacritic", errors, url=url)


async def fetch_letterboxd(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> SourceScore:
    slug = ids.letterboxd
    url = f"https://letterboxd.com/film/{slug}/" if slug else f"https://letterboxd.com/imdb/{movie.imdb_id}/"
    errors: list[Exception] = []

    if ctx.keys.letterboxd_token:
        try:
            payload = await ctx.http.get_json(
                f"{LETTERBOXD_API_URL}/film/imdb:{movie.imdb_id}/statistics",
                headers={**ACCEPT_JSON, "Authorization": f"Bearer {ctx.keys.letterboxd_token}"},
            )
        except FetchError as exc:
            errors.append(exc)
        else:
            parsed = parse_letterboxd_api(payload)
            if parsed.value is not None:
                return build_score("letterboxd", value=parsed.value, count=parsed.count, url=url)

    # Letterboxd redirects /imdb/<id>/ to the film page.
    try:
        html = await ctx.http.get_text(url, headers=ACCEPT_HTML)
    except FetchError as exc:
        errors.append(exc)
    else:
        parsed = parse_letterboxd_html(html)
        if parsed.value is not None:
            return build_score("letterboxd", value=parsed.value, count=parsed.count, url=url)

    return missed_score("letterboxd", errors, url=url)


async def fetch_douban(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> SourceScore:
    resolution = await ctx.douban_waterfall.resolve(movie, ids)
    if not resolution.id:
        # Unresolved is reported as "no data", not as a failure.
        return build_score("douban")

    url = f"https://movie.douban.com/subject/{resolution.id}/"
    from_fallback = resolution.method != ctx.douban_waterfall.trusted_method
    try:
        payload = await ctx.http.get_json(
            "https://movie.douban.com/j/subject_abstract",
            params={"subject_id": resolution.id},
            timeout=DOUBAN_ABSTRACT_TIMEOUT_SECONDS,
        )
    except FetchError as exc:
        return failed_score("douban", exc, url=url)

    parsed = parse_douban_abstract(payload)
    return build_score("douban", value=parsed.value, count=parsed.count, url=url, from_fallback=from_fallback)


async def fetch_allocine(ctx: FetchContext, movie: MovieInfo, ids: WikidataIds) -> list[SourceScore]:
    if not ids.allocine_film:
        return [build_score(source) for source in ALLOCINE_SOURCES]

    url = f"https://www.allocine.fr/film/fichefilm_gen_cfilm={ids.allocine_film}.html"
    try:
        html = await ctx.http.get_text(url, headers={**ACCEPT_HTML, "Accept-Language": "fr-FR,fr;q=0.9"})
    except FetchError as exc:
        return [failed_score(source, exc, url=url) for source in ALLOCINE_SOURCES]

    parsed = parse_allocine_html(html)
    return [
        build_score("allocine_press", value=parsed.press.value, count=parsed.press.count, url=url),
        build_score("allocine_user", value=parsed.user.value, count=parsed.user.count, url=url),
    ]


# Strategies fanned out once the platform ids are known; IMDb starts earlier.
ID_DEPENDENT_STRATEGIES: dict[str, Strategy] = {
    "rotten_tomatoes": fetch_rotten_tomatoes,
    "metacritic": fetch_metacritic,
    "letterboxd": fetch_letterboxd,
    "douban": fetch_douban,
    "allocine": fetch_allocine,
}

# Rows each strategy produces, used to report a crashed strategy.
STRATEGY_SOURCES: dict[str, tuple[str, ...]] = {
    "imdb": ("imdb",),
    "rotten_tomatoes": RT_SOURCES,
    "metacritic": ("metacritic",),
    "letterboxd": ("letterboxd",),
    "douban": ("douban",),
    "allocine": ALLOCINE_SOURCES,
}
