"""Pytest configuration and fixtures."""

import json
from typing import Callable

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from filmscore.cache import LRUCache
from filmscore.config import ApiKeys
from filmscore.database import Database
from filmscore.http import HttpClient
from filmscore.schemas import MovieInfo, WikidataIds
from filmscore.sources import FetchContext

IMDB_ID = "tt0111161"

IMDB_HTML = (
    '<html><script type="application/ld+json">{"@type":"Movie","name":"The Shawshank Redemption",'
    '"aggregateRating":{"@type":"AggregateRating","ratingCount":2900000,"bestRating":10,'
    '"worstRating":1,"ratingValue":9.3}}</script></html>'
)
IMDB_HTML_NO_RATING = '<html><script type="application/ld+json">{"@type":"Movie","name":"Unreleased"}</script></html>'

RT_HTML = (
    '<script id="media-scorecard-json" type="application/json">'
    '{"criticsAll":{"averageRating":"8.20","numReviews":"120","score":"91"},'
    '"criticsTop":{"averageRating":"8.00","numReviews":"40","score":"88"},'
    '"audienceAll":{"averageRating":"4.6","reviewCount":"250000","score":"98"},'
    '"criticsScore":{"certified":true,"sentiment":"POSITIVE","score":"91"}}'
    "</script>"
)

METACRITIC_HTML = (
    '<div class="c-productScoreInfo_scoreNumber"><div title="Metascore 82 out of 100">'
    "<span>82</span></div></div><span>Based on 20 Critic Reviews</span>"
    '<span class="c-productScoreInfo_must">Must-See</span><div>Must-See</div>'
)

IMDB_CRITIC_REVIEWS_HTML = (
    '<script>{"metascore":{"reviewCount":22,"score":80}}</script>'
    '<a href="https://www.metacritic.com/movie/the-shawshank-redemption?ftag=IMDB">Metacritic</a>'
)

LETTERBOXD_HTML = (
    '<script type="application/ld+json">{"aggregateRating":{"@type":"aggregateRating",'
    '"bestRating":5,"reviewCount":400000,"ratingValue":4.5,"ratingCount":1500000}}</script>'
)

ALLOCINE_HTML = (
    '<div class="rating-item"><span class="rating-title"> Presse </span>'
    '<span class="stareval-note">4,2</span><span class="stareval-review light">35 critiques</span></div>'
    '<div class="rating-item"><span class="rating-title"> Spectateurs </span>'
    '<span class="stareval-note">4,6</span><span class="stareval-review light">117136 notes, 7299 critiques</span></div>'
)

OMDB_PAYLOAD = {
    "Response": "True",
    "Title": "The Shawshank Redemption",
    "imdbRating": "9.3",
    "imdbVotes": "2,900,000",
    "Metascore": "82",
    "Ratings": [
        {"Source": "Internet Movie Database", "Value": "9.3/10"},
        {"Source": "Rotten Tomatoes", "Value": "91%"},
        {"Source": "Metacritic", "Value": "82/100"},
    ],
}

DOUBAN_ABSTRACT = {"r": 0, "subject": {"rate": "9.7", "votes": "3000000", "title": "肖申克的救赎"}}

TMDB_DETAILS = {
    "id": 278,
    "imdb_id": IMDB_ID,
    "title": "The Shawshank Redemption",
    "release_date": "1994-09-23",
    "poster_path": "/q6y0Go1tsGEsmtFryDOJo3dEmqu.jpg",
    "overview": "Framed in the 1940s for the double murder of his wife and her lover...",
    "runtime": 142,
    "genres": [{"id": 18, "name": "Drama"}, {"id": 80, "name": "Crime"}],
    "credits": {
        "crew": [
            {"job": "Director", "name": "Frank Darabont"},
            {"job": "Screenplay", "name": "Frank Darabont"},
            {"job": "Novel", "name": "Stephen King"},
            {"job": "Director of Photography", "name": "Roger Deakins"},
            {"job": "Original Music Composer", "name": "Thomas Newman"},
            {"job": "Editor", "name": "Richard Francis-Bruce"},
        ],
        "cast": [
            {"name": "Morgan Freeman", "order": 1},
            {"name": "Tim Robbins", "order": 0},
        ],
    },
    "release_dates": {
        "results": [
            {"iso_3166_1": "US", "release_dates": [{"certification": "", "type": 1}, {"certification": "R", "type": 3}]}
        ]
    },
}

Handler = Callable[[httpx.Request], httpx.Response]


class FakeWeb:
    """Routes requests by scheme, host and path; anything unrouted is a 404."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, response) -> None:
        if callable(response):
            self.routes[url] = response
        else:
            self.routes[url] = lambda request: response

    def html(self, url: str, body: str, status_code: int = 200) -> None:
        self.add(url, httpx.Response(status_code, text=body))

    def json(self, url: str, payload, status_code: int = 200) -> None:
        self.add(url, httpx.Response(status_code, json=payload))

    def status(self, url: str, status_code: int) -> None:
        self.add(url, httpx.Response(status_code))

    def handler(self, request: httpx.Request):
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404)
        return route(request)

    def hits(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url).startswith(url))

    def client(self) -> HttpClient:
        return HttpClient(httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis``: get, set with ``ex``, aclose."""

    def __init__(self, *, fail: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = fail

    async def get(self, key: str):
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def aclose(self) -> None:
        pass

    def load(self, key: str) -> dict:
        return json.loads(self.data[key])


@pytest.fixture
def movie():
    """Identity record for a well-known, long-released film."""
    return MovieInfo(
        imdb_id=IMDB_ID,
        tmdb_id=278,
        title="The Shawshank Redemption",
        year="1994",
        release_date="1994-09-23",
        genres=["Drama", "Crime"],
        director="Frank Darabont",
    )


@pytest.fixture
def wikidata_ids():
    return WikidataIds(
        rotten_tomatoes="m/shawshank_redemption",
        metacritic="movie/the-shawshank-redemption",
        letterboxd="the-shawshank-redemption",
        douban="1292052",
        allocine_film="10617",
    )


@pytest.fixture
def web():
    return FakeWeb()


@pytest.fixture
def full_web(web):
    """Every upstream answers with a rating."""
    web.html(f"https://www.imdb.com/title/{IMDB_ID}/", IMDB_HTML)
    web.json("https://www.rottentomatoes.com/napi/movie/shawshank_redemption", {"meterScore": 91})
    web.html("https://www.rottentomatoes.com/m/shawshank_redemption", RT_HTML)
    web.html("https://www.metacritic.com/movie/the-shawshank-redemption/", METACRITIC_HTML)
    web.html("https://letterboxd.com/film/the-shawshank-redemption/", LETTERBOXD_HTML)
    web.json("https://movie.douban.com/j/subject_abstract", DOUBAN_ABSTRACT)
    web.html("https://www.allocine.fr/film/fichefilm_gen_cfilm=10617.html", ALLOCINE_HTML)
    web.json("https://www.omdbapi.com/", OMDB_PAYLOAD)
    return web


@pytest.fixture
def api_keys():
    return ApiKeys(tmdb_key="tmdb-key", omdb_key="omdb-key")


@pytest.fixture
async def http(web):
    client = web.client()
    yield client
    await client.aclose()


@pytest.fixture
def ctx(http, api_keys):
    return FetchContext(http, api_keys)


@pytest.fixture
def score_cache():
    return LRUCache(300, 100)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'filmscore.db'}")
    await database.init_db()
    yield database
    await database.drop_all()
    await database.close()
